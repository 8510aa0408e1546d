"""Pay run state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from salary_engine.models import PayRun


class PayRunStatus(str, Enum):
    """Pay run status values."""

    DRAFT = "draft"
    PROCESSED = "processed"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class PayRunStateMachine:
    """State machine for pay run status transitions.

    Allowed transitions:
    - draft → processed
    - processed → processed (recompute)
    - processed → in_review
    - in_review → approved
    - approved → paid
    - draft, processed, in_review → cancelled

    Statuses are coerced through ``PayRunStatus`` before every lookup, so
    plain strings from the database and enum members behave the same.
    """

    # Define valid transitions: {from_status: {allowed_to_statuses}}
    VALID_TRANSITIONS: dict[PayRunStatus, frozenset[PayRunStatus]] = {
        PayRunStatus.DRAFT: frozenset({PayRunStatus.PROCESSED, PayRunStatus.CANCELLED}),
        PayRunStatus.PROCESSED: frozenset(
            {PayRunStatus.PROCESSED, PayRunStatus.IN_REVIEW, PayRunStatus.CANCELLED}
        ),
        PayRunStatus.IN_REVIEW: frozenset({PayRunStatus.APPROVED, PayRunStatus.CANCELLED}),
        PayRunStatus.APPROVED: frozenset({PayRunStatus.PAID}),
        PayRunStatus.PAID: frozenset(),  # Terminal state
        PayRunStatus.CANCELLED: frozenset(),  # Terminal state
    }

    # Statuses where (re)calculation is allowed
    CALCULATION_ALLOWED = frozenset({PayRunStatus.DRAFT, PayRunStatus.PROCESSED})

    # Pay lines in these statuses hold recoveries not yet committed to the ledger
    LEDGER_PENDING = frozenset(
        {PayRunStatus.PROCESSED, PayRunStatus.IN_REVIEW, PayRunStatus.APPROVED}
    )

    # A period can have only one run in these statuses
    IN_PROGRESS = frozenset(
        {
            PayRunStatus.DRAFT,
            PayRunStatus.PROCESSED,
            PayRunStatus.IN_REVIEW,
            PayRunStatus.APPROVED,
        }
    )

    @staticmethod
    def coerce(status: str | PayRunStatus) -> PayRunStatus:
        return PayRunStatus(status)

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        try:
            allowed = cls.VALID_TRANSITIONS[cls.coerce(from_status)]
            return cls.coerce(to_status) in allowed
        except ValueError:
            return False

    @classmethod
    def can_calculate(cls, status: str) -> bool:
        """Check if calculation is allowed in this status."""
        return cls.coerce(status) in cls.CALCULATION_ALLOWED

    @classmethod
    def is_in_progress(cls, status: str) -> bool:
        return cls.coerce(status) in cls.IN_PROGRESS

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        allowed = cls.VALID_TRANSITIONS.get(cls.coerce(current_status), frozenset())
        return sorted(s.value for s in allowed)

    @classmethod
    def validate_pay_run_for_transition(
        cls, pay_run: PayRun, to_status: str
    ) -> list[str]:
        """Validate a pay run for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_status = pay_run.status

        # Basic transition check
        if not cls.can_transition(from_status, to_status):
            errors.append(f"Cannot transition from '{from_status}' to '{to_status}'")
            return errors

        target = cls.coerce(to_status)

        # Transition-specific validations
        if target in (PayRunStatus.IN_REVIEW, PayRunStatus.APPROVED):
            if not pay_run.lines:
                errors.append("Pay run has no pay lines")
            if pay_run.failures_json:
                errors.append(f"{len(pay_run.failures_json)} employee(s) failed calculation")
            negative = [line for line in pay_run.lines if line.negative_net]
            if negative:
                errors.append(f"{len(negative)} pay line(s) have negative net pay")

        elif target == PayRunStatus.PAID:
            if not pay_run.approved_by:
                errors.append("Pay run has no recorded approver")

        return errors
