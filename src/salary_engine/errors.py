"""Exception hierarchy for the salary engine.

Errors fall into three groups:

- input errors: bad configuration or attendance for one employee. They block
  that employee's pay line but never the batch.
- fatal errors: nothing can be computed for the period (no rate
  configuration, no eligible employees). They abort processing before any
  calculation starts.
- workflow and ledger errors: invalid transitions, locked runs, ledger misuse.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID


class PayrollError(Exception):
    """Base class for all salary engine errors."""

    code = "PAYROLL_ERROR"


# ===== Input errors (per employee) =====


class PayrollInputError(PayrollError):
    """An employee's inputs cannot be used for calculation."""

    code = "INPUT_ERROR"

    def __init__(self, employee_id: UUID, message: str):
        self.employee_id = employee_id
        super().__init__(message)


class MissingConfigError(PayrollInputError):
    """No usable compensation configuration for the employee."""

    code = "MISSING_CONFIG"

    def __init__(self, employee_id: UUID, reason: str | None = None):
        msg = f"No valid compensation configuration for employee {employee_id}"
        if reason:
            msg += f": {reason}"
        super().__init__(employee_id, msg)


class AttendanceInconsistentError(PayrollInputError):
    """Attendance summary violates payable + non-payable <= working days."""

    code = "ATTENDANCE_INCONSISTENT"

    def __init__(self, employee_id: UUID, violations: list[str]):
        self.violations = violations
        super().__init__(
            employee_id,
            f"Inconsistent attendance for employee {employee_id}: {'; '.join(violations)}",
        )


class MissingAttendanceError(PayrollInputError):
    """No attendance summary and the run has no default-attendance fallback."""

    code = "MISSING_ATTENDANCE"

    def __init__(self, employee_id: UUID, period: str):
        self.period = period
        super().__init__(
            employee_id,
            f"No attendance summary for employee {employee_id} in {period}",
        )


# ===== Fatal errors (per run) =====


class RateConfigurationNotFoundError(PayrollError):
    """No rate configuration version is effective on the date."""

    code = "RATE_CONFIGURATION_NOT_FOUND"

    def __init__(self, as_of_date: date):
        self.as_of_date = as_of_date
        super().__init__(f"No rate configuration effective on {as_of_date}")


class NoEligibleEmployeesError(PayrollError):
    """The active employee set for the period is empty."""

    code = "NO_ELIGIBLE_EMPLOYEES"

    def __init__(self, period: str):
        self.period = period
        super().__init__(f"No active employees for period {period}")


class BatchDeadlineExceededError(PayrollError):
    """Batch computation did not finish before the deadline.

    The run keeps its previous state; processing can safely be retried.
    """

    code = "BATCH_DEADLINE_EXCEEDED"
    retryable = True

    def __init__(self, pay_run_id: UUID, deadline_seconds: float):
        self.pay_run_id = pay_run_id
        self.deadline_seconds = deadline_seconds
        super().__init__(
            f"Pay run {pay_run_id} did not finish within {deadline_seconds}s; retry processing"
        )


# ===== Workflow errors =====


class NotFoundError(PayrollError):
    """Requested entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidTransitionError(PayrollError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = str(from_status)
        self.to_status = str(to_status)
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayRunExistsError(PayrollError):
    """An in-progress pay run already exists for the period."""

    code = "PAY_RUN_EXISTS"

    def __init__(self, period: str, pay_run_id: UUID):
        self.period = period
        self.pay_run_id = pay_run_id
        super().__init__(f"Pay run {pay_run_id} for {period} is still in progress")


class PayRunLockedError(PayrollError):
    """A paid (locked) pay run cannot be mutated."""

    code = "PAY_RUN_LOCKED"

    def __init__(self, pay_run_id: UUID):
        self.pay_run_id = pay_run_id
        super().__init__(f"Pay run {pay_run_id} is locked; create a correction revision instead")


class AuthorizationError(PayrollError):
    """The actor is not allowed to perform the operation."""

    code = "NOT_AUTHORIZED"


class ImmutableRecordError(PayrollError):
    """Attempt to update or delete an append-only record."""

    code = "IMMUTABLE_RECORD"


# ===== Ledger errors =====


class LedgerError(PayrollError):
    """Base class for deduction ledger errors."""

    code = "LEDGER_ERROR"


class LedgerAccountClosedError(LedgerError):
    """The account is no longer active."""

    code = "LEDGER_ACCOUNT_CLOSED"

    def __init__(self, account_id: UUID, status: str):
        self.account_id = account_id
        self.status = status
        super().__init__(f"Ledger account {account_id} is {status}")


class RecoveryAmountMismatchError(LedgerError):
    """Commit amount differs from the amount due for the period."""

    code = "RECOVERY_AMOUNT_MISMATCH"

    def __init__(self, account_id: UUID, period: str, expected: Decimal, actual: Decimal):
        self.account_id = account_id
        self.period = period
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Recovery for account {account_id} in {period} must be {expected}, got {actual}"
        )


class PrepaymentExceedsBalanceError(LedgerError):
    """Prepayment is larger than the outstanding future principal."""

    code = "PREPAYMENT_EXCEEDS_BALANCE"

    def __init__(self, account_id: UUID, outstanding: Decimal, amount: Decimal):
        self.account_id = account_id
        self.outstanding = outstanding
        self.amount = amount
        super().__init__(
            f"Prepayment {amount} exceeds outstanding principal {outstanding} on account {account_id}"
        )


class LedgerAccountInUseError(LedgerError):
    """An unpaid pay run already carries a recovery for the account."""

    code = "LEDGER_ACCOUNT_IN_USE"

    def __init__(self, account_id: UUID, pay_run_id: UUID, status: str):
        self.account_id = account_id
        self.pay_run_id = pay_run_id
        self.status = status
        super().__init__(
            f"Ledger account {account_id} has a pending recovery in pay run {pay_run_id} "
            f"({status}); pay or cancel the run first"
        )
