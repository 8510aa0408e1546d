"""Pay run orchestrator - main workflow for monthly payroll."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.engine import CalculationResult, SalaryCalculator
from salary_engine.calculators.line_builder import LineItemBuilder
from salary_engine.calculators.rate_resolver import RateResolver
from salary_engine.calculators.rates import RateConfiguration
from salary_engine.calculators.types import (
    AttendanceSummary,
    EmployeeSnapshot,
    LedgerDue,
    Period,
    TaxToDate,
)
from salary_engine.config import Settings, get_settings
from salary_engine.errors import (
    AuthorizationError,
    BatchDeadlineExceededError,
    InvalidTransitionError,
    MissingAttendanceError,
    NoEligibleEmployeesError,
    NotFoundError,
    PayRunExistsError,
    PayRunLockedError,
    PayrollInputError,
)
from salary_engine.models import PayLine, PayLineItem, PayRun
from salary_engine.models.base import utcnow
from salary_engine.services.audit_service import AuditRecorder
from salary_engine.services.commit_service import LedgerCommitService
from salary_engine.services.input_source import InputSource, SqlInputSource
from salary_engine.services.ledger_service import DeductionLedger
from salary_engine.services.state_machine import PayRunStateMachine, PayRunStatus

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class EmployeeFailure:
    """Why one employee has no pay line in a run."""

    employee_id: UUID
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"employee_id": str(self.employee_id), "code": self.code, "message": self.message}


@dataclass
class ProcessingOutcome:
    """Result of one processing pass."""

    pay_run: PayRun
    results: list[CalculationResult] = field(default_factory=list)
    failures: list[EmployeeFailure] = field(default_factory=list)


class PayRunOrchestrator:
    """Service for managing the pay run lifecycle.

    Operations:
    - create_pay_run: open a new revision for a period in draft
    - process_pay_run: compute every active employee (draft|processed -> processed)
    - submit_for_review: processed -> in_review
    - approve_pay_run: in_review -> approved, recording the approver
    - mark_paid: approved -> paid, committing ledger recoveries and locking the run
    - cancel_pay_run: draft|processed|in_review -> cancelled
    - create_correction: new revision superseding a paid run

    The orchestrator never commits the session; callers own the transaction,
    which makes ``mark_paid`` all-or-nothing.
    """

    def __init__(
        self,
        session: AsyncSession,
        inputs: InputSource | None = None,
        calculator: SalaryCalculator | None = None,
        settings: Settings | None = None,
        audit: AuditRecorder | None = None,
        ledger: DeductionLedger | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.inputs = inputs or SqlInputSource(session)
        self.calculator = calculator or SalaryCalculator(self.settings.engine_version)
        self.audit = audit or AuditRecorder(session)
        self.ledger = ledger or DeductionLedger(session, self.audit)
        self.rate_resolver = RateResolver(session)
        self.commit_service = LedgerCommitService(session, self.ledger)

    # ===== Queries =====

    async def get_pay_run(self, pay_run_id: UUID) -> PayRun:
        result = await self.session.execute(select(PayRun).where(PayRun.pay_run_id == pay_run_id))
        pay_run = result.scalar_one_or_none()
        if pay_run is None:
            raise NotFoundError("Pay run", pay_run_id)
        return pay_run

    async def list_pay_runs(self, period: Period | None = None) -> list[PayRun]:
        stmt = select(PayRun).order_by(PayRun.period.desc(), PayRun.revision.desc())
        if period is not None:
            stmt = stmt.where(PayRun.period == str(period))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def latest_for_period(self, period: Period) -> PayRun | None:
        runs = await self.list_pay_runs(period)
        return runs[0] if runs else None

    async def latest_paid_for_period(self, period: Period) -> PayRun | None:
        runs = await self.list_pay_runs(period)
        return next((r for r in runs if r.status == PayRunStatus.PAID.value), None)

    # ===== Creation =====

    async def create_pay_run(
        self,
        period: Period,
        default_attendance: bool = False,
        actor: str | None = None,
    ) -> PayRun:
        """Open a new revision for the period.

        Raises:
            PayRunExistsError: If another revision is still in progress
        """
        latest = await self.latest_for_period(period)
        if latest is not None and PayRunStateMachine.is_in_progress(latest.status):
            raise PayRunExistsError(str(period), latest.pay_run_id)

        paid = await self.latest_paid_for_period(period)
        pay_run = PayRun(
            period=str(period),
            revision=latest.revision + 1 if latest else 1,
            status=PayRunStatus.DRAFT.value,
            default_attendance=default_attendance,
            failures_json=[],
            created_by=actor,
            locked=False,
            supersedes_pay_run_id=paid.pay_run_id if paid else None,
            lines=[],
        )
        self.session.add(pay_run)
        await self.session.flush()

        await self.audit.record(
            "pay_run",
            pay_run.pay_run_id,
            "created",
            actor,
            {
                "period": pay_run.period,
                "revision": pay_run.revision,
                "default_attendance": default_attendance,
                "supersedes_pay_run_id": pay_run.supersedes_pay_run_id,
            },
        )
        logger.info("Created pay run %s for %s rev %d", pay_run.pay_run_id, period, pay_run.revision)
        return pay_run

    async def create_correction(
        self,
        period: Period,
        default_attendance: bool = False,
        actor: str | None = None,
    ) -> PayRun:
        """New revision superseding the paid run for the period; history is untouched.

        Raises:
            NotFoundError: If the period has no paid run to correct
            PayRunExistsError: If another revision is still in progress
        """
        if await self.latest_paid_for_period(period) is None:
            raise NotFoundError("Paid pay run for period", str(period))
        return await self.create_pay_run(period, default_attendance, actor)

    # ===== Processing =====

    async def process_pay_run(self, pay_run_id: UUID, actor: str | None = None) -> ProcessingOutcome:
        """Compute pay lines for every active employee.

        Fatal checks run before any computation: a rate configuration must be
        effective at period end, and the active employee set must not be
        empty. Per-employee input problems become entries in the run's
        failure list. If the batch misses its deadline the run keeps its
        previous state and lines.

        Raises:
            RateConfigurationNotFoundError: No rates effective for the period
            NoEligibleEmployeesError: Active employee set is empty
            BatchDeadlineExceededError: Computation did not finish in time (retryable)
        """
        pay_run = await self.get_pay_run(pay_run_id)
        if pay_run.locked:
            raise PayRunLockedError(pay_run_id)
        if not PayRunStateMachine.can_calculate(pay_run.status):
            raise InvalidTransitionError(
                pay_run.status, PayRunStatus.PROCESSED, "results are immutable in this status"
            )

        period = Period.parse(pay_run.period)
        rates = await self.rate_resolver.resolve(period.end_date)

        employees = sorted(await self.inputs.active_employees(period), key=lambda e: e.employee_id)
        if not employees:
            raise NoEligibleEmployeesError(str(period))

        employee_ids = [e.employee_id for e in employees]
        dues = await self.ledger.dues_for_employees(employee_ids, period)
        tax_to_date = await self._tax_to_date(employee_ids, period, rates)

        semaphore = asyncio.Semaphore(self.settings.max_workers)

        async def work(employee: EmployeeSnapshot) -> CalculationResult | EmployeeFailure:
            async with semaphore:
                return await self._compute_employee(
                    pay_run,
                    employee,
                    period,
                    rates,
                    dues.get(employee.employee_id, []),
                    tax_to_date.get(employee.employee_id),
                )

        deadline = self.settings.batch_deadline_seconds
        try:
            outcomes = await asyncio.wait_for(
                asyncio.gather(*(work(e) for e in employees)),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Pay run %s exceeded batch deadline of %ss with %d employees",
                pay_run_id,
                deadline,
                len(employees),
            )
            await self.audit.record(
                "pay_run",
                pay_run_id,
                "processing_deadline_exceeded",
                actor,
                {"deadline_seconds": deadline, "employee_count": len(employees)},
            )
            raise BatchDeadlineExceededError(pay_run_id, deadline) from None

        results = sorted(
            (o for o in outcomes if isinstance(o, CalculationResult)),
            key=lambda r: r.employee_id,
        )
        failures = [o for o in outcomes if isinstance(o, EmployeeFailure)]

        await self._replace_lines(pay_run, results)

        from_status = pay_run.status
        pay_run.failures_json = [f.to_dict() for f in failures]
        pay_run.rate_version = rates.version
        pay_run.employee_count = len(results)
        pay_run.total_gross = sum((r.gross for r in results), ZERO)
        pay_run.total_deductions = sum((r.total_deductions for r in results), ZERO)
        pay_run.total_net = sum((r.net for r in results), ZERO)
        pay_run.total_employer_contributions = sum(
            (r.employer_contributions for r in results), ZERO
        )
        pay_run.negative_net_count = sum(1 for r in results if r.negative_net)
        pay_run.status = PayRunStatus.PROCESSED.value
        pay_run.processed_at = utcnow()
        await self.session.flush()

        for result in results:
            await self.audit.record_pay_line(pay_run.pay_run_id, result, actor)
        await self.audit.record_transition(
            pay_run,
            from_status,
            PayRunStatus.PROCESSED,
            actor,
            {
                "employee_count": len(results),
                "failure_count": len(failures),
                "negative_net_count": pay_run.negative_net_count,
                "rate_version": rates.version,
            },
        )
        logger.info(
            "Processed pay run %s: %d lines, %d failures, net %s",
            pay_run_id,
            len(results),
            len(failures),
            pay_run.total_net,
        )
        return ProcessingOutcome(pay_run=pay_run, results=results, failures=failures)

    async def _compute_employee(
        self,
        pay_run: PayRun,
        employee: EmployeeSnapshot,
        period: Period,
        rates: RateConfiguration,
        dues: list[LedgerDue],
        tax_to_date: TaxToDate | None,
    ) -> CalculationResult | EmployeeFailure:
        employee_id = employee.employee_id
        try:
            config = await self.inputs.compensation(employee_id, period.end_date)
            attendance = await self.inputs.attendance(employee_id, period)
            if attendance is None:
                if not pay_run.default_attendance:
                    raise MissingAttendanceError(employee_id, str(period))
                attendance = AttendanceSummary.full_month(
                    employee_id, period, self.settings.default_working_days
                )
            additions = await self.inputs.additions(employee_id, period)
            other_deductions = await self.inputs.other_deductions(employee_id, period)

            return self.calculator.compute(
                config,
                attendance,
                rates,
                dues,
                employee=employee,
                additions=additions,
                other_deductions=other_deductions,
                tax_to_date=tax_to_date,
                period=period,
                pay_run_id=pay_run.pay_run_id,
            )
        except PayrollInputError as e:
            logger.warning("Pay run %s: employee %s skipped: %s", pay_run.pay_run_id, employee_id, e)
            return EmployeeFailure(employee_id, e.code, str(e))
        except Exception as e:
            logger.exception(
                "Pay run %s: unexpected error computing employee %s", pay_run.pay_run_id, employee_id
            )
            return EmployeeFailure(employee_id, "UNEXPECTED_ERROR", str(e))

    async def _replace_lines(self, pay_run: PayRun, results: list[CalculationResult]) -> None:
        """Discard the previous pass's lines and persist the new ones."""
        if pay_run.lines:
            pay_run.lines.clear()
            # Line ids are deterministic; old rows must be gone before re-insert
            await self.session.flush()
        for result in results:
            pay_run.lines.append(self._build_pay_line(result))

    @staticmethod
    def _build_pay_line(result: CalculationResult) -> PayLine:
        return PayLine(
            pay_line_id=result.calculation_id,
            employee_id=result.employee_id,
            employee_snapshot_json=result.employee.to_dict(),
            attendance_json=result.attendance.to_dict(),
            rate_version=result.rate_version,
            rate_fingerprint=result.rate_fingerprint,
            inputs_fingerprint=result.inputs_fingerprint,
            engine_version=result.engine_version,
            gross=result.gross,
            total_deductions=result.total_deductions,
            net=result.net,
            employer_contributions=result.employer_contributions,
            taxable_gross=result.taxable_gross,
            withholding_tax=result.withholding_tax,
            negative_net=result.negative_net,
            items=[
                PayLineItem(
                    sequence=i,
                    line_type=line.line_type.value,
                    code=line.code,
                    quantity=line.quantity,
                    rate=line.rate,
                    amount=line.amount,
                    ledger_account_id=line.ledger_account_id,
                    explanation=line.explanation,
                    line_hash=LineItemBuilder.compute_line_hash(line),
                )
                for i, line in enumerate(result.lines, start=1)
            ],
        )

    async def _tax_to_date(
        self, employee_ids: list[UUID], period: Period, rates: RateConfiguration
    ) -> dict[UUID, TaxToDate]:
        """Taxable gross and withholding from paid runs earlier in the fiscal year.

        When a period was paid more than once (corrections), only the highest
        revision counts.
        """
        fiscal_start = period.fiscal_year_start(rates.withholding.fiscal_year_start_month)
        result = await self.session.execute(
            select(PayRun.period, PayRun.revision, PayLine.employee_id, PayLine.taxable_gross, PayLine.withholding_tax)
            .join(PayLine, PayLine.pay_run_id == PayRun.pay_run_id)
            .where(
                PayRun.status == PayRunStatus.PAID.value,
                PayRun.period >= str(fiscal_start),
                PayRun.period < str(period),
                PayLine.employee_id.in_(employee_ids),
            )
        )

        latest: dict[tuple[UUID, str], tuple[int, Decimal, Decimal]] = {}
        for run_period, revision, employee_id, taxable, withheld in result.all():
            key = (employee_id, run_period)
            if key not in latest or revision > latest[key][0]:
                latest[key] = (revision, taxable, withheld)

        totals: dict[UUID, TaxToDate] = {}
        for (employee_id, _), (_, taxable, withheld) in latest.items():
            current = totals.get(employee_id, TaxToDate())
            totals[employee_id] = TaxToDate(
                taxable_gross=current.taxable_gross + taxable,
                tax_withheld=current.tax_withheld + withheld,
                periods_paid=current.periods_paid + 1,
            )
        return totals

    # ===== Transitions =====

    async def submit_for_review(self, pay_run_id: UUID, actor: str | None = None) -> PayRun:
        """processed -> in_review; requires no failures and no negative nets."""
        pay_run = await self.get_pay_run(pay_run_id)
        return await self.transition_status(pay_run, PayRunStatus.IN_REVIEW, actor)

    async def approve_pay_run(self, pay_run_id: UUID, approver: str | None) -> PayRun:
        """in_review -> approved, recording who approved and when.

        Raises:
            AuthorizationError: If no approver identity is given
        """
        if not approver:
            raise AuthorizationError("Approving a pay run requires an approver identity")
        pay_run = await self.get_pay_run(pay_run_id)
        return await self.transition_status(pay_run, PayRunStatus.APPROVED, approver)

    async def mark_paid(self, pay_run_id: UUID, actor: str | None = None) -> PayRun:
        """approved -> paid: commit every ledger recovery, then lock the run."""
        pay_run = await self.get_pay_run(pay_run_id)
        return await self.transition_status(pay_run, PayRunStatus.PAID, actor)

    async def cancel_pay_run(
        self, pay_run_id: UUID, reason: str, actor: str | None = None
    ) -> PayRun:
        pay_run = await self.get_pay_run(pay_run_id)
        return await self.transition_status(pay_run, PayRunStatus.CANCELLED, actor, reason)

    async def transition_status(
        self,
        pay_run: PayRun,
        to_status: PayRunStatus,
        actor: str | None = None,
        reason: str | None = None,
    ) -> PayRun:
        """Transition a pay run to a new status.

        Handles all side effects of transitions:
        - approved: records approver and timestamp
        - paid: commits ledger recoveries, sets paid_at and the lock flag
        - cancelled: requires a reason

        Raises InvalidTransitionError if transition is not allowed.
        """
        if pay_run.locked:
            raise PayRunLockedError(pay_run.pay_run_id)

        from_status = PayRunStateMachine.coerce(pay_run.status)
        errors = PayRunStateMachine.validate_pay_run_for_transition(pay_run, to_status)
        if errors:
            raise InvalidTransitionError(from_status, to_status, "; ".join(errors))

        details: dict[str, Any] = {}
        if to_status == PayRunStatus.APPROVED:
            pay_run.approved_by = actor
            pay_run.approved_at = utcnow()

        elif to_status == PayRunStatus.PAID:
            commits = await self.commit_service.commit_pay_run(pay_run, actor)
            pay_run.paid_at = utcnow()
            pay_run.locked = True
            details["ledger_commits"] = [
                {
                    "account_id": c.account.ledger_account_id,
                    "amount": c.recovery.amount,
                    "balance_after": c.recovery.balance_after,
                    "is_new": c.is_new,
                }
                for c in commits
            ]

        elif to_status == PayRunStatus.CANCELLED:
            if not reason:
                raise InvalidTransitionError(from_status, to_status, "Cancellation requires a reason")
            pay_run.cancelled_at = utcnow()
            pay_run.cancel_reason = reason
            details["reason"] = reason

        pay_run.status = to_status.value
        await self.session.flush()

        await self.audit.record_transition(pay_run, from_status, to_status, actor, details)
        logger.info(
            "Pay run %s: %s -> %s by %s", pay_run.pay_run_id, from_status, to_status, actor
        )
        return pay_run
