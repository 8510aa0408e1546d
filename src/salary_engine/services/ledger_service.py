"""Deduction ledger for loans and salary advances."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.amortization import (
    ScheduledInstallment,
    build_loan_schedule,
    build_recovery_schedule,
    overdue_penalty,
)
from salary_engine.calculators.line_builder import round_money
from salary_engine.calculators.rate_resolver import RateResolver
from salary_engine.calculators.types import LedgerDue, Period
from salary_engine.errors import (
    LedgerAccountClosedError,
    LedgerAccountInUseError,
    LedgerError,
    NotFoundError,
    PrepaymentExceedsBalanceError,
    RateConfigurationNotFoundError,
    RecoveryAmountMismatchError,
)
from salary_engine.models import (
    AdvanceAccount,
    LedgerAccount,
    LedgerInstallment,
    LedgerPrepayment,
    LedgerRecovery,
    LoanAccount,
    PayLine,
    PayLineItem,
    PayRun,
)
from salary_engine.models.base import utcnow
from salary_engine.services.audit_service import AuditRecorder
from salary_engine.services.state_machine import PayRunStateMachine

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class CommitResult:
    """Outcome of committing a recovery."""

    account: LedgerAccount
    recovery: LedgerRecovery
    is_new: bool


class DeductionLedger:
    """Loan and advance accounts recovered through payroll.

    Key invariants:
    1. At most one committed recovery per (account, period); committing again
       returns the existing recovery and leaves the balance alone.
    2. Committed installments are never regenerated or altered.
    3. remaining_balance never increases and never goes below zero.
    4. Loan principal components sum exactly to the principal.

    Ledger state only changes through ``commit``, ``prepay`` and
    ``write_off``. Pay-run processing only reads dues.
    """

    def __init__(
        self,
        session: AsyncSession,
        audit: AuditRecorder | None = None,
        precision: int = 2,
    ):
        self.session = session
        self.audit = audit or AuditRecorder(session)
        self.precision = precision

    # ===== Account creation =====

    async def create_loan(
        self,
        employee_id: UUID,
        principal: Decimal,
        annual_interest_rate: Decimal,
        installment_count: int,
        start_period: Period,
        penalty_rate: Decimal | None = None,
        description: str | None = None,
        actor: str | None = None,
    ) -> LoanAccount:
        """Open a loan and generate its EMI schedule."""
        principal = self._round(principal)
        if principal <= 0:
            raise ValueError("Loan principal must be positive")
        if installment_count <= 0:
            raise ValueError("Installment count must be positive")
        if annual_interest_rate < 0:
            raise ValueError("Interest rate must not be negative")

        schedule = build_loan_schedule(
            principal, annual_interest_rate, installment_count, start_period, self.precision
        )
        account = LoanAccount(
            employee_id=employee_id,
            principal=principal,
            annual_interest_rate=annual_interest_rate,
            installment_count=installment_count,
            installment_amount=schedule[0].amount,
            penalty_rate=await self._penalty_rate(penalty_rate, start_period),
            start_period=str(start_period),
            total_recovered=ZERO,
            remaining_balance=principal,
            status="active",
            description=description,
            installments=self._installment_rows(schedule),
            recoveries=[],
            prepayments=[],
        )
        self.session.add(account)
        await self.session.flush()

        await self.audit.record(
            "ledger_account",
            account.ledger_account_id,
            "loan_created",
            actor,
            {
                "employee_id": employee_id,
                "principal": principal,
                "annual_interest_rate": annual_interest_rate,
                "installment_count": installment_count,
                "emi": account.installment_amount,
                "start_period": str(start_period),
            },
        )
        logger.info(
            "Created loan %s for employee %s: %s over %d installments",
            account.ledger_account_id,
            employee_id,
            principal,
            installment_count,
        )
        return account

    async def create_advance(
        self,
        employee_id: UUID,
        principal: Decimal,
        recovery_amount: Decimal,
        start_period: Period,
        penalty_rate: Decimal | None = None,
        description: str | None = None,
        actor: str | None = None,
    ) -> AdvanceAccount:
        """Record a salary advance recovered at a fixed amount per period."""
        principal = self._round(principal)
        recovery_amount = self._round(recovery_amount)
        if principal <= 0:
            raise ValueError("Advance principal must be positive")
        if recovery_amount <= 0:
            raise ValueError("Recovery amount must be positive")

        schedule = build_recovery_schedule(principal, recovery_amount, start_period, self.precision)
        account = AdvanceAccount(
            employee_id=employee_id,
            principal=principal,
            annual_interest_rate=ZERO,
            installment_count=len(schedule),
            installment_amount=recovery_amount,
            penalty_rate=await self._penalty_rate(penalty_rate, start_period),
            start_period=str(start_period),
            total_recovered=ZERO,
            remaining_balance=principal,
            status="active",
            description=description,
            installments=self._installment_rows(schedule),
            recoveries=[],
            prepayments=[],
        )
        self.session.add(account)
        await self.session.flush()

        await self.audit.record(
            "ledger_account",
            account.ledger_account_id,
            "advance_created",
            actor,
            {
                "employee_id": employee_id,
                "principal": principal,
                "recovery_amount": recovery_amount,
                "start_period": str(start_period),
            },
        )
        logger.info(
            "Created advance %s for employee %s: %s at %s per period",
            account.ledger_account_id,
            employee_id,
            principal,
            recovery_amount,
        )
        return account

    # ===== Queries =====

    async def get_account(self, account_id: UUID, for_update: bool = False) -> LedgerAccount:
        stmt = select(LedgerAccount).where(LedgerAccount.ledger_account_id == account_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFoundError("Ledger account", account_id)
        return account

    async def list_accounts(
        self, employee_id: UUID | None = None, status: str | None = None
    ) -> list[LedgerAccount]:
        stmt = select(LedgerAccount).order_by(LedgerAccount.ledger_account_id)
        if employee_id is not None:
            stmt = stmt.where(LedgerAccount.employee_id == employee_id)
        if status is not None:
            stmt = stmt.where(LedgerAccount.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    def compute_due(self, account: LedgerAccount, period: Period) -> LedgerDue:
        """Amount owed on a loaded account for a period.

        - already committed for the period: the committed amount
        - account not active: zero
        - otherwise: every uncommitted installment scheduled on or before the
          period, each overdue one with ``amount * penalty_rate * months``
        """
        key = str(period)
        existing = account.recovery_for(key)
        if existing is not None:
            return LedgerDue(
                account_id=account.ledger_account_id,
                account_type=account.account_type,
                amount=existing.amount,
                principal=existing.principal,
                interest=existing.interest,
                penalty=existing.penalty,
                periods=tuple(
                    i.period for i in account.installments if i.committed_period == key
                ),
                already_committed=True,
            )

        if not account.is_active:
            return LedgerDue(account.ledger_account_id, account.account_type, ZERO)

        pending = self._pending_installments(account, period)
        amount = principal = interest = penalty = ZERO
        for installment in pending:
            months = period.months_since(Period.parse(installment.period))
            late_fee = overdue_penalty(
                installment.amount, account.penalty_rate, months, self.precision
            )
            amount += installment.amount + late_fee
            principal += installment.principal
            interest += installment.interest
            penalty += late_fee

        return LedgerDue(
            account_id=account.ledger_account_id,
            account_type=account.account_type,
            amount=amount,
            principal=principal,
            interest=interest,
            penalty=penalty,
            periods=tuple(i.period for i in pending),
        )

    async def due_for_period(self, account_id: UUID, period: Period) -> Decimal:
        account = await self.get_account(account_id)
        return self.compute_due(account, period).amount

    async def dues_for_employees(
        self, employee_ids: Iterable[UUID], period: Period
    ) -> dict[UUID, list[LedgerDue]]:
        """Dues for a batch of employees from a single read.

        Only accounts with something owed (or already committed) for the
        period are returned, sorted by account id.
        """
        ids = list(employee_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(LedgerAccount)
            .where(LedgerAccount.employee_id.in_(ids))
            .order_by(LedgerAccount.ledger_account_id)
        )
        dues: dict[UUID, list[LedgerDue]] = {}
        for account in result.scalars().all():
            due = self.compute_due(account, period)
            if due.amount > 0:
                dues.setdefault(account.employee_id, []).append(due)
        return dues

    # ===== Mutations =====

    async def commit(
        self,
        account_id: UUID,
        period: Period,
        amount: Decimal,
        pay_run_id: UUID | None = None,
        actor: str | None = None,
    ) -> CommitResult:
        """Commit the recovery for a period.

        Idempotent: if the period is already committed the existing recovery
        is returned with ``is_new=False`` and nothing changes.

        Raises:
            LedgerAccountClosedError: account is not active
            RecoveryAmountMismatchError: amount differs from what is due
        """
        account = await self.get_account(account_id, for_update=True)
        key = str(period)

        existing = account.recovery_for(key)
        if existing is not None:
            logger.info("Recovery for account %s in %s already committed", account_id, key)
            return CommitResult(account=account, recovery=existing, is_new=False)

        if not account.is_active:
            raise LedgerAccountClosedError(account_id, account.status)

        due = self.compute_due(account, period)
        amount = self._round(amount)
        if amount != due.amount:
            raise RecoveryAmountMismatchError(account_id, key, due.amount, amount)
        if due.amount == 0:
            raise LedgerError(f"Nothing is due on account {account_id} for {key}")

        for installment in self._pending_installments(account, period):
            installment.committed = True
            installment.committed_period = key

        balance = max(account.remaining_balance - due.principal, ZERO)
        account.remaining_balance = balance
        account.total_recovered = account.total_recovered + amount

        recovery = LedgerRecovery(
            period=key,
            amount=amount,
            principal=due.principal,
            interest=due.interest,
            penalty=due.penalty,
            balance_after=balance,
            pay_run_id=pay_run_id,
        )
        account.recoveries.append(recovery)

        if balance == 0:
            account.status = "completed"
            account.closed_at = utcnow()

        await self.session.flush()
        await self.audit.record_ledger_commit(account, recovery, actor)
        logger.info(
            "Committed %s on account %s for %s, balance %s",
            amount,
            account_id,
            key,
            balance,
        )
        return CommitResult(account=account, recovery=recovery, is_new=True)

    async def prepay(
        self,
        account_id: UUID,
        amount: Decimal,
        period: Period,
        actor: str | None = None,
    ) -> LedgerAccount:
        """Apply an out-of-payroll repayment from ``period`` onwards.

        Overdue installments are kept as they are. Uncommitted installments
        scheduled from ``period`` on are regenerated over the reduced
        balance (same count for loans, same recovery amount for advances).
        If ``period`` is already committed the new schedule starts in the
        following period. Clearing the whole balance forecloses the account.

        Raises:
            LedgerAccountClosedError: account is not active
            LedgerAccountInUseError: an unpaid pay run holds a recovery for the account
            PrepaymentExceedsBalanceError: amount is more than the future principal
        """
        account = await self.get_account(account_id, for_update=True)
        if not account.is_active:
            raise LedgerAccountClosedError(account_id, account.status)

        amount = self._round(amount)
        if amount <= 0:
            raise ValueError("Prepayment amount must be positive")
        await self._ensure_no_pending_recovery(account_id)

        start = period
        if account.recovery_for(str(period)) is not None:
            start = period.next()

        open_installments = [i for i in account.installments if not i.committed]
        overdue = [i for i in open_installments if Period.parse(i.period) < start]
        future = [i for i in open_installments if Period.parse(i.period) >= start]
        overdue_principal = sum((i.principal for i in overdue), ZERO)
        future_principal = account.remaining_balance - overdue_principal

        if amount > future_principal:
            raise PrepaymentExceedsBalanceError(account_id, future_principal, amount)

        base = future_principal - amount
        if base > 0 and not future:
            raise LedgerError(
                f"Account {account_id} has {future_principal} outstanding "
                f"but no installments scheduled from {start}"
            )

        for installment in future:
            account.installments.remove(installment)
        await self.session.flush()

        if base > 0:
            kept = [i.sequence for i in account.installments]
            first_sequence = max(kept, default=0) + 1
            if isinstance(account, LoanAccount):
                schedule = build_loan_schedule(
                    base,
                    account.annual_interest_rate,
                    len(future),
                    start,
                    self.precision,
                    first_sequence,
                )
                account.installment_amount = schedule[0].amount
            else:
                schedule = build_recovery_schedule(
                    base, account.installment_amount, start, self.precision, first_sequence
                )
            account.installments.extend(self._installment_rows(schedule))

        balance = account.remaining_balance - amount
        account.remaining_balance = balance
        account.total_recovered = account.total_recovered + amount
        account.prepayments.append(
            LedgerPrepayment(period=str(period), amount=amount, balance_after=balance, actor=actor)
        )
        if balance == 0:
            account.status = "foreclosed"
            account.closed_at = utcnow()

        await self.session.flush()
        await self.audit.record(
            "ledger_account",
            account_id,
            "prepayment",
            actor,
            {
                "period": str(period),
                "amount": amount,
                "balance_after": balance,
                "status": account.status,
                "regenerated_installments": len(future),
            },
        )
        logger.info("Prepayment %s on account %s, balance %s", amount, account_id, balance)
        return account

    async def write_off(
        self, account_id: UUID, reason: str, actor: str | None = None
    ) -> LedgerAccount:
        """Stop recovering an account; the outstanding balance is kept for reporting."""
        account = await self.get_account(account_id, for_update=True)
        if not account.is_active:
            raise LedgerAccountClosedError(account_id, account.status)
        if not reason:
            raise ValueError("Write-off requires a reason")
        await self._ensure_no_pending_recovery(account_id)

        account.status = "written_off"
        account.close_reason = reason
        account.closed_at = utcnow()
        await self.session.flush()

        await self.audit.record(
            "ledger_account",
            account_id,
            "written_off",
            actor,
            {"reason": reason, "remaining_balance": account.remaining_balance},
        )
        logger.warning(
            "Wrote off account %s with balance %s: %s",
            account_id,
            account.remaining_balance,
            reason,
        )
        return account

    # ===== Helpers =====

    async def _ensure_no_pending_recovery(self, account_id: UUID) -> None:
        """Refuse balance changes while an unpaid run has already priced a recovery."""
        await self.session.flush()
        result = await self.session.execute(
            select(PayRun.pay_run_id, PayRun.status)
            .join(PayLine, PayLine.pay_run_id == PayRun.pay_run_id)
            .join(PayLineItem, PayLineItem.pay_line_id == PayLine.pay_line_id)
            .where(
                PayLineItem.ledger_account_id == account_id,
                PayRun.status.in_([s.value for s in PayRunStateMachine.LEDGER_PENDING]),
            )
            .order_by(PayRun.pay_run_id)
            .limit(1)
        )
        row = result.first()
        if row is not None:
            raise LedgerAccountInUseError(account_id, row.pay_run_id, row.status)

    def _round(self, amount: Decimal) -> Decimal:
        return round_money(Decimal(amount), self.precision)

    @staticmethod
    def _pending_installments(account: LedgerAccount, period: Period) -> list[LedgerInstallment]:
        return [
            i
            for i in account.installments
            if not i.committed and Period.parse(i.period) <= period
        ]

    @staticmethod
    def _installment_rows(schedule: Sequence[ScheduledInstallment]) -> list[LedgerInstallment]:
        return [
            LedgerInstallment(
                sequence=row.sequence,
                period=str(row.period),
                opening_balance=row.opening_balance,
                principal=row.principal,
                interest=row.interest,
                amount=row.amount,
                closing_balance=row.closing_balance,
                committed=False,
            )
            for row in schedule
        ]

    async def _penalty_rate(self, explicit: Decimal | None, start_period: Period) -> Decimal:
        """Explicit rate, else the configured overdue rate, else zero."""
        if explicit is not None:
            return explicit
        try:
            rates = await RateResolver(self.session).resolve(start_period.start_date)
        except RateConfigurationNotFoundError:
            return ZERO
        return rates.overdue_penalty_rate
