"""Tests for the loan and advance deduction ledger."""

from decimal import Decimal
from uuid import uuid4

import pytest

from salary_engine.calculators.amortization import equated_installment
from salary_engine.calculators.types import Period
from salary_engine.errors import (
    LedgerAccountClosedError,
    LedgerError,
    NotFoundError,
    PrepaymentExceedsBalanceError,
    RecoveryAmountMismatchError,
)
from salary_engine.models import AdvanceAccount, LoanAccount
from salary_engine.services.audit_service import AuditRecorder
from salary_engine.services.ledger_service import DeductionLedger

pytestmark = pytest.mark.asyncio

APRIL = Period(2024, 4)
MAY = Period(2024, 5)
JUNE = Period(2024, 6)


@pytest.fixture
def ledger(session) -> DeductionLedger:
    return DeductionLedger(session)


@pytest.fixture
async def loan(ledger) -> LoanAccount:
    """55,000 interest-free over 12 months from April."""
    return await ledger.create_loan(
        employee_id=uuid4(),
        principal=Decimal("55000"),
        annual_interest_rate=Decimal("0"),
        installment_count=12,
        start_period=APRIL,
        actor="hr-admin",
    )


class TestAccountCreation:
    async def test_create_loan_schedule(self, loan):
        assert isinstance(loan, LoanAccount)
        assert loan.account_type == "loan"
        assert loan.emi == Decimal("4583.33")
        assert len(loan.installments) == 12
        assert loan.installments[-1].amount == Decimal("4583.37")
        assert sum(i.principal for i in loan.installments) == Decimal("55000")
        assert loan.remaining_balance == Decimal("55000")
        assert loan.status == "active"

    async def test_create_advance(self, ledger):
        advance = await ledger.create_advance(
            employee_id=uuid4(),
            principal=Decimal("10000"),
            recovery_amount=Decimal("3000"),
            start_period=APRIL,
        )

        assert isinstance(advance, AdvanceAccount)
        assert advance.recovery_amount == Decimal("3000")
        assert [i.amount for i in advance.installments][-1] == Decimal("1000")

    async def test_penalty_rate_defaults_to_zero_without_rates(self, loan):
        assert loan.penalty_rate == Decimal("0")

    async def test_rejects_non_positive_principal(self, ledger):
        with pytest.raises(ValueError):
            await ledger.create_loan(uuid4(), Decimal("0"), Decimal("0"), 12, APRIL)

    async def test_creation_is_audited(self, session, loan):
        events = await AuditRecorder(session).list_for_entity("ledger_account", loan.ledger_account_id)
        assert [e.action for e in events] == ["loan_created"]
        assert events[0].actor == "hr-admin"

    async def test_get_missing_account(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.get_account(uuid4())

    async def test_list_accounts_by_employee(self, ledger, loan):
        accounts = await ledger.list_accounts(employee_id=loan.employee_id)
        assert [a.ledger_account_id for a in accounts] == [loan.ledger_account_id]
        assert await ledger.list_accounts(employee_id=uuid4()) == []


class TestDue:
    async def test_due_for_current_period(self, ledger, loan):
        assert await ledger.due_for_period(loan.ledger_account_id, APRIL) == Decimal("4583.33")

    async def test_nothing_due_before_start(self, ledger, loan):
        assert await ledger.due_for_period(loan.ledger_account_id, Period(2024, 3)) == Decimal("0")

    async def test_missed_installments_accumulate(self, ledger, loan):
        due = ledger.compute_due(loan, JUNE)

        assert due.amount == Decimal("13749.99")
        assert due.periods == ("2024-04", "2024-05", "2024-06")

    async def test_overdue_penalty(self, ledger):
        loan = await ledger.create_loan(
            uuid4(), Decimal("12000"), Decimal("0"), 12, APRIL, penalty_rate=Decimal("0.02")
        )
        due = ledger.compute_due(loan, MAY)

        # April installment is one month late: 1,000 * 2% * 1
        assert due.penalty == Decimal("20.00")
        assert due.amount == Decimal("2020.00")

    async def test_dues_for_employees(self, ledger, loan):
        dues = await ledger.dues_for_employees([loan.employee_id, uuid4()], APRIL)

        assert list(dues) == [loan.employee_id]
        assert dues[loan.employee_id][0].amount == Decimal("4583.33")


class TestCommit:
    async def test_commit_reduces_balance(self, ledger, loan):
        result = await ledger.commit(loan.ledger_account_id, APRIL, Decimal("4583.33"))

        assert result.is_new is True
        assert result.recovery.balance_after == Decimal("50416.67")
        assert loan.remaining_balance == Decimal("50416.67")
        assert loan.total_recovered == Decimal("4583.33")
        assert loan.installments[0].committed is True

    async def test_commit_is_idempotent(self, ledger, loan):
        first = await ledger.commit(loan.ledger_account_id, APRIL, Decimal("4583.33"))
        second = await ledger.commit(loan.ledger_account_id, APRIL, Decimal("4583.33"))

        assert second.is_new is False
        assert second.recovery.ledger_recovery_id == first.recovery.ledger_recovery_id
        assert loan.remaining_balance == Decimal("50416.67")
        assert len(loan.recoveries) == 1

    async def test_committed_period_reports_committed_amount(self, ledger, loan):
        await ledger.commit(loan.ledger_account_id, APRIL, Decimal("4583.33"))
        due = ledger.compute_due(loan, APRIL)

        assert due.already_committed is True
        assert due.amount == Decimal("4583.33")

    async def test_commit_amount_must_match_due(self, ledger, loan):
        with pytest.raises(RecoveryAmountMismatchError) as exc_info:
            await ledger.commit(loan.ledger_account_id, APRIL, Decimal("4000"))
        assert exc_info.value.expected == Decimal("4583.33")

    async def test_nothing_due(self, ledger, loan):
        with pytest.raises(LedgerError):
            await ledger.commit(loan.ledger_account_id, Period(2024, 3), Decimal("0"))

    async def test_full_repayment_completes_account(self, ledger):
        loan = await ledger.create_loan(uuid4(), Decimal("3000"), Decimal("0"), 3, APRIL)
        for period in (APRIL, MAY, JUNE):
            await ledger.commit(loan.ledger_account_id, period, Decimal("1000"))

        assert loan.remaining_balance == Decimal("0")
        assert loan.status == "completed"
        assert loan.closed_at is not None

    async def test_commit_is_audited(self, session, ledger, loan):
        await ledger.commit(loan.ledger_account_id, APRIL, Decimal("4583.33"), actor="payroll")
        events = await AuditRecorder(session).list_for_entity("ledger_account", loan.ledger_account_id)

        commit_event = events[-1]
        assert commit_event.action == "recovery_committed"
        assert commit_event.payload_json["amount"] == "4583.33"
        assert commit_event.payload_json["balance_after"] == "50416.67"


class TestPrepaymentAndWriteOff:
    async def test_prepayment_regenerates_schedule(self, ledger, loan):
        await ledger.commit(loan.ledger_account_id, APRIL, Decimal("4583.33"))
        account = await ledger.prepay(loan.ledger_account_id, Decimal("10416.67"), MAY)

        assert account.remaining_balance == Decimal("40000.00")
        future = [i for i in account.installments if not i.committed]
        assert len(future) == 11
        assert sum(i.principal for i in future) == Decimal("40000.00")
        assert account.installment_amount == future[0].amount
        assert [i.sequence for i in account.installments] == list(range(1, 13))

    async def test_prepay_full_balance_forecloses(self, ledger, loan):
        account = await ledger.prepay(loan.ledger_account_id, Decimal("55000"), APRIL)

        assert account.status == "foreclosed"
        assert account.remaining_balance == Decimal("0")
        assert ledger.compute_due(account, MAY).amount == Decimal("0")

    async def test_prepay_more_than_balance(self, ledger, loan):
        with pytest.raises(PrepaymentExceedsBalanceError):
            await ledger.prepay(loan.ledger_account_id, Decimal("60000"), APRIL)

    async def test_write_off_keeps_balance(self, ledger, loan):
        account = await ledger.write_off(loan.ledger_account_id, "Employee absconded")

        assert account.status == "written_off"
        assert account.remaining_balance == Decimal("55000")
        assert ledger.compute_due(account, APRIL).amount == Decimal("0")

    async def test_closed_account_rejects_commit(self, ledger, loan):
        await ledger.write_off(loan.ledger_account_id, "Settled outside payroll")
        with pytest.raises(LedgerAccountClosedError):
            await ledger.commit(loan.ledger_account_id, APRIL, Decimal("4583.33"))

    async def test_closed_account_rejects_prepayment(self, ledger, loan):
        await ledger.write_off(loan.ledger_account_id, "Settled outside payroll")
        with pytest.raises(LedgerAccountClosedError):
            await ledger.prepay(loan.ledger_account_id, Decimal("1000"), APRIL)


class TestPrepaymentSchedule:
    async def test_prepay_in_committed_period_starts_next_period(self, ledger):
        loan = await ledger.create_loan(
            uuid4(), Decimal("12000"), Decimal("0"), 12, APRIL, penalty_rate=Decimal("0.02")
        )
        await ledger.commit(loan.ledger_account_id, APRIL, Decimal("1000"))

        account = await ledger.prepay(loan.ledger_account_id, Decimal("1000"), APRIL)

        open_periods = [i.period for i in account.installments if not i.committed]
        assert open_periods[0] == "2024-05"
        assert len(open_periods) == 11
        assert account.remaining_balance == Decimal("10000")

        due = ledger.compute_due(account, MAY)
        assert due.periods == ("2024-05",)
        assert due.penalty == Decimal("0")
        assert due.amount == Decimal("909.09")

    async def test_committed_installments_are_untouched(self, ledger, loan):
        await ledger.commit(loan.ledger_account_id, APRIL, Decimal("4583.33"))
        before = [(i.sequence, i.period, i.amount) for i in loan.installments if i.committed]

        account = await ledger.prepay(loan.ledger_account_id, Decimal("5000"), MAY)

        after = [(i.sequence, i.period, i.amount) for i in account.installments if i.committed]
        assert after == before == [(1, "2024-04", Decimal("4583.33"))]
        assert account.recovery_for("2024-04").amount == Decimal("4583.33")

    async def test_prepay_recomputes_interest_bearing_loan(self, ledger):
        # 12,000 at 12% a year over 12 months: EMI 1,066.19, April interest 120.00
        loan = await ledger.create_loan(uuid4(), Decimal("12000"), Decimal("0.12"), 12, APRIL)
        assert loan.emi == Decimal("1066.19")
        await ledger.commit(loan.ledger_account_id, APRIL, Decimal("1066.19"))
        assert loan.remaining_balance == Decimal("11053.81")

        account = await ledger.prepay(loan.ledger_account_id, Decimal("2000"), MAY)

        future = [i for i in account.installments if not i.committed]
        assert len(future) == 11
        assert future[0].period == "2024-05"
        assert future[0].opening_balance == Decimal("9053.81")
        assert future[0].interest == Decimal("90.54")
        assert sum(i.principal for i in future) == Decimal("9053.81")
        assert account.installment_amount == equated_installment(
            Decimal("9053.81"), Decimal("0.12"), 11
        )
        assert account.remaining_balance == Decimal("9053.81")

    async def test_prepay_with_overdue_installment_keeps_it(self, ledger, loan):
        account = await ledger.prepay(loan.ledger_account_id, Decimal("5000"), MAY)

        overdue = [i for i in account.installments if i.period == "2024-04"]
        assert [(i.amount, i.committed) for i in overdue] == [(Decimal("4583.33"), False)]
        assert ledger.compute_due(account, MAY).periods[0] == "2024-04"

    async def test_balance_without_schedule_is_rejected(self, ledger):
        loan = await ledger.create_loan(uuid4(), Decimal("3000"), Decimal("0"), 3, APRIL)
        loan.remaining_balance = Decimal("5000")

        with pytest.raises(LedgerError):
            await ledger.prepay(loan.ledger_account_id, Decimal("500"), Period(2024, 7))
        assert len(loan.installments) == 3
