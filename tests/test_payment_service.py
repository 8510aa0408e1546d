"""Tests for disbursement record generation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import APRIL
from salary_engine.errors import InvalidTransitionError, NotFoundError
from salary_engine.services.pay_run_service import PayRunOrchestrator
from salary_engine.services.payment_service import PaymentService

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def approved_run(session, inputs, settings, seeded_rates):
    inputs.add_employee("Asha Rao", Decimal("600000"))
    inputs.add_employee("Vikram Shah", Decimal("360000"))
    orchestrator = PayRunOrchestrator(session, inputs=inputs, settings=settings)

    pay_run = await orchestrator.create_pay_run(APRIL)
    await orchestrator.process_pay_run(pay_run.pay_run_id)
    await orchestrator.submit_for_review(pay_run.pay_run_id)
    return await orchestrator.approve_pay_run(pay_run.pay_run_id, approver="manager")


async def test_one_record_per_employee(session, approved_run):
    records = await PaymentService(session).build_disbursement(approved_run.pay_run_id)

    assert len(records) == 2
    assert [r.employee_id for r in records] == sorted(r.employee_id for r in records)
    assert {r.employee_name for r in records} == {"Asha Rao", "Vikram Shah"}
    assert all(r.period == "2024-04" for r in records)
    assert PaymentService.total(records) == approved_run.total_net


async def test_record_serialization(session, approved_run):
    records = await PaymentService(session).build_disbursement(approved_run.pay_run_id)
    data = records[0].to_dict()

    assert data["pay_run_id"] == str(approved_run.pay_run_id)
    assert Decimal(data["net_amount"]) == records[0].net_amount


async def test_unapproved_run_is_rejected(session, inputs, settings, seeded_rates):
    inputs.add_employee("Asha Rao", Decimal("600000"))
    orchestrator = PayRunOrchestrator(session, inputs=inputs, settings=settings)
    pay_run = await orchestrator.create_pay_run(APRIL)
    await orchestrator.process_pay_run(pay_run.pay_run_id)

    with pytest.raises(InvalidTransitionError):
        await PaymentService(session).build_disbursement(pay_run.pay_run_id)


async def test_unknown_run(session):
    with pytest.raises(NotFoundError):
        await PaymentService(session).build_disbursement(uuid4())
