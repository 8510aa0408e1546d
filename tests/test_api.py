"""API endpoint tests.

Runs the FastAPI app in-process against the in-memory test database. Each
request gets its own session, committed or rolled back like production.
"""

from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import RATES_PAYLOAD
from salary_engine.api.app import create_app, status_for
from salary_engine.api.dependencies import get_db_session
from salary_engine.errors import (
    BatchDeadlineExceededError,
    LedgerAccountClosedError,
    MissingConfigError,
    NotFoundError,
    PayRunLockedError,
)
from salary_engine.models import AttendanceSummaryRecord, CompensationConfigRecord, Employee

pytestmark = pytest.mark.asyncio

ACTOR = {"X-Actor-ID": "payroll-clerk"}
APPROVER = {"X-Actor-ID": "finance-manager"}


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def employee_id(session_factory) -> UUID:
    """One full-month employee on 600,000 CTC with April attendance."""
    async with session_factory() as session:
        employee = Employee(employee_number="E001", name="Asha Rao", hire_date=date(2023, 1, 9))
        session.add(employee)
        await session.flush()
        session.add_all(
            [
                CompensationConfigRecord(
                    employee_id=employee.employee_id,
                    annual_ctc=Decimal("600000"),
                    basic_percent=Decimal("50"),
                    effective_from=date(2024, 4, 1),
                ),
                AttendanceSummaryRecord(
                    employee_id=employee.employee_id,
                    period="2024-04",
                    total_working_days=Decimal("26"),
                    payable_days=Decimal("26"),
                ),
            ]
        )
        await session.commit()
        return employee.employee_id


@pytest.fixture
async def rates_published(client: AsyncClient) -> dict:
    response = await client.post(
        "/api/v1/rate-configurations",
        headers=ACTOR,
        json={"version": "FY2024-v1", "effective_from": "2024-04-01", "payload": RATES_PAYLOAD},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def create_run(client: AsyncClient, period: str = "2024-04") -> dict:
    response = await client.post("/api/v1/pay-runs", headers=ACTOR, json={"period": period})
    assert response.status_code == 201, response.text
    return response.json()


async def advance(client: AsyncClient, pay_run_id: str, action: str, headers=ACTOR, **kwargs):
    return await client.post(f"/api/v1/pay-runs/{pay_run_id}/{action}", headers=headers, **kwargs)


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert "engine_version" in data

    async def test_readiness_check(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_liveness_check(self, client: AsyncClient):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestRateConfigurations:
    async def test_publish_and_resolve(self, client: AsyncClient, rates_published):
        assert rates_published["created_by"] == "payroll-clerk"

        response = await client.get(
            "/api/v1/rate-configurations/effective", params={"as_of_date": "2024-06-30"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["version"] == "FY2024-v1"
        assert data["fingerprint"] == rates_published["payload_hash"]

    async def test_nothing_effective(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/rate-configurations/effective", params={"as_of_date": "2024-06-30"}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "RATE_CONFIGURATION_NOT_FOUND"

    async def test_invalid_payload(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/rate-configurations",
            json={"version": "broken", "effective_from": "2024-04-01", "payload": {}},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"

    async def test_list_versions(self, client: AsyncClient, rates_published):
        response = await client.get("/api/v1/rate-configurations")
        assert response.json()["total"] == 1


class TestPayRunWorkflow:
    """Draft through paid over HTTP."""

    async def test_create_pay_run(self, client: AsyncClient):
        data = await create_run(client)

        assert data["status"] == "draft"
        assert data["period"] == "2024-04"
        assert data["revision"] == 1
        assert data["created_by"] == "payroll-clerk"
        assert data["next_statuses"] == ["cancelled", "processed"]

    async def test_invalid_period(self, client: AsyncClient):
        response = await client.post("/api/v1/pay-runs", json={"period": "April"})
        assert response.status_code == 422

    async def test_duplicate_in_progress_run(self, client: AsyncClient):
        await create_run(client)
        response = await client.post("/api/v1/pay-runs", json={"period": "2024-04"})

        assert response.status_code == 409
        assert response.json()["code"] == "PAY_RUN_EXISTS"

    async def test_get_missing_pay_run(self, client: AsyncClient):
        response = await client.get(f"/api/v1/pay-runs/{uuid4()}")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_process_without_employees(self, client: AsyncClient, rates_published):
        run = await create_run(client)
        response = await advance(client, run["pay_run_id"], "process")

        assert response.status_code == 400
        assert response.json()["code"] == "NO_ELIGIBLE_EMPLOYEES"

    async def test_full_workflow(self, client: AsyncClient, rates_published, employee_id):
        run = await create_run(client)
        pay_run_id = run["pay_run_id"]

        response = await advance(client, pay_run_id, "process")
        assert response.status_code == 200, response.text
        processed = response.json()
        assert processed["status"] == "processed"
        assert processed["employee_count"] == 1
        assert Decimal(processed["total_net"]) == Decimal("46916.67")

        lines = (await client.get(f"/api/v1/pay-runs/{pay_run_id}/lines")).json()
        assert lines["total"] == 1
        line = lines["items"][0]
        assert line["employee_id"] == str(employee_id)
        assert line["items"][0]["code"] == "BASIC"

        assert (await advance(client, pay_run_id, "review")).json()["status"] == "in_review"

        approved = await advance(client, pay_run_id, "approve", headers=APPROVER)
        assert approved.json()["approved_by"] == "finance-manager"

        disbursement = (await client.get(f"/api/v1/pay-runs/{pay_run_id}/disbursement")).json()
        assert Decimal(disbursement["total_amount"]) == Decimal("46916.67")
        assert disbursement["records"][0]["employee_name"] == "Asha Rao"

        paid = (await advance(client, pay_run_id, "pay")).json()
        assert paid["status"] == "paid"
        assert paid["locked"] is True

        history = (await client.get(f"/api/v1/audit/pay_run/{pay_run_id}")).json()
        assert [e["action"] for e in history["items"]] == [
            "created",
            "status_change:draft:processed",
            "status_change:processed:in_review",
            "status_change:in_review:approved",
            "status_change:approved:paid",
        ]

    async def test_approve_requires_actor(self, client: AsyncClient, rates_published, employee_id):
        run = await create_run(client)
        await advance(client, run["pay_run_id"], "process")
        await advance(client, run["pay_run_id"], "review")

        response = await client.post(f"/api/v1/pay-runs/{run['pay_run_id']}/approve")
        assert response.status_code == 403
        assert response.json()["code"] == "NOT_AUTHORIZED"

    async def test_invalid_transition(self, client: AsyncClient):
        run = await create_run(client)
        response = await advance(client, run["pay_run_id"], "pay")

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    async def test_cancel(self, client: AsyncClient):
        run = await create_run(client)
        response = await advance(
            client, run["pay_run_id"], "cancel", json={"reason": "Duplicate run"}
        )

        data = response.json()
        assert data["status"] == "cancelled"
        assert data["cancel_reason"] == "Duplicate run"

    async def test_paid_run_is_locked(self, client: AsyncClient, rates_published, employee_id):
        run = await create_run(client)
        pay_run_id = run["pay_run_id"]
        await advance(client, pay_run_id, "process")
        await advance(client, pay_run_id, "review")
        await advance(client, pay_run_id, "approve", headers=APPROVER)
        await advance(client, pay_run_id, "pay")

        response = await advance(client, pay_run_id, "process")
        assert response.status_code == 409
        assert response.json()["code"] == "PAY_RUN_LOCKED"

        correction = await advance(client, pay_run_id, "correction")
        assert correction.status_code == 201
        assert correction.json()["revision"] == 2
        assert correction.json()["supersedes_pay_run_id"] == pay_run_id

    async def test_list_by_period(self, client: AsyncClient):
        await create_run(client, "2024-04")
        await create_run(client, "2024-05")

        response = await client.get("/api/v1/pay-runs", params={"period": "2024-05"})
        assert [r["period"] for r in response.json()["items"]] == ["2024-05"]

        bad = await client.get("/api/v1/pay-runs", params={"period": "May"})
        assert bad.status_code == 400


class TestLedgerEndpoints:
    async def test_loan_lifecycle(self, client: AsyncClient):
        employee = str(uuid4())
        response = await client.post(
            "/api/v1/ledger/loans",
            headers=ACTOR,
            json={
                "employee_id": employee,
                "principal": "55000",
                "installment_count": 12,
                "start_period": "2024-04",
            },
        )
        assert response.status_code == 201, response.text
        account = response.json()
        account_id = account["ledger_account_id"]
        assert account["account_type"] == "loan"
        assert Decimal(account["installment_amount"]) == Decimal("4583.33")

        schedule = (await client.get(f"/api/v1/ledger/accounts/{account_id}/schedule")).json()
        assert len(schedule["installments"]) == 12
        assert schedule["recoveries"] == []

        due = (
            await client.get(f"/api/v1/ledger/accounts/{account_id}/due", params={"period": "2024-05"})
        ).json()
        assert Decimal(due["amount"]) == Decimal("9166.66")
        assert due["installment_periods"] == ["2024-04", "2024-05"]

        listed = (
            await client.get("/api/v1/ledger/accounts", params={"employee_id": employee})
        ).json()
        assert listed["total"] == 1

    async def test_advance_prepay_and_write_off(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/ledger/advances",
            json={
                "employee_id": str(uuid4()),
                "principal": "10000",
                "recovery_amount": "3000",
                "start_period": "2024-04",
            },
        )
        account_id = response.json()["ledger_account_id"]

        too_much = await client.post(
            f"/api/v1/ledger/accounts/{account_id}/prepay",
            json={"amount": "20000", "period": "2024-04"},
        )
        assert too_much.status_code == 409
        assert too_much.json()["code"] == "PREPAYMENT_EXCEEDS_BALANCE"

        prepaid = await client.post(
            f"/api/v1/ledger/accounts/{account_id}/prepay",
            json={"amount": "4000", "period": "2024-04"},
        )
        assert Decimal(prepaid.json()["remaining_balance"]) == Decimal("6000")

        written_off = await client.post(
            f"/api/v1/ledger/accounts/{account_id}/write-off", json={"reason": "Settled"}
        )
        assert written_off.json()["status"] == "written_off"

    async def test_prepay_blocked_while_run_is_unpaid(
        self, client: AsyncClient, rates_published, employee_id
    ):
        response = await client.post(
            "/api/v1/ledger/loans",
            json={
                "employee_id": str(employee_id),
                "principal": "12000",
                "installment_count": 12,
                "start_period": "2024-04",
            },
        )
        account_id = response.json()["ledger_account_id"]
        run = await create_run(client)
        processed = await advance(client, run["pay_run_id"], "process")
        assert processed.json()["next_statuses"] == ["cancelled", "in_review", "processed"]

        blocked = await client.post(
            f"/api/v1/ledger/accounts/{account_id}/prepay",
            json={"amount": "500", "period": "2024-04"},
        )
        assert blocked.status_code == 409
        assert blocked.json()["code"] == "LEDGER_ACCOUNT_IN_USE"

    async def test_unknown_account(self, client: AsyncClient):
        response = await client.get(f"/api/v1/ledger/accounts/{uuid4()}")
        assert response.status_code == 404


class TestErrorMapping:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (NotFoundError("Pay run", "x"), 404),
            (PayRunLockedError(uuid4()), 409),
            (LedgerAccountClosedError(uuid4(), "closed"), 409),
            (BatchDeadlineExceededError(uuid4(), 1.0), 503),
            (MissingConfigError(uuid4()), 400),
        ],
    )
    async def test_status_for(self, error, expected):
        assert status_for(error) == expected
