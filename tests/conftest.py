"""Pytest fixtures for salary engine tests."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from salary_engine.calculators.rate_resolver import RateResolver
from salary_engine.calculators.rates import RateConfiguration
from salary_engine.calculators.types import (
    AttendanceSummary,
    CompensationConfig,
    EmployeeSnapshot,
    InputAmount,
    Period,
)
from salary_engine.config import Settings
from salary_engine.models import Base

# Use in-memory SQLite for tests (with async support)
# For full Postgres features, use a test Postgres database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

RATES_PAYLOAD = {
    "currency_precision": 2,
    "retirement_fund": {"employee_rate": "0.12", "employer_rate": "0.12", "wage_ceiling": "15000"},
    "health_insurance": {
        "employee_rate": "0.0075",
        "employer_rate": "0.0325",
        "wage_ceiling": "21000",
    },
    "local_tax_slabs": [
        {"min": "0", "max": "25000", "amount": "0"},
        {"min": "25000.01", "max": None, "amount": "200"},
    ],
    "withholding": {
        "brackets": [
            {"min": "0", "max": "300000", "rate": "0"},
            {"min": "300000", "max": "700000", "rate": "0.05"},
            {"min": "700000", "max": None, "rate": "0.10"},
        ],
        "standard_deduction": "50000",
        "cess_rate": "0.04",
        "fiscal_year_start_month": 4,
    },
    "standard_hours_per_day": "8",
    "overtime_multiplier": "2",
    "overdue_penalty_rate": "0",
}

APRIL = Period(2024, 4)


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": TEST_DATABASE_URL,
        "engine_version": "1.0.0",
        "host": "127.0.0.1",
        "port": 8000,
        "debug": False,
        "log_level": "INFO",
        "max_workers": 4,
        "batch_deadline_seconds": 5.0,
        "default_working_days": 26,
    }
    values.update(overrides)
    return Settings(**values)


class FakeInputSource:
    """In-memory InputSource for orchestrator tests."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.employees: dict[UUID, EmployeeSnapshot] = {}
        self.configs: dict[UUID, CompensationConfig] = {}
        self.attendances: dict[tuple[UUID, str], AttendanceSummary] = {}
        self.addition_amounts: dict[tuple[UUID, str], list[InputAmount]] = {}
        self.deduction_amounts: dict[tuple[UUID, str], list[InputAmount]] = {}

    def add_employee(
        self,
        name: str,
        annual_ctc: Decimal,
        period: Period | None = APRIL,
        payable_days: Decimal = Decimal("26"),
        non_payable_days: Decimal = Decimal("0"),
        employee_id: UUID | None = None,
        **config_overrides,
    ) -> UUID:
        employee_id = employee_id or uuid4()
        self.employees[employee_id] = EmployeeSnapshot(employee_id=employee_id, name=name)
        self.configs[employee_id] = CompensationConfig(
            employee_id=employee_id,
            annual_ctc=annual_ctc,
            basic_percent=config_overrides.pop("basic_percent", Decimal("50")),
            **config_overrides,
        )
        if period is not None:
            self.attendances[(employee_id, str(period))] = AttendanceSummary(
                employee_id=employee_id,
                period=period,
                total_working_days=Decimal("26"),
                payable_days=payable_days,
                non_payable_days=non_payable_days,
            )
        return employee_id

    async def _pause(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)

    async def active_employees(self, period: Period) -> list[EmployeeSnapshot]:
        return list(self.employees.values())

    async def compensation(self, employee_id: UUID, as_of: date) -> CompensationConfig | None:
        await self._pause()
        return self.configs.get(employee_id)

    async def attendance(self, employee_id: UUID, period: Period) -> AttendanceSummary | None:
        return self.attendances.get((employee_id, str(period)))

    async def additions(self, employee_id: UUID, period: Period) -> list[InputAmount]:
        return self.addition_amounts.get((employee_id, str(period)), [])

    async def other_deductions(self, employee_id: UUID, period: Period) -> list[InputAmount]:
        return self.deduction_amounts.get((employee_id, str(period)), [])


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def rates() -> RateConfiguration:
    """Rate configuration effective from April 2024."""
    return RateConfiguration.from_payload("FY2024-v1", date(2024, 4, 1), RATES_PAYLOAD)


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def seeded_rates(session: AsyncSession):
    """Store the test rate configuration as the only version."""
    record = await RateResolver(session).create_version(
        "FY2024-v1", date(2024, 4, 1), RATES_PAYLOAD, created_by="tests"
    )
    return record


@pytest.fixture
def inputs() -> FakeInputSource:
    return FakeInputSource()
