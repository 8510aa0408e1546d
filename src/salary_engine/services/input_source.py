"""Inputs owned by upstream systems: employees, compensation, attendance."""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.types import (
    AttendanceSummary,
    CompensationConfig,
    EmployeeSnapshot,
    InputAmount,
    Period,
)
from salary_engine.models import (
    AttendanceSummaryRecord,
    CompensationConfigRecord,
    Employee,
    PayAdjustment,
)


class InputSource(Protocol):
    """Read-only view of the data the orchestrator consumes.

    Implementations must be safe to call concurrently from the worker pool.
    """

    async def active_employees(self, period: Period) -> list[EmployeeSnapshot]: ...

    async def compensation(self, employee_id: UUID, as_of: date) -> CompensationConfig | None: ...

    async def attendance(self, employee_id: UUID, period: Period) -> AttendanceSummary | None: ...

    async def additions(self, employee_id: UUID, period: Period) -> list[InputAmount]: ...

    async def other_deductions(self, employee_id: UUID, period: Period) -> list[InputAmount]: ...


class SqlInputSource:
    """InputSource backed by the local ``employee``, ``compensation_config``,
    ``attendance_summary`` and ``pay_adjustment`` tables.

    An AsyncSession must not run two statements at once, so every query goes
    through a lock.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._lock = asyncio.Lock()

    async def _scalars(self, stmt) -> list:
        async with self._lock:
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

    async def active_employees(self, period: Period) -> list[EmployeeSnapshot]:
        employees = await self._scalars(
            select(Employee)
            .where(Employee.hire_date <= period.end_date)
            .order_by(Employee.employee_id)
        )
        return [e.snapshot() for e in employees if e.is_on_roll(period)]

    async def compensation(self, employee_id: UUID, as_of: date) -> CompensationConfig | None:
        rows = await self._scalars(
            select(CompensationConfigRecord)
            .where(
                CompensationConfigRecord.employee_id == employee_id,
                CompensationConfigRecord.effective_from <= as_of,
            )
            .order_by(CompensationConfigRecord.effective_from.desc())
            .limit(1)
        )
        return rows[0].to_domain() if rows else None

    async def attendance(self, employee_id: UUID, period: Period) -> AttendanceSummary | None:
        rows = await self._scalars(
            select(AttendanceSummaryRecord).where(
                AttendanceSummaryRecord.employee_id == employee_id,
                AttendanceSummaryRecord.period == str(period),
            )
        )
        return rows[0].to_domain() if rows else None

    async def additions(self, employee_id: UUID, period: Period) -> list[InputAmount]:
        return await self._adjustments(employee_id, period, "addition")

    async def other_deductions(self, employee_id: UUID, period: Period) -> list[InputAmount]:
        return await self._adjustments(employee_id, period, "deduction")

    async def _adjustments(self, employee_id: UUID, period: Period, kind: str) -> list[InputAmount]:
        rows = await self._scalars(
            select(PayAdjustment)
            .where(
                PayAdjustment.employee_id == employee_id,
                PayAdjustment.period == str(period),
                PayAdjustment.kind == kind,
            )
            .order_by(PayAdjustment.code, PayAdjustment.pay_adjustment_id)
        )
        return [r.to_domain() for r in rows]
