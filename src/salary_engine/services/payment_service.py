"""Disbursement record generation service."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.errors import InvalidTransitionError, NotFoundError
from salary_engine.models import PayRun
from salary_engine.services.state_machine import PayRunStatus

DISBURSABLE_STATUSES = frozenset({PayRunStatus.APPROVED.value, PayRunStatus.PAID.value})


@dataclass(frozen=True)
class DisbursementRecord:
    """One employee's net payment, ready for a bank file."""

    employee_id: UUID
    employee_name: str
    net_amount: Decimal
    period: str
    pay_run_id: UUID

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "employee_name": self.employee_name,
            "net_amount": str(self.net_amount),
            "period": self.period,
            "pay_run_id": str(self.pay_run_id),
        }


class PaymentService:
    """Service for producing disbursement records.

    Records are built from the pay lines of an approved or paid run, one per
    employee with a positive net, ordered by employee id. Nothing is
    transmitted; a downstream bank integration consumes the records.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def build_disbursement(self, pay_run_id: UUID) -> list[DisbursementRecord]:
        """Build the disbursement records for a pay run.

        Raises:
            NotFoundError: If the pay run does not exist
            InvalidTransitionError: If the run is not approved or paid
        """
        result = await self.session.execute(select(PayRun).where(PayRun.pay_run_id == pay_run_id))
        pay_run = result.scalar_one_or_none()
        if pay_run is None:
            raise NotFoundError("Pay run", pay_run_id)

        if pay_run.status not in DISBURSABLE_STATUSES:
            raise InvalidTransitionError(
                pay_run.status,
                "disbursed",
                "only approved or paid runs can be disbursed",
            )

        records = [
            DisbursementRecord(
                employee_id=line.employee_id,
                employee_name=(line.employee_snapshot_json or {}).get("name", ""),
                net_amount=line.net,
                period=pay_run.period,
                pay_run_id=pay_run.pay_run_id,
            )
            for line in pay_run.lines
            if line.net > 0
        ]
        return sorted(records, key=lambda r: r.employee_id)

    @staticmethod
    def total(records: list[DisbursementRecord]) -> Decimal:
        return sum((r.net_amount for r in records), Decimal("0"))
