"""Append-only audit recorder."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.models import AuditEvent

if TYPE_CHECKING:
    from salary_engine.calculators.engine import CalculationResult
    from salary_engine.models import LedgerAccount, LedgerRecovery, PayRun

logger = logging.getLogger(__name__)


def to_jsonable(value: Any) -> Any:
    """Convert decimals, UUIDs and dates so a payload fits a JSON column."""
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID, date, datetime)):
        return str(value)
    return value


class AuditRecorder:
    """Records who did what, to which entity, with what result.

    Events are only ever inserted; the ORM rejects updates and deletes of
    ``AuditEvent`` rows.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        entity_type: str,
        entity_id: object,
        action: str,
        actor: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        event = AuditEvent(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor=actor,
            payload_json=to_jsonable(payload or {}),
        )
        self.session.add(event)
        await self.session.flush()
        logger.debug("audit %s %s %s by %s", entity_type, entity_id, action, actor)
        return event

    async def record_pay_line(
        self, pay_run_id: UUID, result: CalculationResult, actor: str | None = None
    ) -> AuditEvent:
        """Pay line creation with its full breakdown."""
        return await self.record(
            "pay_line",
            result.calculation_id,
            "created",
            actor,
            {"pay_run_id": pay_run_id, **result.breakdown()},
        )

    async def record_transition(
        self,
        pay_run: PayRun,
        from_status: str,
        to_status: str,
        actor: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        return await self.record(
            "pay_run",
            pay_run.pay_run_id,
            f"status_change:{from_status}:{to_status}",
            actor,
            {"period": pay_run.period, "revision": pay_run.revision, **(details or {})},
        )

    async def record_ledger_commit(
        self, account: LedgerAccount, recovery: LedgerRecovery, actor: str | None = None
    ) -> AuditEvent:
        return await self.record(
            "ledger_account",
            account.ledger_account_id,
            "recovery_committed",
            actor,
            {
                "period": recovery.period,
                "amount": recovery.amount,
                "principal": recovery.principal,
                "interest": recovery.interest,
                "penalty": recovery.penalty,
                "balance_after": recovery.balance_after,
                "pay_run_id": recovery.pay_run_id,
                "status": account.status,
            },
        )

    async def list_for_entity(self, entity_type: str, entity_id: object) -> list[AuditEvent]:
        """Events for one entity, oldest first."""
        result = await self.session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == str(entity_id),
            )
            .order_by(AuditEvent.audit_event_id)
        )
        return list(result.scalars().all())

    async def list_events(
        self,
        entity_type: str | None = None,
        action: str | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events first."""
        stmt = select(AuditEvent).order_by(AuditEvent.audit_event_id.desc()).limit(limit)
        if entity_type is not None:
            stmt = stmt.where(AuditEvent.entity_type == entity_type)
        if action is not None:
            stmt = stmt.where(AuditEvent.action == action)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
