"""Append-only audit trail."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Index, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from salary_engine.errors import ImmutableRecordError
from salary_engine.models.base import Base, TimestampMixin


class AuditEvent(Base, TimestampMixin):
    """Audit trail entry. Rows are never updated or deleted."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[str] = mapped_column(String, nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    actor: Mapped[str | None] = mapped_column(String, nullable=True)
    payload_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("audit_event_entity_idx", "entity_type", "entity_id"),
    )


@event.listens_for(AuditEvent, "before_update")
def _reject_update(mapper, connection, target: AuditEvent) -> None:
    raise ImmutableRecordError(f"Audit event {target.audit_event_id} is append-only")


@event.listens_for(AuditEvent, "before_delete")
def _reject_delete(mapper, connection, target: AuditEvent) -> None:
    raise ImmutableRecordError(f"Audit event {target.audit_event_id} is append-only")
