"""Pay run, pay line, and line item models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, object_session, relationship

from salary_engine.errors import ImmutableRecordError, PayRunLockedError
from salary_engine.models.base import Base, TimestampMixin

ZERO = Decimal("0")


class PayRun(Base, TimestampMixin):
    """Monthly payroll run container.

    A period can have several revisions; at most one of them is in progress
    (draft, processed, in_review or approved) at a time.
    """

    __tablename__ = "pay_run"

    pay_run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    default_attendance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rate_version: Mapped[str | None] = mapped_column(String, nullable=True)
    failures_json: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    # Aggregates (recomputed on every processing pass)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_net: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_employer_contributions: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=ZERO
    )
    negative_net_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    supersedes_pay_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pay_run.pay_run_id"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("period", "revision", name="pay_run_period_revision_unique"),
        CheckConstraint(
            "status IN ('draft', 'processed', 'in_review', 'approved', 'paid', 'cancelled')",
            name="pay_run_status_check",
        ),
        CheckConstraint("revision >= 1", name="pay_run_revision_check"),
    )

    # Relationships
    lines: Mapped[list[PayLine]] = relationship(
        back_populates="pay_run",
        cascade="all, delete-orphan",
        order_by="PayLine.employee_id",
        lazy="selectin",
    )

    @property
    def failures(self) -> list[dict[str, Any]]:
        return list(self.failures_json or [])


class PayLine(Base, TimestampMixin):
    """Immutable per-employee result of a processing pass.

    The primary key is the deterministic calculation id, so reprocessing
    unchanged inputs reproduces the same line.
    """

    __tablename__ = "pay_line"

    pay_line_id: Mapped[UUID] = mapped_column(primary_key=True)
    pay_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_run.pay_run_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_snapshot_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    attendance_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    rate_version: Mapped[str] = mapped_column(String, nullable=False)
    rate_fingerprint: Mapped[str] = mapped_column(String, nullable=False)
    inputs_fingerprint: Mapped[str] = mapped_column(String, nullable=False)
    engine_version: Mapped[str] = mapped_column(String, nullable=False)

    gross: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    net: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    employer_contributions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    taxable_gross: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    withholding_tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    negative_net: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("pay_run_id", "employee_id", name="pay_line_run_employee_unique"),
    )

    # Relationships
    pay_run: Mapped[PayRun] = relationship(back_populates="lines")
    items: Mapped[list[PayLineItem]] = relationship(
        back_populates="pay_line",
        cascade="all, delete-orphan",
        order_by="PayLineItem.sequence",
        lazy="selectin",
    )

    @property
    def calculation_id(self) -> UUID:
        return self.pay_line_id

    def recovery_items(self) -> list[PayLineItem]:
        """Ledger recovery items, one per account."""
        return [i for i in self.items if i.ledger_account_id is not None]


class PayLineItem(Base):
    """Immutable pay line item."""

    __tablename__ = "pay_line_item"

    pay_line_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    pay_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_line.pay_line_id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    line_type: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 6), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    ledger_account_id: Mapped[UUID | None] = mapped_column(nullable=True)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    line_hash: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("pay_line_id", "sequence", name="pay_line_item_sequence_unique"),
        CheckConstraint(
            "line_type IN ('EARNING', 'DEDUCTION', 'STATUTORY', 'TAX', 'RECOVERY', "
            "'EMPLOYER_CONTRIBUTION')",
            name="pay_line_item_type_check",
        ),
    )

    # Relationships
    pay_line: Mapped[PayLine] = relationship(back_populates="items")


# ===== Immutability guards =====


def _reject_line_update(mapper, connection, target) -> None:
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise ImmutableRecordError(f"{type(target).__name__} rows are immutable")


event.listen(PayLine, "before_update", _reject_line_update)
event.listen(PayLineItem, "before_update", _reject_line_update)


@event.listens_for(PayRun, "before_update")
def _reject_locked_run_update(mapper, connection, target: PayRun) -> None:
    history = inspect(target).attrs.locked.history
    if True in history.unchanged or True in history.deleted:
        raise PayRunLockedError(target.pay_run_id)


@event.listens_for(PayRun, "before_delete")
def _reject_locked_run_delete(mapper, connection, target: PayRun) -> None:
    if target.locked:
        raise PayRunLockedError(target.pay_run_id)
