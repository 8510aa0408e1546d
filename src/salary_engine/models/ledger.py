"""Loan and salary-advance ledger models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
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
)
from sqlalchemy.orm import Mapped, mapped_column, object_session, relationship

from salary_engine.errors import ImmutableRecordError
from salary_engine.models.base import Base, TimestampMixin

ZERO = Decimal("0")


class LedgerAccount(Base, TimestampMixin):
    """Outstanding amount recovered from pay in per-period installments."""

    __tablename__ = "ledger_account"

    ledger_account_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    account_type: Mapped[str] = mapped_column(String, nullable=False)
    principal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    annual_interest_rate: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), nullable=False, default=ZERO
    )
    installment_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    installment_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    penalty_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False, default=ZERO)
    start_period: Mapped[str] = mapped_column(String(7), nullable=False)
    total_recovered: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    remaining_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    close_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("account_type IN ('loan', 'advance')", name="ledger_account_type_check"),
        CheckConstraint(
            "status IN ('active', 'completed', 'foreclosed', 'written_off')",
            name="ledger_account_status_check",
        ),
        CheckConstraint("principal > 0", name="ledger_account_principal_check"),
        CheckConstraint("remaining_balance >= 0", name="ledger_account_balance_check"),
    )

    __mapper_args__ = {
        "polymorphic_on": "account_type",
        "polymorphic_abstract": True,
    }

    # Relationships
    installments: Mapped[list[LedgerInstallment]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="LedgerInstallment.sequence",
        lazy="selectin",
    )
    recoveries: Mapped[list[LedgerRecovery]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="LedgerRecovery.period",
        lazy="selectin",
    )
    prepayments: Mapped[list[LedgerPrepayment]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="LedgerPrepayment.created_at",
        lazy="selectin",
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def recovery_for(self, period: str) -> LedgerRecovery | None:
        return next((r for r in self.recoveries if r.period == period), None)


class LoanAccount(LedgerAccount):
    """Interest-bearing loan repaid in equal monthly installments (EMI)."""

    __mapper_args__ = {"polymorphic_identity": "loan"}

    @property
    def emi(self) -> Decimal:
        return self.installment_amount


class AdvanceAccount(LedgerAccount):
    """Interest-free salary advance recovered at a fixed amount per period."""

    __mapper_args__ = {"polymorphic_identity": "advance"}

    @property
    def recovery_amount(self) -> Decimal:
        return self.installment_amount


class LedgerInstallment(Base):
    """Scheduled installment; committed rows are never regenerated."""

    __tablename__ = "ledger_installment"

    ledger_installment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    ledger_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("ledger_account.ledger_account_id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    principal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    interest: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    closing_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    committed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    committed_period: Mapped[str | None] = mapped_column(String(7), nullable=True)

    __table_args__ = (
        UniqueConstraint("ledger_account_id", "sequence", name="ledger_installment_seq_unique"),
    )

    # Relationships
    account: Mapped[LedgerAccount] = relationship(back_populates="installments")


class LedgerRecovery(Base, TimestampMixin):
    """Committed recovery for one account in one period."""

    __tablename__ = "ledger_recovery"

    ledger_recovery_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    ledger_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("ledger_account.ledger_account_id", ondelete="CASCADE"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    principal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    interest: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    penalty: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    pay_run_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("ledger_account_id", "period", name="ledger_recovery_period_unique"),
    )

    # Relationships
    account: Mapped[LedgerAccount] = relationship(back_populates="recoveries")


class LedgerPrepayment(Base, TimestampMixin):
    """Out-of-payroll repayment that reduces the outstanding balance."""

    __tablename__ = "ledger_prepayment"

    ledger_prepayment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    ledger_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("ledger_account.ledger_account_id", ondelete="CASCADE"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    actor: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ledger_prepayment_amount_check"),
    )

    # Relationships
    account: Mapped[LedgerAccount] = relationship(back_populates="prepayments")


@event.listens_for(LedgerRecovery, "before_update")
def _reject_recovery_update(mapper, connection, target: LedgerRecovery) -> None:
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise ImmutableRecordError(f"Recovery {target.ledger_recovery_id} is immutable")
