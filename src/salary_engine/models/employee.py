"""Employee master data and monthly inputs."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salary_engine.calculators.types import (
    AttendanceSummary,
    CompensationConfig,
    EmployeeSnapshot,
    InputAmount,
    Period,
)
from salary_engine.models.base import Base, TimestampMixin


class Employee(Base, TimestampMixin):
    """Employee record."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    designation: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    hire_date: Mapped[date] = mapped_column(Date, nullable=False)
    termination_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'terminated')",
            name="employee_status_check",
        ),
        CheckConstraint(
            "termination_date IS NULL OR termination_date >= hire_date",
            name="employee_dates_check",
        ),
    )

    # Relationships
    compensation_configs: Mapped[list[CompensationConfigRecord]] = relationship(
        back_populates="employee"
    )

    def is_on_roll(self, period: Period) -> bool:
        """Check if employee is on the rolls for any part of the period."""
        if self.status == "inactive":
            return False
        if self.hire_date > period.end_date:
            return False
        if self.termination_date is not None and self.termination_date < period.start_date:
            return False
        return True

    def snapshot(self) -> EmployeeSnapshot:
        return EmployeeSnapshot(
            employee_id=self.employee_id,
            name=self.name,
            department=self.department,
            designation=self.designation,
        )


class CompensationConfigRecord(Base, TimestampMixin):
    """Effective-dated compensation structure for an employee."""

    __tablename__ = "compensation_config"

    compensation_config_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    annual_ctc: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    basic_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    housing_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    fixed_allowance_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    retirement_fund_opt_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    health_insurance_opt_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    local_tax_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "effective_from", name="compensation_config_unique"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="compensation_configs")

    def to_domain(self) -> CompensationConfig:
        return CompensationConfig(
            employee_id=self.employee_id,
            annual_ctc=Decimal(self.annual_ctc),
            basic_percent=Decimal(self.basic_percent),
            housing_percent=Decimal(self.housing_percent),
            fixed_allowance_percent=Decimal(self.fixed_allowance_percent),
            retirement_fund_opt_in=self.retirement_fund_opt_in,
            health_insurance_opt_in=self.health_insurance_opt_in,
            local_tax_applicable=self.local_tax_applicable,
            effective_from=self.effective_from,
        )


class AttendanceSummaryRecord(Base, TimestampMixin):
    """Monthly attendance totals captured upstream."""

    __tablename__ = "attendance_summary"

    attendance_summary_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    total_working_days: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    payable_days: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    non_payable_days: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    overtime_hours: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("0")
    )

    __table_args__ = (
        UniqueConstraint("employee_id", "period", name="attendance_summary_unique"),
    )

    def to_domain(self) -> AttendanceSummary:
        return AttendanceSummary(
            employee_id=self.employee_id,
            period=Period.parse(self.period),
            total_working_days=Decimal(self.total_working_days),
            payable_days=Decimal(self.payable_days),
            non_payable_days=Decimal(self.non_payable_days),
            overtime_hours=Decimal(self.overtime_hours),
        )


class PayAdjustment(Base, TimestampMixin):
    """One-off addition (bonus, arrears, encashment) or other deduction."""

    __tablename__ = "pay_adjustment"

    pay_adjustment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("kind IN ('addition', 'deduction')", name="pay_adjustment_kind_check"),
        CheckConstraint("amount >= 0", name="pay_adjustment_amount_check"),
    )

    def to_domain(self) -> InputAmount:
        return InputAmount(code=self.code, amount=Decimal(self.amount), description=self.description)
