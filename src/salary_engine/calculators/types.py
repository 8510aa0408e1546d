"""Type definitions for calculation pipeline."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class LineType(str, Enum):
    """Pay line item types."""

    EARNING = "EARNING"
    DEDUCTION = "DEDUCTION"
    STATUTORY = "STATUTORY"
    TAX = "TAX"
    RECOVERY = "RECOVERY"
    EMPLOYER_CONTRIBUTION = "EMPLOYER_CONTRIBUTION"


class LineCode:
    """Stable codes for generated line items."""

    BASIC = "BASIC"
    HOUSING = "HOUSING"
    FIXED_ALLOWANCE = "FIXED_ALLOWANCE"
    SPECIAL_ALLOWANCE = "SPECIAL_ALLOWANCE"
    OVERTIME = "OVERTIME"
    NON_PAYABLE = "NON_PAYABLE"
    RETIREMENT_FUND = "RETIREMENT_FUND"
    HEALTH_INSURANCE = "HEALTH_INSURANCE"
    LOCAL_TAX = "LOCAL_TAX"
    WITHHOLDING_TAX = "WITHHOLDING_TAX"
    LOAN = "LOAN"
    ADVANCE = "ADVANCE"
    RETIREMENT_FUND_EMPLOYER = "RETIREMENT_FUND_EMPLOYER"
    HEALTH_INSURANCE_EMPLOYER = "HEALTH_INSURANCE_EMPLOYER"


@dataclass(frozen=True, order=True)
class Period:
    """A calendar month pay period."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month {self.month}")
        if self.year < 1900:
            raise ValueError(f"Invalid year {self.year}")

    @classmethod
    def parse(cls, value: str) -> Period:
        """Parse a 'YYYY-MM' string."""
        try:
            year, month = value.split("-")
            return cls(int(year), int(month))
        except ValueError as e:
            raise ValueError(f"Invalid period '{value}', expected YYYY-MM") from e

    @classmethod
    def from_date(cls, value: date) -> Period:
        return cls(value.year, value.month)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def index(self) -> int:
        """Months since year 0; used for period arithmetic."""
        return self.year * 12 + self.month - 1

    @property
    def start_date(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end_date(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def plus(self, months: int) -> Period:
        idx = self.index + months
        return Period(idx // 12, idx % 12 + 1)

    def next(self) -> Period:
        return self.plus(1)

    def previous(self) -> Period:
        return self.plus(-1)

    def months_since(self, other: Period) -> int:
        """Number of months from other to self (negative if other is later)."""
        return self.index - other.index

    def fiscal_year_start(self, start_month: int) -> Period:
        """First period of the fiscal year containing this period."""
        if self.month >= start_month:
            return Period(self.year, start_month)
        return Period(self.year - 1, start_month)


@dataclass(frozen=True)
class EmployeeSnapshot:
    """Employee details copied onto a pay line at computation time."""

    employee_id: UUID
    name: str
    department: str | None = None
    designation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "name": self.name,
            "department": self.department,
            "designation": self.designation,
        }


@dataclass(frozen=True)
class CompensationConfig:
    """Employee compensation structure (read-only input).

    Percentages are whole-number percentages of monthly CTC. Whatever the
    basic, housing and fixed-allowance shares leave over is paid as special
    allowance.
    """

    employee_id: UUID
    annual_ctc: Decimal
    basic_percent: Decimal
    housing_percent: Decimal = Decimal("0")
    fixed_allowance_percent: Decimal = Decimal("0")
    retirement_fund_opt_in: bool = True
    health_insurance_opt_in: bool = False
    local_tax_applicable: bool = True
    effective_from: date | None = None

    def violations(self) -> list[str]:
        """Return configuration problems (empty if usable)."""
        errors: list[str] = []
        if self.annual_ctc <= 0:
            errors.append(f"annual CTC must be positive, got {self.annual_ctc}")
        for name in ("basic_percent", "housing_percent", "fixed_allowance_percent"):
            value = getattr(self, name)
            if value < 0:
                errors.append(f"{name} must not be negative, got {value}")
        split = self.basic_percent + self.housing_percent + self.fixed_allowance_percent
        if split > 100:
            errors.append(f"component split {split}% exceeds 100%")
        if self.basic_percent <= 0:
            errors.append("basic_percent must be positive")
        return errors

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "annual_ctc": str(self.annual_ctc),
            "basic_percent": str(self.basic_percent),
            "housing_percent": str(self.housing_percent),
            "fixed_allowance_percent": str(self.fixed_allowance_percent),
            "retirement_fund_opt_in": self.retirement_fund_opt_in,
            "health_insurance_opt_in": self.health_insurance_opt_in,
            "local_tax_applicable": self.local_tax_applicable,
        }


@dataclass(frozen=True)
class AttendanceSummary:
    """Attendance totals for one employee in one period."""

    employee_id: UUID
    period: Period
    total_working_days: Decimal
    payable_days: Decimal
    non_payable_days: Decimal = Decimal("0")
    overtime_hours: Decimal = Decimal("0")
    is_default: bool = False

    @classmethod
    def full_month(cls, employee_id: UUID, period: Period, working_days: int) -> AttendanceSummary:
        """Default attendance: every working day payable."""
        days = Decimal(working_days)
        return cls(
            employee_id=employee_id,
            period=period,
            total_working_days=days,
            payable_days=days,
            is_default=True,
        )

    @property
    def days_on_roll(self) -> Decimal:
        """Days the employee was on the rolls (payable or loss-of-pay)."""
        return self.payable_days + self.non_payable_days

    def violations(self) -> list[str]:
        errors: list[str] = []
        if self.total_working_days <= 0:
            errors.append("total working days must be positive")
        for name in ("payable_days", "non_payable_days", "overtime_hours"):
            value = getattr(self, name)
            if value < 0:
                errors.append(f"{name} must not be negative, got {value}")
        if self.days_on_roll > self.total_working_days:
            errors.append(
                f"payable ({self.payable_days}) + non-payable ({self.non_payable_days}) "
                f"exceeds working days ({self.total_working_days})"
            )
        return errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "period": str(self.period),
            "total_working_days": str(self.total_working_days),
            "payable_days": str(self.payable_days),
            "non_payable_days": str(self.non_payable_days),
            "overtime_hours": str(self.overtime_hours),
            "is_default": self.is_default,
        }


@dataclass(frozen=True)
class InputAmount:
    """One-off addition (bonus, arrears, encashment) or other deduction."""

    code: str
    amount: Decimal
    description: str | None = None


@dataclass(frozen=True)
class TaxToDate:
    """Fiscal-year-to-date figures from earlier paid periods."""

    taxable_gross: Decimal = Decimal("0")
    tax_withheld: Decimal = Decimal("0")
    periods_paid: int = 0


@dataclass(frozen=True)
class LedgerDue:
    """Recovery amount owed on one ledger account for a period."""

    account_id: UUID
    account_type: str  # 'loan' | 'advance'
    amount: Decimal
    principal: Decimal = Decimal("0")
    interest: Decimal = Decimal("0")
    penalty: Decimal = Decimal("0")
    periods: tuple[str, ...] = ()
    already_committed: bool = False

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "account_id": str(self.account_id),
            "account_type": self.account_type,
            "amount": str(self.amount),
            "principal": str(self.principal),
            "interest": str(self.interest),
            "penalty": str(self.penalty),
            "periods": list(self.periods),
        }


@dataclass
class LineCandidate:
    """A candidate line item before persistence."""

    line_type: LineType
    code: str
    amount: Decimal  # Final amount (signed per conventions)

    # Quantity/rate (days, hours, percentages)
    quantity: Decimal | None = None
    rate: Decimal | None = None

    # Traceability
    ledger_account_id: UUID | None = None
    explanation: str | None = None

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "line_type": self.line_type.value,
            "code": self.code,
            "ledger_account_id": str(self.ledger_account_id) if self.ledger_account_id else None,
            "quantity": str(self.quantity) if self.quantity is not None else None,
            "rate": str(self.rate) if self.rate is not None else None,
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class TaxBracket:
    """Tax bracket for progressive taxation."""

    min_amount: Decimal
    max_amount: Decimal | None  # None = no upper limit
    rate: Decimal  # As decimal, e.g., 0.05 for 5%


@dataclass(frozen=True)
class LocalTaxSlab:
    """Fixed local tax amount for a gross salary range (inclusive bounds)."""

    min_amount: Decimal
    max_amount: Decimal | None
    amount: Decimal

    def matches(self, gross: Decimal) -> bool:
        return gross >= self.min_amount and (self.max_amount is None or gross <= self.max_amount)


@dataclass(frozen=True)
class SchemeRates:
    """Contribution rates and wage ceiling for a statutory scheme."""

    employee_rate: Decimal
    employer_rate: Decimal
    wage_ceiling: Decimal


@dataclass(frozen=True)
class WithholdingRules:
    """Annual withholding tax rules."""

    brackets: tuple[TaxBracket, ...] = ()
    standard_deduction: Decimal = Decimal("0")
    cess_rate: Decimal = Decimal("0")
    fiscal_year_start_month: int = 4
