"""Salary calculation engine - per-employee computation."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from salary_engine.calculators.line_builder import LineItemBuilder, round_money
from salary_engine.calculators.rates import RateConfiguration
from salary_engine.calculators.tax_calculator import TaxCalculator
from salary_engine.calculators.types import (
    AttendanceSummary,
    CompensationConfig,
    EmployeeSnapshot,
    InputAmount,
    LedgerDue,
    LineCandidate,
    LineCode,
    LineType,
    Period,
    TaxToDate,
)
from salary_engine.config import get_settings
from salary_engine.errors import AttendanceInconsistentError, MissingConfigError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass
class CalculationResult:
    """Result of calculating pay for one employee."""

    employee_id: UUID
    calculation_id: UUID
    period: Period
    employee: EmployeeSnapshot
    attendance: AttendanceSummary
    rate_version: str
    rate_fingerprint: str
    engine_version: str
    gross: Decimal
    total_deductions: Decimal
    net: Decimal
    employer_contributions: Decimal
    taxable_gross: Decimal
    withholding_tax: Decimal
    lines: list[LineCandidate]
    inputs_fingerprint: str
    ledger_dues: list[LedgerDue] = field(default_factory=list)

    @property
    def negative_net(self) -> bool:
        return self.net < 0

    def canonical_lines(self) -> list[dict[str, Any]]:
        return [line.to_canonical_dict() for line in self.lines]

    def breakdown(self) -> dict[str, Any]:
        """Full breakdown for the audit trail."""
        return {
            "calculation_id": str(self.calculation_id),
            "employee": self.employee.to_dict(),
            "period": str(self.period),
            "attendance": self.attendance.to_dict(),
            "rate_version": self.rate_version,
            "gross": str(self.gross),
            "total_deductions": str(self.total_deductions),
            "net": str(self.net),
            "employer_contributions": str(self.employer_contributions),
            "negative_net": self.negative_net,
            "lines": self.canonical_lines(),
        }


class SalaryCalculator:
    """Per-employee salary calculator.

    Calculation pipeline (stable order per employee):
    1) Split monthly CTC into basic, housing, fixed and special allowance
    2) Pro-rate components by days on roll
    3) Overtime on full monthly basic
    4) One-off additions
    5) Retirement fund on pro-rated basic (capped at the wage ceiling)
    6) Health insurance on gross (only below the ceiling, only when opted in)
    7) Local tax slab and projected withholding tax
    8) Non-payable (loss-of-pay) deduction
    9) Ledger recoveries and other deductions
    10) Net = gross - deductions; negative net is flagged, not rejected

    The calculator is pure: all inputs are passed in, nothing is read from
    or written to storage.
    """

    def __init__(self, engine_version: str | None = None):
        self.engine_version = engine_version or get_settings().engine_version

    def compute(
        self,
        config: CompensationConfig | None,
        attendance: AttendanceSummary,
        rates: RateConfiguration,
        ledger_dues: Iterable[LedgerDue] = (),
        *,
        employee: EmployeeSnapshot | None = None,
        additions: Iterable[InputAmount] = (),
        other_deductions: Iterable[InputAmount] = (),
        tax_to_date: TaxToDate | None = None,
        period: Period | None = None,
        pay_run_id: UUID | None = None,
    ) -> CalculationResult:
        """Compute one employee's pay for a period.

        Raises:
            MissingConfigError: no usable compensation configuration
            AttendanceInconsistentError: attendance violates its invariants
        """
        employee_id = employee.employee_id if employee else attendance.employee_id
        employee = employee or EmployeeSnapshot(employee_id=employee_id, name=str(employee_id))
        period = period or attendance.period
        additions = list(additions)
        other_deductions = list(other_deductions)
        dues = sorted((d for d in ledger_dues if d.amount > 0), key=lambda d: str(d.account_id))

        config = self._validate(employee_id, config, attendance)

        builder = LineItemBuilder(rates.currency_precision)
        taxes = TaxCalculator(rates)
        lines: list[LineCandidate] = []

        # 1-2) Components, pro-rated by days on roll
        working_days = attendance.total_working_days
        days_on_roll = attendance.days_on_roll
        full = self._monthly_components(config, rates.currency_precision)
        component_gross = ZERO
        prorated: dict[str, Decimal] = {}
        for code, full_amount in full.items():
            amount = builder.round(full_amount * days_on_roll / working_days)
            prorated[code] = amount
            if amount > 0:
                lines.append(
                    builder.earning(
                        code,
                        amount,
                        quantity=days_on_roll,
                        rate=full_amount,
                        explanation=f"{code} for {days_on_roll}/{working_days} days",
                    )
                )
                component_gross += amount

        # 3) Overtime on full monthly basic
        if attendance.overtime_hours > 0:
            hourly = full[LineCode.BASIC] / working_days / rates.standard_hours_per_day
            overtime = builder.round(hourly * attendance.overtime_hours * rates.overtime_multiplier)
            if overtime > 0:
                lines.append(
                    builder.earning(
                        LineCode.OVERTIME,
                        overtime,
                        quantity=attendance.overtime_hours,
                        rate=round_money(hourly, 4),
                        explanation=f"Overtime at {rates.overtime_multiplier}x hourly basic",
                    )
                )

        # 4) One-off additions
        for addition in additions:
            if addition.amount > 0:
                lines.append(
                    builder.earning(addition.code, addition.amount, explanation=addition.description)
                )

        gross = builder.calculate_gross_from_lines(lines)

        # 5) Retirement fund on pro-rated basic
        rf = taxes.retirement_fund(prorated[LineCode.BASIC], config.retirement_fund_opt_in)
        if rf.employee > 0:
            lines.append(
                builder.deduction(
                    LineCode.RETIREMENT_FUND,
                    rf.employee,
                    line_type=LineType.STATUTORY,
                    rate=rates.retirement_fund.employee_rate,
                    explanation="Retirement fund (employee)",
                )
            )

        # 6) Health insurance on gross, ceiling exclusive
        hi = taxes.health_insurance(gross, config.health_insurance_opt_in)
        if hi.employee > 0:
            lines.append(
                builder.deduction(
                    LineCode.HEALTH_INSURANCE,
                    hi.employee,
                    line_type=LineType.STATUTORY,
                    rate=rates.health_insurance.employee_rate,
                    explanation="Health insurance (employee)",
                )
            )

        # 7) Local tax and withholding
        local_tax = taxes.local_tax(gross, config.local_tax_applicable)
        if local_tax > 0:
            lines.append(
                builder.deduction(
                    LineCode.LOCAL_TAX,
                    local_tax,
                    line_type=LineType.STATUTORY,
                    explanation="Local tax slab",
                )
            )

        # 8) Loss of pay on pro-rated components only
        non_payable = ZERO
        if attendance.non_payable_days > 0:
            non_payable = builder.round(
                component_gross / working_days * attendance.non_payable_days
            )

        taxable_gross = gross - non_payable
        withholding = taxes.monthly_withholding(taxable_gross, period, tax_to_date)
        if withholding.monthly > 0:
            lines.append(
                builder.deduction(
                    LineCode.WITHHOLDING_TAX,
                    withholding.monthly,
                    line_type=LineType.TAX,
                    explanation=(
                        f"Projected annual income {withholding.projected_annual_income}, "
                        f"annual tax {withholding.annual_tax} over "
                        f"{withholding.remaining_periods} periods"
                    ),
                )
            )

        if non_payable > 0:
            lines.append(
                builder.deduction(
                    LineCode.NON_PAYABLE,
                    non_payable,
                    quantity=attendance.non_payable_days,
                    explanation=f"Loss of pay for {attendance.non_payable_days} days",
                )
            )

        # 9) Ledger recoveries verbatim, then other deductions
        for due in dues:
            lines.append(
                builder.deduction(
                    LineCode.LOAN if due.account_type == "loan" else LineCode.ADVANCE,
                    due.amount,
                    line_type=LineType.RECOVERY,
                    ledger_account_id=due.account_id,
                    explanation=self._due_explanation(due),
                )
            )

        for deduction in other_deductions:
            if deduction.amount > 0:
                lines.append(
                    builder.deduction(
                        deduction.code, deduction.amount, explanation=deduction.description
                    )
                )

        # Employer contributions (excluded from net)
        if rf.employer > 0:
            lines.append(
                builder.employer_contribution(
                    LineCode.RETIREMENT_FUND_EMPLOYER,
                    rf.employer,
                    rate=rates.retirement_fund.employer_rate,
                    explanation="Retirement fund (employer)",
                )
            )
        if hi.employer > 0:
            lines.append(
                builder.employer_contribution(
                    LineCode.HEALTH_INSURANCE_EMPLOYER,
                    hi.employer,
                    rate=rates.health_insurance.employer_rate,
                    explanation="Health insurance (employer)",
                )
            )

        # 10) Net
        sign_errors = builder.validate_line_signs(lines)
        if sign_errors:
            raise ValueError(
                f"Line sign violation for employee {employee_id}: {'; '.join(sign_errors)}"
            )
        total_deductions = builder.calculate_deductions_from_lines(lines)
        net = builder.calculate_net_from_lines(lines)

        inputs_fingerprint = self._compute_inputs_fingerprint(
            {
                "config": config.to_canonical_dict(),
                "attendance": attendance.to_dict(),
                "employee": employee.to_dict(),
                "additions": [[a.code, str(a.amount)] for a in additions],
                "other_deductions": [[d.code, str(d.amount)] for d in other_deductions],
                "ledger_dues": [d.to_canonical_dict() for d in dues],
                "tax_to_date": (
                    [str(tax_to_date.taxable_gross), str(tax_to_date.tax_withheld)]
                    if tax_to_date
                    else None
                ),
            }
        )
        rate_fingerprint = rates.fingerprint()

        return CalculationResult(
            employee_id=employee_id,
            calculation_id=self._generate_calculation_id(
                pay_run_id, employee_id, period, inputs_fingerprint, rate_fingerprint
            ),
            period=period,
            employee=employee,
            attendance=attendance,
            rate_version=rates.version,
            rate_fingerprint=rate_fingerprint,
            engine_version=self.engine_version,
            gross=gross,
            total_deductions=total_deductions,
            net=net,
            employer_contributions=builder.calculate_employer_from_lines(lines),
            taxable_gross=taxable_gross,
            withholding_tax=withholding.monthly,
            lines=lines,
            inputs_fingerprint=inputs_fingerprint,
            ledger_dues=dues,
        )

    @staticmethod
    def _validate(
        employee_id: UUID,
        config: CompensationConfig | None,
        attendance: AttendanceSummary,
    ) -> CompensationConfig:
        if config is None:
            raise MissingConfigError(employee_id)
        if config.employee_id != employee_id:
            raise MissingConfigError(
                employee_id, f"configuration belongs to employee {config.employee_id}"
            )
        violations = config.violations()
        if violations:
            raise MissingConfigError(employee_id, "; ".join(violations))

        violations = attendance.violations()
        if violations:
            raise AttendanceInconsistentError(employee_id, violations)
        return config

    @staticmethod
    def _monthly_components(config: CompensationConfig, precision: int) -> dict[str, Decimal]:
        """Full-month components; special allowance takes the remainder."""
        monthly = round_money(config.annual_ctc / 12, precision)
        basic = round_money(monthly * config.basic_percent / HUNDRED, precision)
        housing = round_money(monthly * config.housing_percent / HUNDRED, precision)
        fixed = round_money(monthly * config.fixed_allowance_percent / HUNDRED, precision)
        return {
            LineCode.BASIC: basic,
            LineCode.HOUSING: housing,
            LineCode.FIXED_ALLOWANCE: fixed,
            LineCode.SPECIAL_ALLOWANCE: max(monthly - basic - housing - fixed, ZERO),
        }

    @staticmethod
    def _due_explanation(due: LedgerDue) -> str:
        parts = [f"{due.account_type.capitalize()} recovery"]
        if due.periods:
            parts.append(f"for {', '.join(due.periods)}")
        if due.penalty > 0:
            parts.append(f"incl. penalty {due.penalty}")
        return " ".join(parts)

    def _generate_calculation_id(
        self,
        pay_run_id: UUID | None,
        employee_id: UUID,
        period: Period,
        inputs_fingerprint: str,
        rates_fingerprint: str,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "pay_run_id": str(pay_run_id) if pay_run_id else None,
            "employee_id": str(employee_id),
            "period": str(period),
            "engine_version": self.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
            "rates_fingerprint": rates_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])

    @staticmethod
    def _compute_inputs_fingerprint(inputs_data: dict[str, Any]) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        json_str = json.dumps(inputs_data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
