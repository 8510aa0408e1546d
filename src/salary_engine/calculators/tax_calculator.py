"""Statutory contribution and tax rules driven by a RateConfiguration."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from salary_engine.calculators.line_builder import round_money
from salary_engine.calculators.rates import RateConfiguration
from salary_engine.calculators.types import Period, TaxBracket, TaxToDate

ZERO = Decimal("0")


@dataclass(frozen=True)
class Contribution:
    """Employee and employer share of a statutory scheme."""

    employee: Decimal
    employer: Decimal

    @classmethod
    def none(cls) -> Contribution:
        return cls(ZERO, ZERO)


@dataclass(frozen=True)
class WithholdingResult:
    """Monthly withholding with the projection it was derived from."""

    monthly: Decimal
    projected_annual_income: Decimal
    annual_tax: Decimal
    remaining_periods: int


class TaxCalculator:
    """Applies one rate configuration.

    Every figure is rounded half-up to the configuration's currency precision
    as soon as it is computed.
    """

    def __init__(self, rates: RateConfiguration):
        self.rates = rates
        self.precision = rates.currency_precision

    def _round(self, amount: Decimal) -> Decimal:
        return round_money(amount, self.precision)

    def retirement_fund(self, basic: Decimal, opted_in: bool) -> Contribution:
        """Contribution on basic capped at the wage ceiling."""
        if not opted_in or basic <= 0:
            return Contribution.none()
        scheme = self.rates.retirement_fund
        wage = min(basic, scheme.wage_ceiling)
        return Contribution(
            employee=self._round(wage * scheme.employee_rate),
            employer=self._round(wage * scheme.employer_rate),
        )

    def health_insurance(self, gross: Decimal, opted_in: bool) -> Contribution:
        """Contribution on full gross, only below the (exclusive) ceiling.

        Eligibility is never re-derived here: an employee who is not opted in
        pays nothing even when gross drops below the ceiling.
        """
        scheme = self.rates.health_insurance
        if not opted_in or gross <= 0 or gross >= scheme.wage_ceiling:
            return Contribution.none()
        return Contribution(
            employee=self._round(gross * scheme.employee_rate),
            employer=self._round(gross * scheme.employer_rate),
        )

    def local_tax(self, gross: Decimal, applicable: bool) -> Decimal:
        """Fixed amount from the first slab containing gross."""
        if not applicable:
            return ZERO
        for slab in sorted(self.rates.local_tax_slabs, key=lambda s: s.min_amount):
            if slab.matches(gross):
                return self._round(slab.amount)
        return ZERO

    def remaining_periods(self, period: Period) -> int:
        """Periods left in the fiscal year, current one included."""
        start = self.rates.withholding.fiscal_year_start_month
        return 12 - ((period.month - start) % 12)

    def annual_tax(self, taxable_income: Decimal) -> Decimal:
        """Progressive tax on annual income plus cess."""
        base = self._round(self._calculate_progressive_tax(taxable_income, self.rates.withholding.brackets))
        cess = self._round(base * self.rates.withholding.cess_rate)
        return base + cess

    def monthly_withholding(
        self,
        taxable_gross: Decimal,
        period: Period,
        tax_to_date: TaxToDate | None = None,
    ) -> WithholdingResult:
        """Spread projected annual tax over the remaining periods.

        Projected income = taxable-to-date + current taxable gross for every
        remaining period, less the standard deduction. What was already
        withheld this fiscal year is subtracted before spreading.
        """
        ytd = tax_to_date or TaxToDate()
        remaining = self.remaining_periods(period)
        rules = self.rates.withholding

        projected = ytd.taxable_gross + taxable_gross * remaining - rules.standard_deduction
        projected = self._round(max(projected, ZERO))

        annual = self.annual_tax(projected)
        monthly = self._round((annual - ytd.tax_withheld) / remaining)
        return WithholdingResult(
            monthly=max(monthly, ZERO),
            projected_annual_income=projected,
            annual_tax=annual,
            remaining_periods=remaining,
        )

    @staticmethod
    def _calculate_progressive_tax(income: Decimal, brackets: tuple[TaxBracket, ...]) -> Decimal:
        """Calculate tax using progressive brackets."""
        if income <= 0:
            return ZERO

        total_tax = ZERO
        for bracket in sorted(brackets, key=lambda b: b.min_amount):
            if income <= bracket.min_amount:
                break
            upper = income if bracket.max_amount is None else min(income, bracket.max_amount)
            taxable_in_bracket = upper - bracket.min_amount
            if taxable_in_bracket > 0:
                total_tax += taxable_in_bracket * bracket.rate

        return total_tax
