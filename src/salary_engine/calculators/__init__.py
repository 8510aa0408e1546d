"""Salary calculation engine."""

from salary_engine.calculators.engine import CalculationResult, SalaryCalculator
from salary_engine.calculators.line_builder import LineItemBuilder, round_money
from salary_engine.calculators.rates import RateConfiguration
from salary_engine.calculators.tax_calculator import TaxCalculator
from salary_engine.calculators.types import Period

__all__ = [
    "CalculationResult",
    "LineItemBuilder",
    "Period",
    "RateConfiguration",
    "SalaryCalculator",
    "TaxCalculator",
    "round_money",
]
