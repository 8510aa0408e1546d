"""Effective-dated statutory rate configuration.

Rate configurations are stored as JSON payloads on
``rate_configuration_version`` rows with structure::

    {
        "currency_precision": 2,
        "retirement_fund": {"employee_rate": "0.12", "employer_rate": "0.12",
                            "wage_ceiling": "15000"},
        "health_insurance": {"employee_rate": "0.0075", "employer_rate": "0.0325",
                             "wage_ceiling": "21000"},
        "local_tax_slabs": [{"min": "0", "max": "25000", "amount": "0"},
                            {"min": "25000.01", "max": null, "amount": "200"}],
        "withholding": {
            "brackets": [{"min": "0", "max": "400000", "rate": "0"}, ...],
            "standard_deduction": "75000",
            "cess_rate": "0.04",
            "fiscal_year_start_month": 4
        },
        "standard_hours_per_day": "8",
        "overtime_multiplier": "2",
        "overdue_penalty_rate": "0"
    }

Monetary values and rates are strings so they round-trip through JSON as
exact decimals.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from salary_engine.calculators.types import (
    LocalTaxSlab,
    SchemeRates,
    TaxBracket,
    WithholdingRules,
)


def _dec(value: Any, field_name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid decimal for {field_name}: {value!r}") from e


def _opt_dec(value: Any, field_name: str) -> Decimal | None:
    return None if value is None else _dec(value, field_name)


def _opt_str(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True)
class RateConfiguration:
    """All statutory percentages, ceilings and slabs effective from a date."""

    version: str
    effective_from: date
    retirement_fund: SchemeRates
    health_insurance: SchemeRates
    local_tax_slabs: tuple[LocalTaxSlab, ...] = ()
    withholding: WithholdingRules = WithholdingRules()
    currency_precision: int = 2
    standard_hours_per_day: Decimal = Decimal("8")
    overtime_multiplier: Decimal = Decimal("2")
    overdue_penalty_rate: Decimal = Decimal("0")

    @classmethod
    def from_payload(
        cls, version: str, effective_from: date, payload: dict[str, Any]
    ) -> RateConfiguration:
        """Parse a stored JSON payload."""
        try:
            rf = payload["retirement_fund"]
            hi = payload["health_insurance"]
        except KeyError as e:
            raise ValueError(f"Rate configuration payload missing {e.args[0]!r}") from e

        wh = payload.get("withholding", {})
        config = cls(
            version=version,
            effective_from=effective_from,
            retirement_fund=SchemeRates(
                employee_rate=_dec(rf["employee_rate"], "retirement_fund.employee_rate"),
                employer_rate=_dec(rf["employer_rate"], "retirement_fund.employer_rate"),
                wage_ceiling=_dec(rf["wage_ceiling"], "retirement_fund.wage_ceiling"),
            ),
            health_insurance=SchemeRates(
                employee_rate=_dec(hi["employee_rate"], "health_insurance.employee_rate"),
                employer_rate=_dec(hi["employer_rate"], "health_insurance.employer_rate"),
                wage_ceiling=_dec(hi["wage_ceiling"], "health_insurance.wage_ceiling"),
            ),
            local_tax_slabs=tuple(
                LocalTaxSlab(
                    min_amount=_dec(s["min"], "local_tax_slabs.min"),
                    max_amount=_opt_dec(s.get("max"), "local_tax_slabs.max"),
                    amount=_dec(s["amount"], "local_tax_slabs.amount"),
                )
                for s in payload.get("local_tax_slabs", [])
            ),
            withholding=WithholdingRules(
                brackets=tuple(
                    TaxBracket(
                        min_amount=_dec(b["min"], "withholding.brackets.min"),
                        max_amount=_opt_dec(b.get("max"), "withholding.brackets.max"),
                        rate=_dec(b["rate"], "withholding.brackets.rate"),
                    )
                    for b in wh.get("brackets", [])
                ),
                standard_deduction=_dec(wh.get("standard_deduction", 0), "standard_deduction"),
                cess_rate=_dec(wh.get("cess_rate", 0), "cess_rate"),
                fiscal_year_start_month=int(wh.get("fiscal_year_start_month", 4)),
            ),
            currency_precision=int(payload.get("currency_precision", 2)),
            standard_hours_per_day=_dec(payload.get("standard_hours_per_day", 8), "standard_hours_per_day"),
            overtime_multiplier=_dec(payload.get("overtime_multiplier", 2), "overtime_multiplier"),
            overdue_penalty_rate=_dec(payload.get("overdue_penalty_rate", 0), "overdue_penalty_rate"),
        )
        errors = config.validate()
        if errors:
            raise ValueError("Invalid rate configuration: " + "; ".join(errors))
        return config

    def to_payload(self) -> dict[str, Any]:
        return {
            "currency_precision": self.currency_precision,
            "retirement_fund": {
                "employee_rate": str(self.retirement_fund.employee_rate),
                "employer_rate": str(self.retirement_fund.employer_rate),
                "wage_ceiling": str(self.retirement_fund.wage_ceiling),
            },
            "health_insurance": {
                "employee_rate": str(self.health_insurance.employee_rate),
                "employer_rate": str(self.health_insurance.employer_rate),
                "wage_ceiling": str(self.health_insurance.wage_ceiling),
            },
            "local_tax_slabs": [
                {"min": str(s.min_amount), "max": _opt_str(s.max_amount), "amount": str(s.amount)}
                for s in self.local_tax_slabs
            ],
            "withholding": {
                "brackets": [
                    {"min": str(b.min_amount), "max": _opt_str(b.max_amount), "rate": str(b.rate)}
                    for b in self.withholding.brackets
                ],
                "standard_deduction": str(self.withholding.standard_deduction),
                "cess_rate": str(self.withholding.cess_rate),
                "fiscal_year_start_month": self.withholding.fiscal_year_start_month,
            },
            "standard_hours_per_day": str(self.standard_hours_per_day),
            "overtime_multiplier": str(self.overtime_multiplier),
            "overdue_penalty_rate": str(self.overdue_penalty_rate),
        }

    def fingerprint(self) -> str:
        """Hash of the payload; recorded on every pay line."""
        json_str = json.dumps(self.to_payload(), sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    def validate(self) -> list[str]:
        """Return configuration problems (empty if usable)."""
        errors: list[str] = []
        if not 0 <= self.currency_precision <= 4:
            errors.append(f"currency_precision must be 0-4, got {self.currency_precision}")
        for name, scheme in (
            ("retirement_fund", self.retirement_fund),
            ("health_insurance", self.health_insurance),
        ):
            for rate_name in ("employee_rate", "employer_rate"):
                rate = getattr(scheme, rate_name)
                if not 0 <= rate <= 1:
                    errors.append(f"{name}.{rate_name} must be between 0 and 1, got {rate}")
            if scheme.wage_ceiling < 0:
                errors.append(f"{name}.wage_ceiling must not be negative")
        for slab in self.local_tax_slabs:
            if slab.amount < 0:
                errors.append(f"local tax slab amount must not be negative, got {slab.amount}")
            if slab.max_amount is not None and slab.max_amount < slab.min_amount:
                errors.append(f"local tax slab max {slab.max_amount} below min {slab.min_amount}")
        for bracket in self.withholding.brackets:
            if not 0 <= bracket.rate <= 1:
                errors.append(f"withholding bracket rate must be between 0 and 1, got {bracket.rate}")
        if not 1 <= self.withholding.fiscal_year_start_month <= 12:
            errors.append("fiscal_year_start_month must be 1-12")
        if self.standard_hours_per_day <= 0:
            errors.append("standard_hours_per_day must be positive")
        if self.overtime_multiplier < 0:
            errors.append("overtime_multiplier must not be negative")
        if self.overdue_penalty_rate < 0:
            errors.append("overdue_penalty_rate must not be negative")
        return errors
