"""Line item builder with idempotent hashing."""

from __future__ import annotations

import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from salary_engine.calculators.types import LineCandidate, LineType

ZERO = Decimal("0")

# Line types that reduce net pay
DEDUCTION_TYPES = frozenset(
    {LineType.DEDUCTION, LineType.STATUTORY, LineType.TAX, LineType.RECOVERY}
)


def quantum(precision: int) -> Decimal:
    """Smallest currency unit for the precision (2 -> 0.01)."""
    return Decimal(1).scaleb(-precision)


def round_money(amount: Decimal, precision: int = 2) -> Decimal:
    """Round half-up to the currency precision."""
    return Decimal(amount).quantize(quantum(precision), rounding=ROUND_HALF_UP)


class LineItemBuilder:
    """Builds line items with deterministic hashing for idempotency.

    Sign conventions (non-negotiable):
    - EARNING: positive
    - DEDUCTION, STATUTORY, TAX, RECOVERY (employee): negative
    - EMPLOYER_CONTRIBUTION: positive (liability, excluded from net)

    Every amount is rounded half-up to the configured currency precision at
    the moment the line is built, so sums of lines are exact.
    """

    def __init__(self, precision: int = 2):
        self.precision = precision

    def round(self, amount: Decimal) -> Decimal:
        return round_money(amount, self.precision)

    @staticmethod
    def compute_line_hash(line: LineCandidate) -> str:
        """Compute deterministic hash for a line item.

        The hash is based on the canonical representation of defining fields,
        ensuring identical inputs produce identical hashes.
        """
        canonical = line.to_canonical_dict()
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    def earning(
        self,
        code: str,
        amount: Decimal,
        quantity: Decimal | None = None,
        rate: Decimal | None = None,
        explanation: str | None = None,
    ) -> LineCandidate:
        """Create an earning line item (positive amount)."""
        return LineCandidate(
            line_type=LineType.EARNING,
            code=code,
            amount=self.round(abs(amount)),
            quantity=quantity,
            rate=rate,
            explanation=explanation,
        )

    def deduction(
        self,
        code: str,
        amount: Decimal,
        line_type: LineType = LineType.DEDUCTION,
        quantity: Decimal | None = None,
        rate: Decimal | None = None,
        ledger_account_id: UUID | None = None,
        explanation: str | None = None,
    ) -> LineCandidate:
        """Create an employee deduction line item (negative amount)."""
        if line_type not in DEDUCTION_TYPES:
            raise ValueError(f"{line_type.value} is not a deduction line type")
        return LineCandidate(
            line_type=line_type,
            code=code,
            amount=-self.round(abs(amount)),
            quantity=quantity,
            rate=rate,
            ledger_account_id=ledger_account_id,
            explanation=explanation,
        )

    def employer_contribution(
        self,
        code: str,
        amount: Decimal,
        rate: Decimal | None = None,
        explanation: str | None = None,
    ) -> LineCandidate:
        """Create an employer contribution line item (positive amount, liability)."""
        return LineCandidate(
            line_type=LineType.EMPLOYER_CONTRIBUTION,
            code=code,
            amount=self.round(abs(amount)),
            rate=rate,
            explanation=explanation,
        )

    @staticmethod
    def calculate_gross_from_lines(lines: list[LineCandidate]) -> Decimal:
        """GROSS = sum(EARNING)."""
        return sum((line.amount for line in lines if line.line_type == LineType.EARNING), ZERO)

    @staticmethod
    def calculate_deductions_from_lines(lines: list[LineCandidate]) -> Decimal:
        """Total employee deductions as a positive amount."""
        return -sum(
            (line.amount for line in lines if line.line_type in DEDUCTION_TYPES), ZERO
        )

    @staticmethod
    def calculate_net_from_lines(lines: list[LineCandidate]) -> Decimal:
        """Calculate net pay from line items.

        NET = sum(EARNING) + sum(DEDUCTION) + sum(STATUTORY) + sum(TAX) + sum(RECOVERY)

        Note: EMPLOYER_CONTRIBUTION is excluded from net calculation (it's a liability).
        """
        return sum(
            (line.amount for line in lines if line.line_type != LineType.EMPLOYER_CONTRIBUTION),
            ZERO,
        )

    @staticmethod
    def calculate_employer_from_lines(lines: list[LineCandidate]) -> Decimal:
        return sum(
            (line.amount for line in lines if line.line_type == LineType.EMPLOYER_CONTRIBUTION),
            ZERO,
        )

    @staticmethod
    def validate_line_signs(lines: list[LineCandidate]) -> list[str]:
        """Validate that all line items have correct signs.

        Returns list of error messages (empty if all valid).
        """
        errors: list[str] = []

        for i, line in enumerate(lines):
            if line.line_type in (LineType.EARNING, LineType.EMPLOYER_CONTRIBUTION):
                if line.amount < 0:
                    errors.append(
                        f"Line {i} ({line.line_type.value}) has negative amount {line.amount}, expected positive"
                    )
            elif line.amount > 0:
                errors.append(
                    f"Line {i} ({line.line_type.value}) has positive amount {line.amount}, expected negative"
                )

        return errors
