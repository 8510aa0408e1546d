"""Tests for line item builder."""

from decimal import Decimal
from uuid import uuid4

import pytest

from salary_engine.calculators.line_builder import LineItemBuilder, round_money
from salary_engine.calculators.types import LineCandidate, LineType


class TestRounding:
    """Test half-up rounding to the currency precision."""

    def test_round_to_cents(self):
        """Test rounding to 2 decimal places."""
        assert round_money(Decimal("10.125")) == Decimal("10.13")
        assert round_money(Decimal("10.124")) == Decimal("10.12")
        assert round_money(Decimal("10.135")) == Decimal("10.14")

    def test_half_up_not_bankers(self):
        """0.5 always rounds away from zero."""
        assert round_money(Decimal("2.5"), 0) == Decimal("3")
        assert round_money(Decimal("3.5"), 0) == Decimal("4")

    def test_other_precisions(self):
        assert round_money(Decimal("1.23456"), 3) == Decimal("1.235")
        assert LineItemBuilder(precision=0).round(Decimal("99.5")) == Decimal("100")


class TestLineItemBuilder:
    """Test line item builder functionality."""

    def test_create_earning_line(self):
        """Test creating earning line (positive amount)."""
        line = LineItemBuilder().earning(
            "BASIC",
            Decimal("25000.004"),
            quantity=Decimal("26"),
            rate=Decimal("25000"),
            explanation="Basic for 26/26 days",
        )

        assert line.line_type == LineType.EARNING
        assert line.amount == Decimal("25000.00")
        assert line.quantity == Decimal("26")

    def test_create_deduction_line(self):
        """Test creating deduction line (negative amount)."""
        line = LineItemBuilder().deduction(
            "RETIREMENT_FUND", Decimal("1800"), line_type=LineType.STATUTORY
        )

        assert line.line_type == LineType.STATUTORY
        assert line.amount == Decimal("-1800.00")
        assert line.amount < 0

    def test_deduction_sign_is_normalized(self):
        """A negative input still produces a negative deduction."""
        line = LineItemBuilder().deduction("OTHER", Decimal("-50"))
        assert line.amount == Decimal("-50.00")

    def test_recovery_line_keeps_account(self):
        account_id = uuid4()
        line = LineItemBuilder().deduction(
            "LOAN", Decimal("4583.33"), line_type=LineType.RECOVERY, ledger_account_id=account_id
        )

        assert line.ledger_account_id == account_id
        assert line.amount == Decimal("-4583.33")

    def test_deduction_rejects_earning_type(self):
        with pytest.raises(ValueError):
            LineItemBuilder().deduction("BASIC", Decimal("10"), line_type=LineType.EARNING)

    def test_create_employer_contribution(self):
        """Test creating employer contribution (positive, liability)."""
        line = LineItemBuilder().employer_contribution("RETIREMENT_FUND_EMPLOYER", Decimal("1800"))

        assert line.line_type == LineType.EMPLOYER_CONTRIBUTION
        assert line.amount == Decimal("1800.00")


class TestLineHashing:
    """Test deterministic line hashing."""

    def test_hash_is_deterministic(self):
        """Same line produces same hash."""
        line1 = LineCandidate(LineType.EARNING, "BASIC", Decimal("25000.00"), quantity=Decimal("26"))
        line2 = LineCandidate(LineType.EARNING, "BASIC", Decimal("25000.00"), quantity=Decimal("26"))

        assert LineItemBuilder.compute_line_hash(line1) == LineItemBuilder.compute_line_hash(line2)

    def test_different_amount_produces_different_hash(self):
        line1 = LineCandidate(LineType.EARNING, "BASIC", Decimal("25000.00"))
        line2 = LineCandidate(LineType.EARNING, "BASIC", Decimal("25000.01"))

        assert LineItemBuilder.compute_line_hash(line1) != LineItemBuilder.compute_line_hash(line2)

    def test_explanation_not_part_of_hash(self):
        line1 = LineCandidate(LineType.EARNING, "BASIC", Decimal("1.00"), explanation="a")
        line2 = LineCandidate(LineType.EARNING, "BASIC", Decimal("1.00"), explanation="b")

        assert LineItemBuilder.compute_line_hash(line1) == LineItemBuilder.compute_line_hash(line2)


class TestTotals:
    """Test gross/net/deduction totals from lines."""

    @pytest.fixture
    def lines(self) -> list[LineCandidate]:
        builder = LineItemBuilder()
        return [
            builder.earning("BASIC", Decimal("25000")),
            builder.earning("SPECIAL_ALLOWANCE", Decimal("25000")),
            builder.deduction("RETIREMENT_FUND", Decimal("1800"), line_type=LineType.STATUTORY),
            builder.deduction("LOCAL_TAX", Decimal("200"), line_type=LineType.STATUTORY),
            builder.deduction("WITHHOLDING_TAX", Decimal("1083.33"), line_type=LineType.TAX),
            builder.deduction("LOAN", Decimal("4583.33"), line_type=LineType.RECOVERY),
            builder.employer_contribution("RETIREMENT_FUND_EMPLOYER", Decimal("1800")),
        ]

    def test_gross(self, lines):
        assert LineItemBuilder.calculate_gross_from_lines(lines) == Decimal("50000.00")

    def test_deductions_positive_total(self, lines):
        assert LineItemBuilder.calculate_deductions_from_lines(lines) == Decimal("7666.66")

    def test_net_excludes_employer_contributions(self, lines):
        net = LineItemBuilder.calculate_net_from_lines(lines)
        gross = LineItemBuilder.calculate_gross_from_lines(lines)
        deductions = LineItemBuilder.calculate_deductions_from_lines(lines)

        assert net == Decimal("42333.34")
        assert net == gross - deductions

    def test_employer_total(self, lines):
        assert LineItemBuilder.calculate_employer_from_lines(lines) == Decimal("1800.00")

    def test_validate_line_signs(self, lines):
        assert LineItemBuilder.validate_line_signs(lines) == []

        bad = [LineCandidate(LineType.TAX, "WITHHOLDING_TAX", Decimal("10"))]
        errors = LineItemBuilder.validate_line_signs(bad)
        assert len(errors) == 1
        assert "expected negative" in errors[0]
