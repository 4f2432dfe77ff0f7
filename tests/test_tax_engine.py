"""Unit tests for the income tax engine."""

from decimal import Decimal

import pytest

from payrun_engine.calculators.tax_engine import (
    INCOME_TAX_CODE,
    TaxEngine,
    parse_tax_brackets,
    progressive_tax,
)
from payrun_engine.calculators.types import (
    CalculationMethod,
    ComponentType,
    ResolvedComponent,
    TaxBracket,
)
from payrun_engine.config import DEFAULT_TAX_BRACKETS
from payrun_engine.errors import ValidationError

BRACKETS = parse_tax_brackets(DEFAULT_TAX_BRACKETS)


class TestProgressiveTaxCalculation:
    """Test progressive tax bracket calculations."""

    def test_single_bracket_calculation(self):
        """Single bracket applies to full income."""
        brackets = [TaxBracket(Decimal("0"), None, Decimal("0.10"))]
        assert progressive_tax(Decimal("1000"), brackets) == Decimal("100.00")

    def test_income_in_zero_bracket(self):
        assert progressive_tax(Decimal("54545.45"), BRACKETS) == Decimal("0")

    def test_multiple_bracket_calculation(self):
        """Each slice is taxed at its own bracket's rate."""
        # 100k at 0 + 100k at 6% + 50k at 12%
        assert progressive_tax(Decimal("250000"), BRACKETS) == Decimal("12000")

    def test_top_bracket(self):
        # 0 + 6000 + 12000 + 36000 + 60000 + 250000 * 0.36
        assert progressive_tax(Decimal("1000000"), BRACKETS) == Decimal("204000")

    def test_zero_and_negative_income(self):
        assert progressive_tax(Decimal("0"), BRACKETS) == Decimal("0")
        assert progressive_tax(Decimal("-50"), BRACKETS) == Decimal("0")


class TestParseTaxBrackets:
    """Bracket configuration validation."""

    def test_default_brackets(self):
        assert len(BRACKETS) == 6
        assert BRACKETS[0].min_amount == Decimal("0")
        assert BRACKETS[-1].max_amount is None

    def test_unsorted_input_is_sorted(self):
        brackets = parse_tax_brackets(
            [
                {"min": "1000", "max": None, "rate": "0.2"},
                {"min": "0", "max": "1000", "rate": "0.1"},
            ]
        )
        assert [b.min_amount for b in brackets] == [Decimal("0"), Decimal("1000")]

    @pytest.mark.parametrize(
        "raw, message",
        [
            ([], "empty"),
            ([{"min": "10", "max": None, "rate": "0.1"}], "start at 0"),
            (
                [
                    {"min": "0", "max": "100", "rate": "0.1"},
                    {"min": "150", "max": None, "rate": "0.2"},
                ],
                "not contiguous",
            ),
            (
                [
                    {"min": "0", "max": None, "rate": "0.1"},
                    {"min": "100", "max": None, "rate": "0.2"},
                ],
                "open-ended",
            ),
            ([{"min": "0", "max": None, "rate": "-0.1"}], "negative"),
            ([{"min": "0", "rate": "abc"}], "Malformed"),
        ],
    )
    def test_invalid_configuration(self, raw, message):
        with pytest.raises(ValidationError, match=message):
            parse_tax_brackets(raw)


class TestTaxEngine:
    """Simple and advanced methods."""

    def test_simple_flat_rate(self):
        engine = TaxEngine(Decimal("0.15"), BRACKETS)
        assert engine.income_tax(Decimal("54545.45"), CalculationMethod.SIMPLE) == Decimal(
            "8181.8175"
        )

    def test_advanced_uses_brackets(self):
        engine = TaxEngine(Decimal("0.15"), BRACKETS)
        assert engine.income_tax(Decimal("150000"), CalculationMethod.ADVANCED) == Decimal(
            "3000"
        )

    def test_calculate_puts_income_tax_first(self):
        engine = TaxEngine(Decimal("0.15"), BRACKETS)
        welfare = ResolvedComponent(
            code="WELFARE",
            name="Welfare fund",
            component_type=ComponentType.TAX,
            category="statutory",
            amount=Decimal("150"),
            calculation_method="fixed",
        )

        result = engine.calculate(Decimal("1000"), CalculationMethod.SIMPLE, [welfare])

        assert [line.code for line in result.lines] == [INCOME_TAX_CODE, "WELFARE"]
        assert result.lines[0].amount == Decimal("150")
        assert result.lines[0].details["rate"] == "0.15"
        assert result.total == Decimal("300")

    def test_negative_flat_rate_rejected(self):
        with pytest.raises(ValidationError):
            TaxEngine(Decimal("-0.01"), BRACKETS)
