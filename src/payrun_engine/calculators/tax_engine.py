"""Income tax calculation.

Two methods are supported, selected per run:
- simple: one flat rate over taxable income
- advanced: progressive brackets, each slice of income taxed at its
  bracket's rate

Brackets and the flat rate come from configuration. Amounts are returned
unrounded; rounding happens once in the record aggregator.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from payrun_engine.calculators.types import (
    ZERO,
    CalculationMethod,
    ComponentType,
    ResolvedComponent,
    TaxBracket,
)
from payrun_engine.errors import ValidationError

INCOME_TAX_CODE = "INCOME_TAX"


def parse_tax_brackets(raw: Iterable[Mapping[str, object]]) -> tuple[TaxBracket, ...]:
    """Build and validate brackets from configuration dicts.

    Each dict has ``min``, ``max`` (None for the top bracket) and ``rate``.
    Brackets must start at 0, be contiguous, and have non-negative rates.

    Raises:
        ValidationError: If the bracket list is malformed
    """
    try:
        brackets = [
            TaxBracket(
                min_amount=Decimal(str(item["min"])),
                max_amount=Decimal(str(item["max"])) if item.get("max") is not None else None,
                rate=Decimal(str(item["rate"])),
            )
            for item in raw
        ]
    except (KeyError, InvalidOperation, TypeError) as e:
        raise ValidationError(f"Malformed tax bracket configuration: {e}") from e

    brackets.sort(key=lambda b: b.min_amount)
    if not brackets:
        raise ValidationError("Tax bracket configuration is empty")
    if brackets[0].min_amount != 0:
        raise ValidationError("First tax bracket must start at 0")

    for i, bracket in enumerate(brackets):
        if bracket.rate < 0:
            raise ValidationError(f"Tax bracket rate {bracket.rate} is negative")
        is_last = i == len(brackets) - 1
        if bracket.max_amount is None:
            if not is_last:
                raise ValidationError("Only the top tax bracket may be open-ended")
            continue
        if bracket.max_amount <= bracket.min_amount:
            raise ValidationError(
                f"Tax bracket {bracket.min_amount}-{bracket.max_amount} is empty"
            )
        if not is_last and brackets[i + 1].min_amount != bracket.max_amount:
            raise ValidationError(
                f"Tax brackets are not contiguous at {bracket.max_amount}"
            )

    return tuple(brackets)


def progressive_tax(income: Decimal, brackets: Sequence[TaxBracket]) -> Decimal:
    """Tax income slice by slice through sorted brackets."""
    if income <= 0:
        return ZERO

    total_tax = ZERO
    for bracket in brackets:
        if income <= bracket.min_amount:
            break
        upper = income if bracket.max_amount is None else min(income, bracket.max_amount)
        taxable_in_bracket = upper - bracket.min_amount
        if taxable_in_bracket > 0:
            total_tax += taxable_in_bracket * bracket.rate
    return total_tax


@dataclass
class TaxResult:
    """Tax lines for one employee."""

    taxable_income: Decimal
    lines: list[ResolvedComponent] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)


class TaxEngine:
    """Applies the run's tax method to taxable income."""

    def __init__(self, flat_rate: Decimal, brackets: Sequence[TaxBracket]):
        if flat_rate < 0:
            raise ValidationError(f"Flat tax rate {flat_rate} is negative")
        self.flat_rate = flat_rate
        self.brackets = tuple(sorted(brackets, key=lambda b: b.min_amount))

    def income_tax(self, taxable_income: Decimal, method: CalculationMethod) -> Decimal:
        if taxable_income <= 0:
            return ZERO
        if method == CalculationMethod.SIMPLE:
            return taxable_income * self.flat_rate
        return progressive_tax(taxable_income, self.brackets)

    def calculate(
        self,
        taxable_income: Decimal,
        method: CalculationMethod,
        tax_components: Iterable[ResolvedComponent] = (),
    ) -> TaxResult:
        """Compute income tax and merge in tax-type components.

        Args:
            taxable_income: Earned base plus taxable earnings
            method: simple (flat) or advanced (progressive)
            tax_components: Resolved components of type tax

        Returns:
            TaxResult with the income tax line first
        """
        result = TaxResult(taxable_income=taxable_income)

        if method == CalculationMethod.SIMPLE:
            details = {"source": "income_tax", "rate": str(self.flat_rate)}
        else:
            details = {"source": "income_tax", "brackets": len(self.brackets)}
        details["basis"] = str(taxable_income)

        result.lines.append(
            ResolvedComponent(
                code=INCOME_TAX_CODE,
                name="Income Tax",
                component_type=ComponentType.TAX,
                category="income_tax",
                amount=self.income_tax(taxable_income, method),
                calculation_method=method.value,
                is_taxable=False,
                source="income_tax",
                details=details,
            )
        )
        result.lines.extend(c for c in tax_components if c.component_type == ComponentType.TAX)
        return result
