"""Record aggregation and final rounding.

All intermediate amounts stay unrounded until this step. Each stored total
is rounded to the currency's minor unit with ROUND_HALF_EVEN exactly once,
and the derived figures are computed from the rounded totals so that

    gross_salary = actual_earned_base + total_earnings
    net_salary   = gross_salary - total_deductions - total_taxes

hold exactly on the persisted record.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_EVEN, Decimal

from payrun_engine.calculators.types import (
    ZERO,
    ComponentType,
    ProRationResult,
    ResolvedComponent,
)


def round_money(amount: Decimal, minor_unit: Decimal) -> Decimal:
    """Round to the minor unit using banker's rounding."""
    return amount.quantize(minor_unit, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class RecordTotals:
    """Rounded monetary figures for one payroll record."""

    base_salary: Decimal
    expected_base_salary: Decimal
    actual_earned_base: Decimal
    attendance_shortfall: Decimal
    worked_days: Decimal
    overtime_hours: Decimal
    total_earnings: Decimal
    total_deductions: Decimal
    total_taxes: Decimal
    gross_salary: Decimal
    taxable_income: Decimal
    net_salary: Decimal
    notes: list[str] = field(default_factory=list)


class RecordAggregator:
    """Sums component lines into record totals."""

    def __init__(self, minor_unit: Decimal = Decimal("0.01")):
        self.minor_unit = minor_unit

    def aggregate(
        self,
        proration: ProRationResult,
        components: Iterable[ResolvedComponent],
        taxable_income: Decimal,
        overtime_hours: Decimal = ZERO,
    ) -> RecordTotals:
        """Aggregate resolved components into rounded totals.

        ``components`` holds every line of the record: earnings (including
        overtime), deductions and taxes (including income tax).
        """
        earnings = ZERO
        deductions = ZERO
        taxes = ZERO
        for component in components:
            if component.component_type == ComponentType.EARNING:
                earnings += component.amount
            elif component.component_type == ComponentType.DEDUCTION:
                deductions += component.amount
            else:
                taxes += component.amount

        r = self.round
        expected = r(proration.expected_base_salary)
        actual = r(proration.actual_earned_base)
        total_earnings = r(earnings)
        total_deductions = r(deductions)
        total_taxes = r(taxes)

        gross = actual + total_earnings
        net = gross - total_deductions - total_taxes
        notes: list[str] = []
        if net < 0:
            notes.append(
                f"Net salary clamped to 0 (deductions and taxes exceeded gross by {-net})"
            )
            net = ZERO.quantize(self.minor_unit)

        return RecordTotals(
            base_salary=r(proration.base_salary),
            expected_base_salary=expected,
            actual_earned_base=actual,
            attendance_shortfall=max(ZERO, expected - actual),
            worked_days=r(proration.worked_days),
            overtime_hours=r(overtime_hours),
            total_earnings=total_earnings,
            total_deductions=total_deductions,
            total_taxes=total_taxes,
            gross_salary=gross,
            taxable_income=r(taxable_income),
            net_salary=net,
            notes=notes,
        )

    def round(self, amount: Decimal) -> Decimal:
        return round_money(amount, self.minor_unit)
