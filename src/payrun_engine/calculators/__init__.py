"""Payroll calculation pipeline."""

from payrun_engine.calculators.aggregator import RecordAggregator, RecordTotals
from payrun_engine.calculators.component_resolver import ComponentResolver
from payrun_engine.calculators.engine import (
    CalculationResult,
    EmployeeInputs,
    PayrollCalculator,
)
from payrun_engine.calculators.overtime import OvertimeCalculator
from payrun_engine.calculators.proration import ProRationCalculator
from payrun_engine.calculators.tax_engine import TaxEngine, parse_tax_brackets

__all__ = [
    "RecordAggregator",
    "RecordTotals",
    "ComponentResolver",
    "CalculationResult",
    "EmployeeInputs",
    "PayrollCalculator",
    "OvertimeCalculator",
    "ProRationCalculator",
    "TaxEngine",
    "parse_tax_brackets",
]
