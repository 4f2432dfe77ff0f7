"""Payroll calculation engine - per-employee pipeline."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from payrun_engine.calculators.aggregator import RecordAggregator, RecordTotals
from payrun_engine.calculators.component_resolver import ComponentResolver, sort_key
from payrun_engine.calculators.overtime import OvertimeCalculator
from payrun_engine.calculators.proration import ProRationCalculator
from payrun_engine.calculators.tax_engine import TaxEngine
from payrun_engine.calculators.types import (
    ZERO,
    AttendanceDay,
    CalculationMethod,
    ComponentCatalog,
    ComponentType,
    EmployeeSnapshot,
    OvertimeResult,
    PeriodWindow,
    ResolvedComponent,
)
from payrun_engine.errors import CalculationError

logger = logging.getLogger(__name__)

OVERTIME_CODE = "OVERTIME"


@dataclass(frozen=True)
class EmployeeInputs:
    """Everything the pipeline needs for one run member.

    ``snapshot`` or ``attendance`` is None when the provider had no data
    for the employee.
    """

    employee_id: UUID
    employee_code: str
    employee_name: str
    snapshot: EmployeeSnapshot | None
    attendance: Mapping[date, AttendanceDay] | None


@dataclass
class CalculationResult:
    """Result of calculating pay for one employee."""

    employee_id: UUID
    employee_code: str
    employee_name: str
    status: str  # calculated, error, excluded
    totals: RecordTotals | None = None
    components: list[ResolvedComponent] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    fingerprint: str = ""

    @property
    def success(self) -> bool:
        return self.status == "calculated"


class PayrollCalculator:
    """Runs the calculation pipeline for one employee at a time.

    Pipeline (stable order per employee):
    1) Pro-rate base salary against attendance
    2) Compute overtime from clock times
    3) Resolve and evaluate template and assignment components
    4) Compute taxable income and tax lines
    5) Aggregate and round totals once
    6) Fingerprint inputs and outputs

    Instances hold only read-only, run-wide configuration, so one instance
    is shared by every worker thread of a run.
    """

    def __init__(
        self,
        period: PeriodWindow,
        method: CalculationMethod,
        catalog: ComponentCatalog,
        tax_engine: TaxEngine,
        aggregator: RecordAggregator,
        holidays: frozenset[date] = frozenset(),
        as_of: date | None = None,
        engine_version: str = "1.0.0",
    ):
        self.period = period
        self.method = method
        self.holidays = holidays
        self.as_of = as_of or date.today()
        self.engine_version = engine_version
        self.resolver = ComponentResolver(catalog)
        self.proration = ProRationCalculator()
        self.overtime = OvertimeCalculator()
        self.tax_engine = tax_engine
        self.aggregator = aggregator

    async def calculate_all(
        self, inputs: Sequence[EmployeeInputs], workers: int = 4
    ) -> list[CalculationResult]:
        """Calculate every employee on a bounded thread pool.

        Results are returned in the order of ``inputs``.
        """
        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
            futures = [
                loop.run_in_executor(pool, self.calculate_employee, item) for item in inputs
            ]
            return list(await asyncio.gather(*futures))

    def calculate_employee(self, inputs: EmployeeInputs) -> CalculationResult:
        """Calculate pay for a single employee.

        Never raises: failures become an ``error`` result carrying the
        diagnostic message.
        """
        try:
            return self._calculate(inputs)
        except CalculationError as e:
            logger.warning(
                "Calculation failed for employee %s: %s", inputs.employee_code, e.message
            )
            return self._error_result(inputs, e.message)
        except Exception as e:
            logger.exception("Unexpected error calculating employee %s", inputs.employee_code)
            return self._error_result(inputs, f"Unexpected error: {e}")

    def _calculate(self, inputs: EmployeeInputs) -> CalculationResult:
        snapshot = inputs.snapshot
        if snapshot is None:
            raise CalculationError(
                "No compensation snapshot available for employee", inputs.employee_id
            )

        if not snapshot.is_active:
            return CalculationResult(
                employee_id=inputs.employee_id,
                employee_code=inputs.employee_code,
                employee_name=inputs.employee_name,
                status="excluded",
                notes=[f"Employee is {snapshot.employment_status}; excluded from run"],
            )

        attendance = inputs.attendance
        if attendance is None:
            if snapshot.attendance_affects_salary and self.as_of >= self.period.start_date:
                raise CalculationError(
                    f"No attendance data for period {self.period.start_date} to "
                    f"{self.period.end_date}",
                    snapshot.employee_id,
                )
            attendance = {}

        # 1) Pro-ration
        proration = self.proration.calculate(
            snapshot, self.period, attendance, self.holidays, self.as_of
        )

        # 2) Overtime
        overtime = self.overtime.calculate(snapshot, self.period, attendance, self.holidays)

        # 3) Components
        variables = {
            "basic_salary": snapshot.base_salary,
            "overtime_hours": overtime.total_hours,
            "worked_days": proration.worked_days,
            "hourly_rate": overtime.hourly_rate,
        }
        resolved = self.resolver.resolve(snapshot, self.period, variables)
        lines = [c for c in resolved if c.component_type != ComponentType.TAX]
        if overtime.total_pay > 0:
            lines.append(self._overtime_component(overtime))

        # 4) Tax
        taxable_income = proration.actual_earned_base + sum(
            (
                c.amount
                for c in lines
                if c.component_type == ComponentType.EARNING and c.is_taxable
            ),
            ZERO,
        )
        tax = self.tax_engine.calculate(
            taxable_income,
            self.method,
            [c for c in resolved if c.component_type == ComponentType.TAX],
        )
        lines.extend(tax.lines)
        lines.sort(key=sort_key)

        # 5) Aggregate
        totals = self.aggregator.aggregate(
            proration, lines, taxable_income, overtime.total_hours
        )

        result = CalculationResult(
            employee_id=inputs.employee_id,
            employee_code=inputs.employee_code,
            employee_name=inputs.employee_name,
            status="calculated",
            totals=totals,
            components=lines,
            notes=list(totals.notes),
        )
        # 6) Fingerprint
        result.fingerprint = self._compute_fingerprint(result)
        return result

    def _overtime_component(self, overtime: OvertimeResult) -> ResolvedComponent:
        by_category: dict[str, Decimal] = {}
        for day in overtime.days:
            by_category[day.category.value] = (
                by_category.get(day.category.value, ZERO) + day.hours
            )
        return ResolvedComponent(
            code=OVERTIME_CODE,
            name="Overtime",
            component_type=ComponentType.EARNING,
            category="overtime",
            amount=overtime.total_pay,
            calculation_method="overtime",
            is_taxable=True,
            source="overtime",
            details={
                "source": "overtime",
                "hours": str(overtime.total_hours),
                "hourly_rate": str(overtime.hourly_rate),
                "days": len(overtime.days),
                "hours_by_category": {k: str(v) for k, v in sorted(by_category.items())},
            },
        )

    def _error_result(self, inputs: EmployeeInputs, message: str) -> CalculationResult:
        return CalculationResult(
            employee_id=inputs.employee_id,
            employee_code=inputs.employee_code,
            employee_name=inputs.employee_name,
            status="error",
            errors=[message],
            notes=[message],
        )

    def _compute_fingerprint(self, result: CalculationResult) -> str:
        """Deterministic hash of the calculation's inputs and outputs."""
        totals = result.totals
        data: dict[str, Any] = {
            "engine_version": self.engine_version,
            "employee_id": str(result.employee_id),
            "period_id": str(self.period.period_id),
            "method": self.method.value,
            "as_of": str(min(self.as_of, self.period.end_date)),
            "totals": {
                "gross_salary": str(totals.gross_salary) if totals else None,
                "net_salary": str(totals.net_salary) if totals else None,
                "total_deductions": str(totals.total_deductions) if totals else None,
                "total_taxes": str(totals.total_taxes) if totals else None,
            },
            "components": [c.to_canonical_dict() for c in result.components],
        }
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()
