"""Component resolution.

Resolves the earnings, deductions and taxes that apply to one employee in
one period, and evaluates each to an unrounded amount.

Sources, in order of precedence within a component type:
1. Component templates (company-wide, targeted by ``applies_to``)
2. Employee allowance/deduction assignments
3. System lines generated by the pipeline (overtime, income tax)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal

from payrun_engine.calculators.formula import evaluate_formula
from payrun_engine.calculators.types import (
    ZERO,
    AllowanceAssignment,
    AppliesTo,
    AppliesToAll,
    AppliesToDepartment,
    AppliesToEmployees,
    CalculationType,
    ComponentCatalog,
    ComponentTemplateDef,
    ComponentType,
    DeductionAssignment,
    EmployeeSnapshot,
    PeriodWindow,
    ResolvedComponent,
)
from payrun_engine.errors import CalculationError

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

TYPE_ORDER: dict[ComponentType, int] = {
    ComponentType.EARNING: 0,
    ComponentType.DEDUCTION: 1,
    ComponentType.TAX: 2,
}

SOURCE_ORDER: dict[str, int] = {
    "template": 0,
    "allowance": 1,
    "deduction": 1,
    "overtime": 2,
    "income_tax": 2,
}


def applies_to_employee(applies_to: AppliesTo, snapshot: EmployeeSnapshot) -> bool:
    """Check whether a template's targeting matches the employee."""
    if isinstance(applies_to, AppliesToAll):
        return True
    if isinstance(applies_to, AppliesToDepartment):
        return snapshot.department_id == applies_to.department_id
    if isinstance(applies_to, AppliesToEmployees):
        return snapshot.employee_id in applies_to.employee_ids
    raise TypeError(f"Unknown applies_to variant: {applies_to!r}")


def sort_key(component: ResolvedComponent) -> tuple[int, int, str]:
    """Deterministic ordering: type, then source, then code."""
    return (
        TYPE_ORDER[component.component_type],
        SOURCE_ORDER.get(component.source, 3),
        component.code,
    )


class ComponentResolver:
    """Resolves and evaluates components for one employee.

    Stateless apart from the catalog, which is fetched once per run and
    shared read-only between workers.
    """

    def __init__(self, catalog: ComponentCatalog):
        self.catalog = catalog

    def resolve(
        self,
        snapshot: EmployeeSnapshot,
        period: PeriodWindow,
        variables: Mapping[str, Decimal],
    ) -> list[ResolvedComponent]:
        """Resolve all template and assignment components for an employee.

        Args:
            snapshot: Employee compensation configuration
            period: Period being calculated
            variables: Formula variables (basic_salary, overtime_hours,
                worked_days, hourly_rate)

        Returns:
            Components ordered earnings, deductions, taxes

        Raises:
            CalculationError: If a formula cannot be evaluated
        """
        resolved: list[ResolvedComponent] = []

        for template in self.catalog.templates:
            if not applies_to_employee(template.applies_to, snapshot):
                continue
            if not period.overlaps(template.effective_from, template.effective_to):
                continue
            resolved.append(self._evaluate_template(template, snapshot, variables))

        for allowance in self._active(
            self.catalog.allowances.get(snapshot.employee_id, ()), period
        ):
            resolved.append(self._evaluate_allowance(allowance, snapshot))

        for deduction in self._active(
            self.catalog.deductions.get(snapshot.employee_id, ()), period
        ):
            if deduction.remaining_installments == 0:
                continue
            resolved.append(self._evaluate_deduction(deduction, snapshot))

        return sorted(resolved, key=sort_key)

    @staticmethod
    def _active(
        assignments: Iterable[AllowanceAssignment | DeductionAssignment],
        period: PeriodWindow,
    ) -> Iterable:
        for assignment in assignments:
            if assignment.is_active and period.overlaps(
                assignment.effective_from, assignment.effective_to
            ):
                yield assignment

    def _evaluate_template(
        self,
        template: ComponentTemplateDef,
        snapshot: EmployeeSnapshot,
        variables: Mapping[str, Decimal],
    ) -> ResolvedComponent:
        details: dict = {"source": "template", "template_id": str(template.template_id)}

        if template.calculation_type == CalculationType.FIXED:
            amount = template.amount or ZERO
        elif template.calculation_type == CalculationType.PERCENTAGE:
            rate = template.percentage or ZERO
            amount = snapshot.base_salary * rate / HUNDRED
            details.update({"rate": str(rate), "basis": str(snapshot.base_salary)})
        elif template.calculation_type == CalculationType.FORMULA:
            if not template.formula:
                raise CalculationError(
                    f"Component {template.code} has no formula", snapshot.employee_id
                )
            try:
                amount = evaluate_formula(template.formula, variables)
            except CalculationError as e:
                raise CalculationError(
                    f"Component {template.code}: {e.message}", snapshot.employee_id
                ) from e
            details["formula"] = template.formula
        else:
            raise CalculationError(
                f"Unknown calculation type {template.calculation_type!r} "
                f"for component {template.code}",
                snapshot.employee_id,
            )

        return ResolvedComponent(
            code=template.code,
            name=template.name,
            component_type=template.component_type,
            category=template.category,
            amount=_clamp(amount, template.code),
            calculation_method=template.calculation_type.value,
            is_taxable=template.is_taxable,
            source="template",
            source_id=template.template_id,
            details=details,
        )

    def _evaluate_allowance(
        self, allowance: AllowanceAssignment, snapshot: EmployeeSnapshot
    ) -> ResolvedComponent:
        amount, method, details = _assignment_amount(
            allowance.amount, allowance.is_percentage, snapshot
        )
        details.update({"source": "allowance", "assignment_id": str(allowance.assignment_id)})
        return ResolvedComponent(
            code=allowance.type_code,
            name=allowance.name,
            component_type=ComponentType.EARNING,
            category="allowance",
            amount=_clamp(amount, allowance.type_code),
            calculation_method=method,
            is_taxable=allowance.is_taxable,
            source="allowance",
            source_id=allowance.assignment_id,
            details=details,
        )

    def _evaluate_deduction(
        self, deduction: DeductionAssignment, snapshot: EmployeeSnapshot
    ) -> ResolvedComponent:
        amount, method, details = _assignment_amount(
            deduction.amount, deduction.is_percentage, snapshot
        )
        details.update({"source": "deduction", "assignment_id": str(deduction.assignment_id)})
        if deduction.remaining_installments is not None:
            details["remaining_installments"] = deduction.remaining_installments
        return ResolvedComponent(
            code=deduction.type_code,
            name=deduction.name,
            component_type=ComponentType.DEDUCTION,
            category="deduction",
            amount=_clamp(amount, deduction.type_code),
            calculation_method=method,
            is_taxable=False,
            source="deduction",
            source_id=deduction.assignment_id,
            details=details,
        )


def _assignment_amount(
    amount: Decimal, is_percentage: bool, snapshot: EmployeeSnapshot
) -> tuple[Decimal, str, dict]:
    if is_percentage:
        value = snapshot.base_salary * amount / HUNDRED
        return value, "percentage", {"rate": str(amount), "basis": str(snapshot.base_salary)}
    return amount, "fixed", {}


def _clamp(amount: Decimal, code: str) -> Decimal:
    if amount < 0:
        logger.warning("Component %s evaluated to %s, clamped to 0", code, amount)
        return ZERO
    return amount
