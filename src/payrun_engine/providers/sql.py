"""SQLAlchemy-backed providers reading the HR platform tables."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from datetime import date, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.types import (
    AllowanceAssignment,
    AppliesTo,
    AppliesToAll,
    AppliesToDepartment,
    AppliesToEmployees,
    AttendanceDay,
    CalculationType,
    ComponentCatalog,
    ComponentTemplateDef,
    ComponentType,
    DeductionAssignment,
    EmployeeSnapshot,
    NotWorking,
    OvertimeConfig,
    PeriodWindow,
    WeekendDay,
    WorkSchedule,
    Working,
)
from payrun_engine.config import Settings, get_settings
from payrun_engine.errors import CalculationError
from payrun_engine.models import (
    AttendanceRecord,
    ComponentTemplate,
    Employee,
    EmployeeAllowance,
    EmployeeDeduction,
    Holiday,
)
from payrun_engine.providers.base import EmployeeFilters, EmployeeSummary

logger = logging.getLogger(__name__)


def parse_weekend_day(raw: dict[str, Any] | None) -> WeekendDay:
    """Convert one day of ``weekend_working_config`` to its variant."""
    if not raw or not raw.get("working"):
        return NotWorking()
    try:
        return Working(
            in_time=time.fromisoformat(raw["in_time"]),
            out_time=time.fromisoformat(raw["out_time"]),
            full_day_salary=bool(raw.get("full_day_salary", False)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CalculationError(f"Invalid weekend working configuration: {raw!r}") from e


def parse_applies_to(template: ComponentTemplate) -> AppliesTo:
    """Convert a template's targeting columns to the closed union."""
    if template.applies_to == "all":
        return AppliesToAll()
    if template.applies_to == "department":
        if template.applies_to_department_id is None:
            return AppliesToEmployees(frozenset())
        return AppliesToDepartment(template.applies_to_department_id)
    if template.applies_to == "employees":
        ids = template.applies_to_employee_ids or []
        return AppliesToEmployees(frozenset(UUID(str(i)) for i in ids))
    raise ValueError(f"Unknown applies_to {template.applies_to!r} on {template.code}")


class SqlEmployeeSnapshotProvider:
    """Reads employees and their compensation configuration."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    async def find_employees(
        self, tenant_id: UUID, filters: EmployeeFilters
    ) -> list[EmployeeSummary]:
        stmt = select(Employee).where(
            Employee.tenant_id == tenant_id,
            Employee.employment_status == "active",
        )
        if filters.department_id:
            stmt = stmt.where(Employee.department_id == filters.department_id)
        if filters.employee_type:
            stmt = stmt.where(Employee.employee_type == filters.employee_type)
        if filters.employee_ids:
            stmt = stmt.where(Employee.employee_id.in_(filters.employee_ids))
        stmt = stmt.order_by(Employee.employee_code)

        result = await self.session.execute(stmt)
        return [
            EmployeeSummary(
                employee_id=e.employee_id,
                employee_code=e.employee_code,
                employee_name=e.full_name,
                department_id=e.department_id,
                employee_type=e.employee_type,
            )
            for e in result.scalars().all()
        ]

    async def get_snapshots(
        self, tenant_id: UUID, employee_ids: Sequence[UUID]
    ) -> dict[UUID, EmployeeSnapshot]:
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(Employee).where(
                Employee.tenant_id == tenant_id,
                Employee.employee_id.in_(list(employee_ids)),
            )
        )
        snapshots: dict[UUID, EmployeeSnapshot] = {}
        for employee in result.scalars().all():
            try:
                snapshots[employee.employee_id] = self._to_snapshot(employee)
            except CalculationError as e:
                # Left out so the pipeline records the employee as an error
                logger.warning(
                    "Skipping snapshot for employee %s: %s", employee.employee_code, e.message
                )
        return snapshots

    def _to_snapshot(self, employee: Employee) -> EmployeeSnapshot:
        weekend = employee.weekend_working_config or {}
        schedule = WorkSchedule(
            in_time=employee.work_in_time,
            out_time=employee.work_out_time,
            hours_per_day=employee.hours_per_day or self.settings.default_hours_per_day,
            working_days_per_month=(
                employee.working_days_per_month
                or self.settings.default_working_days_per_month
            ),
            saturday=parse_weekend_day(weekend.get("saturday")),
            sunday=parse_weekend_day(weekend.get("sunday")),
        )
        overtime = OvertimeConfig(
            enabled=employee.overtime_enabled,
            pre_shift_enabled=employee.pre_shift_overtime_enabled,
            post_shift_enabled=employee.post_shift_overtime_enabled,
            weekday_multiplier=employee.weekday_ot_multiplier,
            saturday_multiplier=employee.saturday_ot_multiplier,
            sunday_multiplier=employee.sunday_ot_multiplier,
            holiday_multiplier=employee.holiday_ot_multiplier,
        )
        return EmployeeSnapshot(
            employee_id=employee.employee_id,
            employee_code=employee.employee_code,
            employee_name=employee.full_name,
            department_id=employee.department_id,
            employee_type=employee.employee_type,
            employment_status=employee.employment_status,
            base_salary=Decimal(employee.base_salary),
            attendance_affects_salary=employee.attendance_affects_salary,
            schedule=schedule,
            overtime=overtime,
        )


class SqlAttendanceAggregator:
    """Reads attendance rows and tenant holidays."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_attendance(
        self, tenant_id: UUID, employee_ids: Sequence[UUID], start: date, end: date
    ) -> dict[UUID, dict[date, AttendanceDay]]:
        if not employee_ids:
            return {}
        holidays = await self.get_holidays(tenant_id, start, end)
        result = await self.session.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.tenant_id == tenant_id,
                AttendanceRecord.employee_id.in_(list(employee_ids)),
                AttendanceRecord.work_date >= start,
                AttendanceRecord.work_date <= end,
            )
        )
        attendance: dict[UUID, dict[date, AttendanceDay]] = defaultdict(dict)
        for row in result.scalars().all():
            attendance[row.employee_id][row.work_date] = AttendanceDay(
                work_date=row.work_date,
                status=row.status,
                check_in=row.check_in_time,
                check_out=row.check_out_time,
                is_holiday=row.work_date in holidays,
            )
        return dict(attendance)

    async def get_holidays(self, tenant_id: UUID, start: date, end: date) -> frozenset[date]:
        result = await self.session.execute(
            select(Holiday.holiday_date).where(
                Holiday.tenant_id == tenant_id,
                Holiday.holiday_date >= start,
                Holiday.holiday_date <= end,
            )
        )
        return frozenset(result.scalars().all())


class SqlComponentCatalog:
    """Reads component templates and employee assignments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(
        self, tenant_id: UUID, employee_ids: Sequence[UUID], period: PeriodWindow
    ) -> ComponentCatalog:
        templates_result = await self.session.execute(
            select(ComponentTemplate)
            .where(
                ComponentTemplate.tenant_id == tenant_id,
                ComponentTemplate.is_active.is_(True),
            )
            .order_by(ComponentTemplate.code)
        )
        templates = tuple(
            ComponentTemplateDef(
                template_id=t.template_id,
                code=t.code,
                name=t.name,
                component_type=ComponentType(t.component_type),
                category=t.category,
                calculation_type=CalculationType(t.calculation_type),
                applies_to=parse_applies_to(t),
                effective_from=t.effective_from,
                effective_to=t.effective_to,
                amount=t.amount,
                percentage=t.percentage,
                formula=t.formula,
                is_taxable=t.is_taxable,
            )
            for t in templates_result.scalars().all()
        )

        allowances: dict[UUID, list[AllowanceAssignment]] = defaultdict(list)
        deductions: dict[UUID, list[DeductionAssignment]] = defaultdict(list)
        if employee_ids:
            ids = list(employee_ids)
            allowance_rows = await self.session.execute(
                select(EmployeeAllowance).where(
                    EmployeeAllowance.tenant_id == tenant_id,
                    EmployeeAllowance.employee_id.in_(ids),
                )
            )
            for a in allowance_rows.scalars().all():
                allowances[a.employee_id].append(
                    AllowanceAssignment(
                        assignment_id=a.allowance_id,
                        employee_id=a.employee_id,
                        type_code=a.type_code,
                        name=a.name,
                        amount=a.amount,
                        effective_from=a.effective_from,
                        effective_to=a.effective_to,
                        is_percentage=a.is_percentage,
                        is_taxable=a.is_taxable,
                        is_active=a.is_active,
                    )
                )

            deduction_rows = await self.session.execute(
                select(EmployeeDeduction).where(
                    EmployeeDeduction.tenant_id == tenant_id,
                    EmployeeDeduction.employee_id.in_(ids),
                )
            )
            for d in deduction_rows.scalars().all():
                deductions[d.employee_id].append(
                    DeductionAssignment(
                        assignment_id=d.deduction_id,
                        employee_id=d.employee_id,
                        type_code=d.type_code,
                        name=d.name,
                        amount=d.amount,
                        effective_from=d.effective_from,
                        effective_to=d.effective_to,
                        is_percentage=d.is_percentage,
                        is_recurring=d.is_recurring,
                        remaining_installments=d.remaining_installments,
                        is_active=d.is_active,
                    )
                )

        return ComponentCatalog(
            templates=templates,
            allowances={k: tuple(v) for k, v in allowances.items()},
            deductions={k: tuple(v) for k, v in deductions.items()},
        )
