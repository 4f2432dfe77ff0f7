"""Interfaces to the HR platform data the engine reads.

The engine never queries employees, attendance or component configuration
directly. It goes through these providers, each of which fetches its data
for a whole run in one batch.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol
from uuid import UUID

from payrun_engine.calculators.types import (
    AttendanceDay,
    ComponentCatalog as ComponentCatalogData,
    EmployeeSnapshot,
    PeriodWindow,
)


@dataclass(frozen=True)
class EmployeeFilters:
    """Population filters stored on a run."""

    department_id: UUID | None = None
    employee_type: str | None = None
    employee_ids: tuple[UUID, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict | None) -> EmployeeFilters:
        data = data or {}
        return cls(
            department_id=UUID(str(data["department_id"])) if data.get("department_id") else None,
            employee_type=data.get("employee_type") or None,
            employee_ids=tuple(UUID(str(i)) for i in data.get("employee_ids") or ()),
        )

    def to_dict(self) -> dict:
        data: dict = {}
        if self.department_id:
            data["department_id"] = str(self.department_id)
        if self.employee_type:
            data["employee_type"] = self.employee_type
        if self.employee_ids:
            data["employee_ids"] = [str(i) for i in self.employee_ids]
        return data


@dataclass(frozen=True)
class EmployeeSummary:
    """Identity of an employee matched by a population filter."""

    employee_id: UUID
    employee_code: str
    employee_name: str
    department_id: UUID | None
    employee_type: str | None


class EmployeeSnapshotProvider(Protocol):
    """Supplies employee populations and compensation snapshots."""

    async def find_employees(
        self, tenant_id: UUID, filters: EmployeeFilters
    ) -> list[EmployeeSummary]:
        """Active employees matching the filters, ordered by employee code."""
        ...

    async def get_snapshots(
        self, tenant_id: UUID, employee_ids: Sequence[UUID]
    ) -> dict[UUID, EmployeeSnapshot]:
        """Snapshots keyed by employee id; unknown ids are omitted."""
        ...


class AttendanceAggregator(Protocol):
    """Supplies per-day attendance facts and holidays."""

    async def get_attendance(
        self, tenant_id: UUID, employee_ids: Sequence[UUID], start: date, end: date
    ) -> dict[UUID, dict[date, AttendanceDay]]:
        """Attendance keyed by employee then date.

        Employees with no rows in the range are omitted.
        """
        ...

    async def get_holidays(self, tenant_id: UUID, start: date, end: date) -> frozenset[date]:
        ...


class ComponentCatalog(Protocol):
    """Supplies component templates and employee assignments."""

    async def load(
        self, tenant_id: UUID, employee_ids: Sequence[UUID], period: PeriodWindow
    ) -> ComponentCatalogData:
        ...
