"""Data providers for employee, attendance and component configuration."""

from payrun_engine.providers.base import (
    AttendanceAggregator,
    ComponentCatalog,
    EmployeeFilters,
    EmployeeSnapshotProvider,
    EmployeeSummary,
)
from payrun_engine.providers.sql import (
    SqlAttendanceAggregator,
    SqlComponentCatalog,
    SqlEmployeeSnapshotProvider,
)

__all__ = [
    "AttendanceAggregator",
    "ComponentCatalog",
    "EmployeeFilters",
    "EmployeeSnapshotProvider",
    "EmployeeSummary",
    "SqlAttendanceAggregator",
    "SqlComponentCatalog",
    "SqlEmployeeSnapshotProvider",
]
