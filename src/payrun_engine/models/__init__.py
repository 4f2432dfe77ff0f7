"""ORM models."""

from payrun_engine.models.base import Base, Money, TimestampMixin
from payrun_engine.models.components import (
    ComponentTemplate,
    EmployeeAllowance,
    EmployeeDeduction,
)
from payrun_engine.models.employee import AttendanceRecord, Employee, Holiday
from payrun_engine.models.payroll import (
    ComponentApplication,
    PayrollAuditEvent,
    PayrollPeriod,
    PayrollRecord,
    PayrollRun,
    PayrollRunMember,
)

__all__ = [
    "Base",
    "Money",
    "TimestampMixin",
    "ComponentTemplate",
    "EmployeeAllowance",
    "EmployeeDeduction",
    "AttendanceRecord",
    "Employee",
    "Holiday",
    "ComponentApplication",
    "PayrollAuditEvent",
    "PayrollPeriod",
    "PayrollRecord",
    "PayrollRun",
    "PayrollRunMember",
]
