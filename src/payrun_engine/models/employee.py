"""Employee, attendance and holiday models.

These tables belong to the surrounding HR platform. The engine only reads
them, through the SQL-backed snapshot provider and attendance aggregator.
"""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payrun_engine.models.base import Base, Money, TimestampMixin


class Employee(Base, TimestampMixin):
    """Employee with the compensation configuration used by payroll."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    employee_type: Mapped[str] = mapped_column(String, nullable=False, default="permanent")
    employment_status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    # Compensation
    base_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    attendance_affects_salary: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )

    # Work schedule
    work_in_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    work_out_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    hours_per_day: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    working_days_per_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Overtime
    overtime_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pre_shift_overtime_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    post_shift_overtime_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    weekday_ot_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)
    saturday_ot_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)
    sunday_ot_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)
    holiday_ot_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(4, 2), nullable=True)

    # Per-day weekend configuration, e.g.
    # {"saturday": {"working": true, "in_time": "09:00", "out_time": "13:00",
    #               "full_day_salary": false},
    #  "sunday": null}
    weekend_working_config: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_code", name="employee_tenant_code_unique"),
        CheckConstraint(
            "employment_status IN ('active', 'inactive', 'terminated', 'on_leave')",
            name="employee_status_check",
        ),
        CheckConstraint("base_salary >= 0", name="employee_base_salary_check"),
    )

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}"


class AttendanceRecord(Base, TimestampMixin):
    """One employee's attendance for one day."""

    __tablename__ = "attendance"

    attendance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="present")
    check_in_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    check_out_time: Mapped[time | None] = mapped_column(Time, nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="attendance_employee_date_unique"),
        CheckConstraint(
            "status IN ('present', 'late', 'half_day', 'absent', 'leave')",
            name="attendance_status_check",
        ),
    )


class Holiday(Base, TimestampMixin):
    """Tenant public holiday."""

    __tablename__ = "holiday"

    holiday_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "holiday_date", name="holiday_tenant_date_unique"),
    )
