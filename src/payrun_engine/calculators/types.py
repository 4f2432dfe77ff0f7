"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID

from payrun_engine.errors import CalculationError

ZERO = Decimal("0")
ONE = Decimal("1")

MIN_OT_MULTIPLIER = Decimal("1.0")
MAX_OT_MULTIPLIER = Decimal("5.0")


class ComponentType(str, Enum):
    """Component line item types."""

    EARNING = "earning"
    DEDUCTION = "deduction"
    TAX = "tax"


class CalculationType(str, Enum):
    """How a component amount is evaluated."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"
    FORMULA = "formula"


class CalculationMethod(str, Enum):
    """Tax method selected on the run."""

    SIMPLE = "simple"
    ADVANCED = "advanced"


class DayCategory(str, Enum):
    """Overtime day categories."""

    WEEKDAY = "weekday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"
    HOLIDAY = "holiday"


class AttendanceStatus(str, Enum):
    """Daily attendance statuses."""

    PRESENT = "present"
    LATE = "late"
    HALF_DAY = "half_day"
    ABSENT = "absent"
    LEAVE = "leave"


# Fraction of a working day credited for each status
ATTENDANCE_CREDIT: dict[str, Decimal] = {
    AttendanceStatus.PRESENT: ONE,
    AttendanceStatus.LATE: ONE,
    AttendanceStatus.LEAVE: ONE,
    AttendanceStatus.HALF_DAY: Decimal("0.5"),
    AttendanceStatus.ABSENT: ZERO,
}


def hours_between(start: time, end: time) -> Decimal:
    """Hours from ``start`` to ``end`` on the same day (never negative)."""
    anchor = date(2000, 1, 1)
    seconds = (datetime.combine(anchor, end) - datetime.combine(anchor, start)).total_seconds()
    return max(ZERO, Decimal(int(seconds)) / Decimal(3600))


# ===== Weekend working configuration =====


@dataclass(frozen=True)
class NotWorking:
    """Weekend day on which the employee does not work."""


@dataclass(frozen=True)
class Working:
    """Weekend day on which the employee works a configured shift."""

    in_time: time
    out_time: time
    full_day_salary: bool = False

    @property
    def scheduled_hours(self) -> Decimal:
        return hours_between(self.in_time, self.out_time)


WeekendDay = Union[NotWorking, Working]


@dataclass(frozen=True)
class WorkSchedule:
    """Employee's regular shift and weekend arrangement."""

    in_time: time | None
    out_time: time | None
    hours_per_day: Decimal
    working_days_per_month: int
    saturday: WeekendDay = field(default_factory=NotWorking)
    sunday: WeekendDay = field(default_factory=NotWorking)

    def weekend_day(self, day: date) -> WeekendDay | None:
        """Weekend configuration for ``day``, or None on weekdays."""
        weekday = day.weekday()
        if weekday == 5:
            return self.saturday
        if weekday == 6:
            return self.sunday
        return None


@dataclass(frozen=True)
class OvertimeConfig:
    """Per-employee overtime toggles and day-category multipliers."""

    enabled: bool = False
    pre_shift_enabled: bool = False
    post_shift_enabled: bool = False
    weekday_multiplier: Decimal | None = None
    saturday_multiplier: Decimal | None = None
    sunday_multiplier: Decimal | None = None
    holiday_multiplier: Decimal | None = None

    def __post_init__(self) -> None:
        for name in (
            "weekday_multiplier",
            "saturday_multiplier",
            "sunday_multiplier",
            "holiday_multiplier",
        ):
            value = getattr(self, name)
            if value is not None and not (MIN_OT_MULTIPLIER <= value <= MAX_OT_MULTIPLIER):
                raise CalculationError(
                    f"{name} {value} outside [{MIN_OT_MULTIPLIER}, {MAX_OT_MULTIPLIER}]"
                )

    def multiplier_for(self, category: DayCategory) -> Decimal:
        """Multiplier for a day category; unset categories pay 1.0."""
        value = {
            DayCategory.WEEKDAY: self.weekday_multiplier,
            DayCategory.SATURDAY: self.saturday_multiplier,
            DayCategory.SUNDAY: self.sunday_multiplier,
            DayCategory.HOLIDAY: self.holiday_multiplier,
        }[category]
        return value if value is not None else ONE


@dataclass(frozen=True)
class EmployeeSnapshot:
    """Compensation configuration of one employee at calculation time."""

    employee_id: UUID
    employee_code: str
    employee_name: str
    department_id: UUID | None
    employee_type: str | None
    employment_status: str
    base_salary: Decimal
    attendance_affects_salary: bool
    schedule: WorkSchedule
    overtime: OvertimeConfig = field(default_factory=OvertimeConfig)

    @property
    def is_active(self) -> bool:
        return self.employment_status == "active"

    @property
    def hourly_rate(self) -> Decimal:
        """base_salary / (working_days_per_month × hours_per_day)."""
        divisor = Decimal(self.schedule.working_days_per_month) * self.schedule.hours_per_day
        if divisor <= 0:
            raise CalculationError(
                "Work schedule has no working hours; cannot derive hourly rate",
                self.employee_id,
            )
        return self.base_salary / divisor


@dataclass(frozen=True)
class AttendanceDay:
    """Attendance facts for one employee-day."""

    work_date: date
    status: str
    check_in: time | None = None
    check_out: time | None = None
    is_holiday: bool = False

    @property
    def worked_hours(self) -> Decimal:
        if self.check_in is None or self.check_out is None:
            return ZERO
        return hours_between(self.check_in, self.check_out)

    @property
    def credit(self) -> Decimal:
        """Fraction of a working day credited for this status."""
        return ATTENDANCE_CREDIT.get(self.status, ZERO)


@dataclass(frozen=True)
class PeriodWindow:
    """The period being calculated."""

    period_id: UUID
    start_date: date
    end_date: date
    pay_date: date

    def overlaps(self, effective_from: date, effective_to: date | None) -> bool:
        """True if [effective_from, effective_to] intersects the period."""
        if effective_from > self.end_date:
            return False
        return effective_to is None or effective_to >= self.start_date


# ===== Component targeting and definitions =====


@dataclass(frozen=True)
class AppliesToAll:
    """Template applies to every employee."""


@dataclass(frozen=True)
class AppliesToDepartment:
    """Template applies to one department."""

    department_id: UUID


@dataclass(frozen=True)
class AppliesToEmployees:
    """Template applies to an explicit employee list."""

    employee_ids: frozenset[UUID]


AppliesTo = Union[AppliesToAll, AppliesToDepartment, AppliesToEmployees]


@dataclass(frozen=True)
class ComponentTemplateDef:
    """Company-wide component definition."""

    template_id: UUID
    code: str
    name: str
    component_type: ComponentType
    category: str
    calculation_type: CalculationType
    applies_to: AppliesTo
    effective_from: date
    effective_to: date | None = None
    amount: Decimal | None = None
    percentage: Decimal | None = None
    formula: str | None = None
    is_taxable: bool = True


@dataclass(frozen=True)
class AllowanceAssignment:
    """Allowance assigned to an employee."""

    assignment_id: UUID
    employee_id: UUID
    type_code: str
    name: str
    amount: Decimal
    effective_from: date
    effective_to: date | None = None
    is_percentage: bool = False
    is_taxable: bool = True
    is_active: bool = True


@dataclass(frozen=True)
class DeductionAssignment:
    """Deduction assigned to an employee."""

    assignment_id: UUID
    employee_id: UUID
    type_code: str
    name: str
    amount: Decimal
    effective_from: date
    effective_to: date | None = None
    is_percentage: bool = False
    is_recurring: bool = True
    remaining_installments: int | None = None
    is_active: bool = True


@dataclass(frozen=True)
class ComponentCatalog:
    """Component configuration fetched once per run."""

    templates: tuple[ComponentTemplateDef, ...] = ()
    allowances: dict[UUID, tuple[AllowanceAssignment, ...]] = field(default_factory=dict)
    deductions: dict[UUID, tuple[DeductionAssignment, ...]] = field(default_factory=dict)


@dataclass
class ResolvedComponent:
    """A component with its evaluated (unrounded) amount."""

    code: str
    name: str
    component_type: ComponentType
    category: str
    amount: Decimal
    calculation_method: str
    is_taxable: bool = True
    source: str = "template"
    source_id: UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "code": self.code,
            "component_type": self.component_type.value,
            "category": self.category,
            "amount": str(self.amount),
            "calculation_method": self.calculation_method,
            "source": self.source,
            "source_id": str(self.source_id) if self.source_id else None,
        }


# ===== Calculator results =====


@dataclass(frozen=True)
class ProRationResult:
    """Expected vs actually-earned base salary."""

    base_salary: Decimal
    expected_base_salary: Decimal
    actual_earned_base: Decimal
    attendance_shortfall: Decimal
    worked_days: Decimal
    window_working_days: Decimal
    period_working_days: Decimal


@dataclass(frozen=True)
class OvertimeDay:
    """Overtime earned on one day."""

    work_date: date
    category: DayCategory
    minutes: int
    multiplier: Decimal
    amount: Decimal

    @property
    def hours(self) -> Decimal:
        return Decimal(self.minutes) / Decimal(60)


@dataclass(frozen=True)
class OvertimeResult:
    """Overtime across the period."""

    hourly_rate: Decimal
    days: tuple[OvertimeDay, ...] = ()

    @property
    def total_minutes(self) -> int:
        return sum(d.minutes for d in self.days)

    @property
    def total_hours(self) -> Decimal:
        return Decimal(self.total_minutes) / Decimal(60)

    @property
    def total_pay(self) -> Decimal:
        return sum((d.amount for d in self.days), ZERO)


@dataclass(frozen=True)
class TaxBracket:
    """Tax bracket for progressive taxation."""

    min_amount: Decimal
    max_amount: Decimal | None  # None = no upper limit
    rate: Decimal  # As decimal, e.g., 0.06 for 6%
