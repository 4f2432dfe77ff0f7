"""Attendance-based pro-ration of base salary.

Each calendar day of the period carries a weight in the working-day
denominator:

- weekday: 1
- weekend day configured as Working: 1
- weekend day configured as NotWorking: 0

and a credit in the numerator taken from attendance:

- present, late, paid leave: 1
- half_day: 0.5
- absent or no attendance row: 0
- public holiday on a weekday: 1
- Working weekend day without full_day_salary: min(1, hours / scheduled hours)

Only days up to ``as_of`` are counted, so an in-progress period is pro-rated
to the elapsed working days.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from decimal import Decimal

from payrun_engine.calculators.types import (
    ONE,
    ZERO,
    AttendanceDay,
    EmployeeSnapshot,
    PeriodWindow,
    ProRationResult,
    Working,
)


def iter_days(start: date, end: date) -> Iterable[date]:
    """Yield every date from start to end inclusive."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


class ProRationCalculator:
    """Computes expected and actually-earned base salary."""

    def calculate(
        self,
        snapshot: EmployeeSnapshot,
        period: PeriodWindow,
        attendance: Mapping[date, AttendanceDay],
        holidays: frozenset[date] = frozenset(),
        as_of: date | None = None,
    ) -> ProRationResult:
        """Pro-rate the employee's base salary for the period.

        Args:
            snapshot: Employee compensation configuration
            period: Period being calculated
            attendance: Attendance for this employee keyed by date
            holidays: Tenant public holidays
            as_of: Last day counted; defaults to today

        Returns:
            ProRationResult with unrounded amounts
        """
        as_of = as_of or date.today()
        window_end = min(period.end_date, as_of)

        period_weight = ZERO
        window_weight = ZERO
        worked_weight = ZERO

        for day in iter_days(period.start_date, period.end_date):
            weight = self._day_weight(snapshot, day)
            if weight == 0:
                continue
            period_weight += weight
            if day > window_end:
                continue
            window_weight += weight
            worked_weight += self._day_credit(snapshot, day, attendance.get(day), holidays)

        base = snapshot.base_salary

        if not snapshot.attendance_affects_salary:
            return ProRationResult(
                base_salary=base,
                expected_base_salary=base,
                actual_earned_base=base,
                attendance_shortfall=ZERO,
                worked_days=worked_weight,
                window_working_days=window_weight,
                period_working_days=period_weight,
            )

        if period_weight == 0 or window_weight == 0:
            expected = ZERO
            actual = ZERO
        else:
            expected = base * window_weight / period_weight
            actual = expected * worked_weight / window_weight
            actual = max(ZERO, min(actual, expected))

        return ProRationResult(
            base_salary=base,
            expected_base_salary=expected,
            actual_earned_base=actual,
            attendance_shortfall=expected - actual,
            worked_days=worked_weight,
            window_working_days=window_weight,
            period_working_days=period_weight,
        )

    @staticmethod
    def _day_weight(snapshot: EmployeeSnapshot, day: date) -> Decimal:
        weekend = snapshot.schedule.weekend_day(day)
        if weekend is None:
            return ONE
        return ONE if isinstance(weekend, Working) else ZERO

    @staticmethod
    def _day_credit(
        snapshot: EmployeeSnapshot,
        day: date,
        record: AttendanceDay | None,
        holidays: frozenset[date],
    ) -> Decimal:
        weekend = snapshot.schedule.weekend_day(day)

        if weekend is None:
            if day in holidays:
                return ONE
            return record.credit if record else ZERO

        # Only Working weekend days reach here (NotWorking weighs 0)
        if record is None or record.credit == 0:
            return ZERO
        if weekend.full_day_salary:
            return record.credit
        scheduled = weekend.scheduled_hours
        if scheduled == 0 or record.check_in is None or record.check_out is None:
            return record.credit
        return min(ONE, record.worked_hours / scheduled)
