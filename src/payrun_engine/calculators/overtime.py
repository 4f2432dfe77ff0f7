"""Overtime calculation from clock-in/clock-out against the schedule."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal

from payrun_engine.calculators.types import (
    AttendanceDay,
    DayCategory,
    EmployeeSnapshot,
    OvertimeDay,
    OvertimeResult,
    PeriodWindow,
    Working,
)


def minutes_after(earlier: time, later: time) -> int:
    """Whole minutes by which ``later`` is after ``earlier`` (0 if not)."""
    anchor = date(2000, 1, 1)
    delta = datetime.combine(anchor, later) - datetime.combine(anchor, earlier)
    return max(0, int(delta.total_seconds()) // 60)


def day_category(day: date, holidays: frozenset[date]) -> DayCategory:
    """Holidays take precedence over the day of week."""
    if day in holidays:
        return DayCategory.HOLIDAY
    weekday = day.weekday()
    if weekday == 5:
        return DayCategory.SATURDAY
    if weekday == 6:
        return DayCategory.SUNDAY
    return DayCategory.WEEKDAY


class OvertimeCalculator:
    """Computes pre-shift and post-shift overtime for a period.

    Overtime pay for a day is overtime_hours × hourly_rate × multiplier,
    where the multiplier depends on the day category and defaults to 1.0.
    """

    def calculate(
        self,
        snapshot: EmployeeSnapshot,
        period: PeriodWindow,
        attendance: Mapping[date, AttendanceDay],
        holidays: frozenset[date] = frozenset(),
    ) -> OvertimeResult:
        hourly_rate = snapshot.hourly_rate
        config = snapshot.overtime
        if not config.enabled:
            return OvertimeResult(hourly_rate=hourly_rate)

        days: list[OvertimeDay] = []
        for work_date in sorted(attendance):
            if not (period.start_date <= work_date <= period.end_date):
                continue
            record = attendance[work_date]
            if record.check_in is None or record.check_out is None:
                continue

            shift = self._scheduled_shift(snapshot, work_date)
            if shift is None:
                continue
            scheduled_in, scheduled_out = shift

            minutes = 0
            if config.pre_shift_enabled:
                minutes += minutes_after(record.check_in, scheduled_in)
            if config.post_shift_enabled:
                minutes += minutes_after(scheduled_out, record.check_out)
            if minutes == 0:
                continue

            category = day_category(work_date, holidays)
            multiplier = config.multiplier_for(category)
            hours = Decimal(minutes) / Decimal(60)
            days.append(
                OvertimeDay(
                    work_date=work_date,
                    category=category,
                    minutes=minutes,
                    multiplier=multiplier,
                    amount=hours * hourly_rate * multiplier,
                )
            )

        return OvertimeResult(hourly_rate=hourly_rate, days=tuple(days))

    @staticmethod
    def _scheduled_shift(
        snapshot: EmployeeSnapshot, work_date: date
    ) -> tuple[time, time] | None:
        schedule = snapshot.schedule
        weekend = schedule.weekend_day(work_date)
        if weekend is None:
            if schedule.in_time is None or schedule.out_time is None:
                return None
            return schedule.in_time, schedule.out_time
        if isinstance(weekend, Working):
            return weekend.in_time, weekend.out_time
        return None
