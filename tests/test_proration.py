"""Unit tests for attendance-based pro-ration."""

from datetime import date, time
from decimal import Decimal

from payrun_engine.calculators.aggregator import round_money
from payrun_engine.calculators.proration import ProRationCalculator
from payrun_engine.calculators.types import AttendanceDay, Working

from tests.factories import JUNE_2026, make_snapshot, month_attendance

CENT = Decimal("0.01")
AFTER_JUNE = date(2026, 7, 15)
ABSENCES = {date(2026, 6, 10), date(2026, 6, 11)}


class TestProRation:
    """Expected vs actually-earned base salary."""

    def test_full_attendance_earns_full_salary(self):
        result = ProRationCalculator().calculate(
            make_snapshot(), JUNE_2026, month_attendance(), as_of=AFTER_JUNE
        )
        assert result.period_working_days == Decimal("22")
        assert result.worked_days == Decimal("22")
        assert result.expected_base_salary == Decimal("60000")
        assert result.actual_earned_base == Decimal("60000")
        assert result.attendance_shortfall == Decimal("0")

    def test_two_absences(self):
        """20 of 22 working days present earns 20/22 of base."""
        result = ProRationCalculator().calculate(
            make_snapshot(), JUNE_2026, month_attendance(absent=ABSENCES), as_of=AFTER_JUNE
        )
        assert result.worked_days == Decimal("20")
        assert round_money(result.expected_base_salary, CENT) == Decimal("60000.00")
        assert round_money(result.actual_earned_base, CENT) == Decimal("54545.45")
        assert round_money(result.attendance_shortfall, CENT) == Decimal("5454.55")

    def test_attendance_not_affecting_salary(self):
        """Salary is unaffected even with no attendance at all."""
        result = ProRationCalculator().calculate(
            make_snapshot(base_salary="45000", attendance_affects_salary=False),
            JUNE_2026,
            {},
            as_of=AFTER_JUNE,
        )
        assert result.expected_base_salary == Decimal("45000")
        assert result.actual_earned_base == Decimal("45000")
        assert result.attendance_shortfall == Decimal("0")

    def test_half_day_and_leave(self):
        attendance = month_attendance(absent=ABSENCES)
        attendance[date(2026, 6, 10)] = AttendanceDay(date(2026, 6, 10), "half_day")
        attendance[date(2026, 6, 11)] = AttendanceDay(date(2026, 6, 11), "leave")

        result = ProRationCalculator().calculate(
            make_snapshot(), JUNE_2026, attendance, as_of=AFTER_JUNE
        )
        assert result.worked_days == Decimal("21.5")

    def test_weekday_holiday_is_credited(self):
        """A public holiday on a weekday counts as worked without attendance."""
        holiday = date(2026, 6, 10)
        attendance = month_attendance()
        del attendance[holiday]

        result = ProRationCalculator().calculate(
            make_snapshot(), JUNE_2026, attendance, frozenset({holiday}), as_of=AFTER_JUNE
        )
        assert result.worked_days == Decimal("22")
        assert result.actual_earned_base == Decimal("60000")

    def test_in_progress_period_uses_elapsed_window(self):
        """Mid-period, expected salary covers only elapsed working days."""
        # June 1-12 2026 holds 10 weekdays
        result = ProRationCalculator().calculate(
            make_snapshot(base_salary="44000"),
            JUNE_2026,
            month_attendance(),
            as_of=date(2026, 6, 12),
        )
        assert result.window_working_days == Decimal("10")
        assert result.period_working_days == Decimal("22")
        assert result.expected_base_salary == Decimal("20000")
        assert result.actual_earned_base == Decimal("20000")

    def test_future_period_expects_nothing(self):
        result = ProRationCalculator().calculate(
            make_snapshot(), JUNE_2026, {}, as_of=date(2026, 5, 20)
        )
        assert result.window_working_days == Decimal("0")
        assert result.expected_base_salary == Decimal("0")
        assert result.actual_earned_base == Decimal("0")

    def test_working_saturday_adds_to_denominator(self):
        """Saturdays worked on a configured shift count as working days."""
        snapshot = make_snapshot(saturday=Working(time(9, 0), time(13, 0)))
        attendance = month_attendance(include_weekends=True)
        for day in list(attendance):
            if day.weekday() == 6:
                del attendance[day]

        result = ProRationCalculator().calculate(
            snapshot, JUNE_2026, attendance, as_of=AFTER_JUNE
        )
        # 22 weekdays + 4 Saturdays (6, 13, 20, 27 June)
        assert result.period_working_days == Decimal("26")
        # 8h on a 4h Saturday shift caps at one day
        assert result.worked_days == Decimal("26")

    def test_partial_saturday_prorated_by_hours(self):
        snapshot = make_snapshot(saturday=Working(time(9, 0), time(13, 0)))
        attendance = month_attendance()
        saturday = date(2026, 6, 6)
        attendance[saturday] = AttendanceDay(
            saturday, "present", check_in=time(9, 0), check_out=time(11, 0)
        )

        result = ProRationCalculator().calculate(
            snapshot, JUNE_2026, attendance, as_of=AFTER_JUNE
        )
        assert result.period_working_days == Decimal("26")
        assert result.worked_days == Decimal("22.5")

    def test_full_day_salary_saturday(self):
        snapshot = make_snapshot(
            saturday=Working(time(9, 0), time(13, 0), full_day_salary=True)
        )
        attendance = month_attendance()
        saturday = date(2026, 6, 6)
        attendance[saturday] = AttendanceDay(
            saturday, "present", check_in=time(9, 0), check_out=time(10, 0)
        )

        result = ProRationCalculator().calculate(
            snapshot, JUNE_2026, attendance, as_of=AFTER_JUNE
        )
        assert result.worked_days == Decimal("23")
