"""Pytest fixtures for payroll run engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Iterable
from dataclasses import dataclass
from datetime import date, time, timedelta
from decimal import Decimal
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from payrun_engine.config import Settings
from payrun_engine.database import create_schema, get_engine, make_session_factory
from payrun_engine.models import AttendanceRecord, Employee, PayrollPeriod
from payrun_engine.services.run_orchestrator import RunOrchestrator

TENANT_ID = UUID("6f1d2c3b-4a5e-4f60-8a7b-9c0d1e2f3a4b")
OTHER_TENANT_ID = UUID("0a9b8c7d-6e5f-4a3b-2c1d-0e9f8a7b6c5d")
DEPT_ENGINEERING = UUID("11111111-2222-4333-8444-555555555555")
DEPT_SALES = UUID("66666666-7777-4888-9999-aaaaaaaaaaaa")

# Calculation date after the June 2026 period closes
AS_OF = date(2026, 7, 15)
JUNE_START = date(2026, 6, 1)
JUNE_END = date(2026, 6, 30)


def weekdays(start: date, end: date) -> list[date]:
    """Monday-Friday dates from start to end inclusive."""
    days = []
    day = start
    while day <= end:
        if day.weekday() < 5:
            days.append(day)
        day += timedelta(days=1)
    return days


def make_settings(database_url: str = "sqlite+aiosqlite://", **overrides) -> Settings:
    values = dict(
        database_url=database_url,
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        calculation_workers=2,
    )
    values.update(overrides)
    return Settings(**values)


def attendance_rows(
    employee: Employee,
    days: Iterable[date],
    status: str = "present",
    check_in: time | None = time(9, 0),
    check_out: time | None = time(17, 0),
) -> list[AttendanceRecord]:
    return [
        AttendanceRecord(
            tenant_id=employee.tenant_id,
            employee_id=employee.employee_id,
            work_date=day,
            status=status,
            check_in_time=check_in,
            check_out_time=check_out,
        )
        for day in days
    ]


@dataclass
class PayrollWorld:
    """Seeded tenant data shared by the database-backed tests."""

    period: PayrollPeriod
    alice: Employee  # attendance-based, 20 of 22 days present
    bob: Employee  # salary unaffected by attendance, no attendance rows
    carol: Employee  # full attendance plus 2h weekday overtime


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine so several sessions can share the data."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def orchestrator(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> RunOrchestrator:
    return RunOrchestrator(session_factory, settings, today=lambda: AS_OF)


@pytest_asyncio.fixture
async def world(session: AsyncSession) -> PayrollWorld:
    """June 2026 period with three employees and their attendance."""
    period = PayrollPeriod(
        tenant_id=TENANT_ID,
        period_type="monthly",
        period_year=2026,
        period_number=6,
        start_date=JUNE_START,
        end_date=JUNE_END,
        cut_off_date=date(2026, 6, 25),
        pay_date=date(2026, 6, 30),
        status="active",
    )
    alice = Employee(
        tenant_id=TENANT_ID,
        employee_code="E001",
        first_name="Alice",
        last_name="Perera",
        department_id=DEPT_ENGINEERING,
        employee_type="permanent",
        employment_status="active",
        base_salary=Decimal("60000.00"),
        attendance_affects_salary=True,
        work_in_time=time(9, 0),
        work_out_time=time(17, 0),
        hours_per_day=Decimal("8"),
        working_days_per_month=22,
    )
    bob = Employee(
        tenant_id=TENANT_ID,
        employee_code="E002",
        first_name="Bob",
        last_name="Silva",
        department_id=DEPT_SALES,
        employee_type="contract",
        employment_status="active",
        base_salary=Decimal("45000.00"),
        attendance_affects_salary=False,
        work_in_time=time(9, 0),
        work_out_time=time(17, 0),
    )
    carol = Employee(
        tenant_id=TENANT_ID,
        employee_code="E003",
        first_name="Carol",
        last_name="Fernando",
        department_id=DEPT_ENGINEERING,
        employee_type="permanent",
        employment_status="active",
        base_salary=Decimal("44000.00"),
        attendance_affects_salary=True,
        work_in_time=time(9, 0),
        work_out_time=time(17, 0),
        hours_per_day=Decimal("8"),
        working_days_per_month=22,
        overtime_enabled=True,
        post_shift_overtime_enabled=True,
        weekday_ot_multiplier=Decimal("1.5"),
    )
    session.add_all([period, alice, bob, carol])
    await session.flush()

    june = weekdays(JUNE_START, JUNE_END)
    absent = {date(2026, 6, 10), date(2026, 6, 11)}
    session.add_all(attendance_rows(alice, [d for d in june if d not in absent]))
    session.add_all(attendance_rows(alice, sorted(absent), status="absent", check_in=None, check_out=None))

    overtime_day = date(2026, 6, 15)
    session.add_all(attendance_rows(carol, [d for d in june if d != overtime_day]))
    session.add_all(attendance_rows(carol, [overtime_day], check_out=time(19, 0)))

    await session.commit()
    return PayrollWorld(period=period, alice=alice, bob=bob, carol=carol)
