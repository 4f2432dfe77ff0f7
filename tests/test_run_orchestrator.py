"""Run lifecycle tests against a SQLite database.

Exercise create, calculate, process and cancel end to end through the
SQL providers, including the run lock.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from payrun_engine.errors import ConflictError, NotFoundError, StateError, ValidationError
from payrun_engine.models import Employee, EmployeeDeduction, PayrollPeriod, PayrollRun
from payrun_engine.models.base import utcnow
from payrun_engine.providers.sql import SqlEmployeeSnapshotProvider
from payrun_engine.services.run_orchestrator import RunOrchestrator

from tests.conftest import AS_OF, DEPT_ENGINEERING, OTHER_TENANT_ID, TENANT_ID, make_settings

pytestmark = pytest.mark.asyncio


async def create_june_run(orchestrator, world, **kwargs):
    kwargs.setdefault("run_name", "June 2026 payroll")
    return await orchestrator.create_run(TENANT_ID, world.period.period_id, **kwargs)


def record_view(record):
    return (
        record.employee_code,
        record.calculation_status,
        record.actual_earned_base,
        record.gross_salary,
        record.total_taxes,
        record.net_salary,
        record.calculation_fingerprint,
    )


class GatedSnapshotProvider:
    """Snapshot provider that pauses until the test opens the gate."""

    def __init__(self, session_factory, settings):
        self.session_factory = session_factory
        self.settings = settings
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def find_employees(self, tenant_id, filters):
        async with self.session_factory() as session:
            return await SqlEmployeeSnapshotProvider(session, self.settings).find_employees(
                tenant_id, filters
            )

    async def get_snapshots(self, tenant_id, employee_ids):
        self.entered.set()
        await self.gate.wait()
        async with self.session_factory() as session:
            return await SqlEmployeeSnapshotProvider(session, self.settings).get_snapshots(
                tenant_id, employee_ids
            )


class FailingSnapshotProvider:
    async def find_employees(self, tenant_id, filters):
        raise RuntimeError("HR service unavailable")

    async def get_snapshots(self, tenant_id, employee_ids):
        raise RuntimeError("HR service unavailable")


class TestCreateRun:
    """Draft runs snapshot the employee population."""

    async def test_create_run(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)

        assert run.status == "draft"
        assert run.run_number == "MONTHLY_2026_06_REGULAR"
        assert run.total_employees == 3
        assert [m.employee_code for m in run.members] == ["E001", "E002", "E003"]
        assert run.members[0].employee_name == "Alice Perera"

        events = await orchestrator.list_audit_events(TENANT_ID, run.run_id)
        assert [e.action for e in events] == ["created"]
        assert events[0].details["total_employees"] == 3

    async def test_department_filter(self, orchestrator, world):
        run = await create_june_run(
            orchestrator,
            world,
            run_type="bonus",
            employee_filters={"department_id": str(DEPT_ENGINEERING)},
        )

        assert run.run_number == "MONTHLY_2026_06_BONUS"
        assert [m.employee_code for m in run.members] == ["E001", "E003"]
        assert run.employee_filters == {"department_id": str(DEPT_ENGINEERING)}

    async def test_duplicate_active_regular_run_rejected(self, orchestrator, world):
        first = await create_june_run(orchestrator, world)

        with pytest.raises(ValidationError, match="active regular run"):
            await create_june_run(orchestrator, world)

        # Other run types are allowed alongside
        bonus = await create_june_run(orchestrator, world, run_type="bonus")
        assert bonus.status == "draft"

        # Once cancelled, a new regular run gets a suffixed number
        await orchestrator.cancel(TENANT_ID, first.run_id)
        second = await create_june_run(orchestrator, world)
        assert second.run_number == "MONTHLY_2026_06_REGULAR_2"

    async def test_concurrent_bonus_runs_get_distinct_numbers(self, orchestrator, world):
        first, second = await asyncio.gather(
            create_june_run(orchestrator, world, run_type="bonus"),
            create_june_run(orchestrator, world, run_type="bonus"),
        )
        assert sorted([first.run_number, second.run_number]) == [
            "MONTHLY_2026_06_BONUS",
            "MONTHLY_2026_06_BONUS_2",
        ]

    async def test_concurrent_regular_runs_create_one(self, orchestrator, world, session):
        results = await asyncio.gather(
            create_june_run(orchestrator, world),
            create_june_run(orchestrator, world),
            return_exceptions=True,
        )
        created = [r for r in results if isinstance(r, PayrollRun)]
        rejected = [r for r in results if isinstance(r, ValidationError)]
        assert len(created) == 1
        assert len(rejected) == 1

        runs = (
            await session.execute(
                select(PayrollRun).where(PayrollRun.period_id == world.period.period_id)
            )
        ).scalars().all()
        assert [r.run_number for r in runs] == ["MONTHLY_2026_06_REGULAR"]

    async def test_second_active_regular_run_violates_index(
        self, orchestrator, world, session_factory
    ):
        await create_june_run(orchestrator, world)

        async with session_factory() as other:
            other.add(
                PayrollRun(
                    tenant_id=TENANT_ID,
                    run_number="MONTHLY_2026_06_REGULAR_X",
                    period_id=world.period.period_id,
                    run_name="Inserted directly",
                    run_type="regular",
                    status="calculated",
                )
            )
            with pytest.raises(IntegrityError):
                await other.flush()

    async def test_missing_period(self, orchestrator, world):
        with pytest.raises(ValidationError, match="not found"):
            await orchestrator.create_run(TENANT_ID, OTHER_TENANT_ID, "No such period")

    async def test_period_of_other_tenant(self, orchestrator, world):
        with pytest.raises(ValidationError, match="not found"):
            await orchestrator.create_run(OTHER_TENANT_ID, world.period.period_id, "Wrong tenant")

    async def test_closed_period(self, orchestrator, world, session):
        world.period.status = "closed"
        await session.commit()

        with pytest.raises(ValidationError, match="closed"):
            await create_june_run(orchestrator, world)

    async def test_no_matching_employees(self, orchestrator, world):
        with pytest.raises(ValidationError, match="No active employees"):
            await create_june_run(orchestrator, world, employee_filters={"employee_type": "intern"})

    async def test_invalid_run_type_and_method(self, orchestrator, world):
        with pytest.raises(ValidationError, match="run type"):
            await create_june_run(orchestrator, world, run_type="weekly")
        with pytest.raises(ValidationError, match="calculation method"):
            await create_june_run(orchestrator, world, calculation_method="fancy")
        with pytest.raises(ValidationError, match="name"):
            await create_june_run(orchestrator, world, run_name="  ")


class TestCalculate:
    """Calculation replaces the record set atomically."""

    async def test_calculate_advanced(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)

        run = await orchestrator.calculate(TENANT_ID, run.run_id)

        assert run.status == "calculated"
        assert run.processed_employees == 3
        assert run.error_employees == 0
        assert run.locked_by is None

        records = {r.employee_code: r for r in await orchestrator.list_records(TENANT_ID, run.run_id)}
        alice = records["E001"]
        assert alice.expected_base_salary == Decimal("60000.00")
        assert alice.actual_earned_base == Decimal("54545.45")
        assert alice.attendance_shortfall == Decimal("5454.55")
        assert alice.worked_days == Decimal("20")
        assert alice.total_taxes == Decimal("0")
        assert alice.net_salary == Decimal("54545.45")

        bob = records["E002"]
        assert bob.actual_earned_base == Decimal("45000.00")
        assert bob.attendance_shortfall == Decimal("0")

        carol = records["E003"]
        assert carol.overtime_hours == Decimal("2")
        assert carol.gross_salary == Decimal("44750.00")

        assert run.total_net_amount == sum(r.net_salary for r in records.values())
        assert run.total_net_amount == Decimal("144295.45")
        assert run.total_gross_amount == Decimal("144295.45")

    async def test_calculate_simple(self, orchestrator, world):
        run = await create_june_run(orchestrator, world, calculation_method="simple")

        await orchestrator.calculate(TENANT_ID, run.run_id)

        records = {r.employee_code: r for r in await orchestrator.list_records(TENANT_ID, run.run_id)}
        assert records["E001"].total_taxes == Decimal("8181.82")
        assert records["E001"].net_salary == Decimal("46363.63")
        assert records["E002"].total_taxes == Decimal("6750.00")
        assert records["E003"].total_taxes == Decimal("6712.50")

    async def test_component_breakdown(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)
        await orchestrator.calculate(TENANT_ID, run.run_id)
        carol = next(
            r for r in await orchestrator.list_records(TENANT_ID, run.run_id)
            if r.employee_code == "E003"
        )

        record, components = await orchestrator.get_record_components(TENANT_ID, carol.record_id)

        assert record.record_id == carol.record_id
        assert [c.component_code for c in components] == ["OVERTIME", "INCOME_TAX"]
        assert [c.sequence for c in components] == [1, 2]
        overtime = components[0]
        assert overtime.calculated_amount == Decimal("750.00")
        assert overtime.component_type == "earning"
        assert overtime.details["hours_by_category"] == {"weekday": "2"}
        assert Decimal(overtime.details["exact_amount"]) == Decimal("750")

        with pytest.raises(NotFoundError):
            await orchestrator.get_record_components(OTHER_TENANT_ID, carol.record_id)

    async def test_recalculate_is_idempotent(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)

        await orchestrator.calculate(TENANT_ID, run.run_id)
        first = [record_view(r) for r in await orchestrator.list_records(TENANT_ID, run.run_id)]
        recalculated = await orchestrator.calculate(TENANT_ID, run.run_id)
        second = [record_view(r) for r in await orchestrator.list_records(TENANT_ID, run.run_id)]

        assert recalculated.status == "calculated"
        assert len(second) == 3
        assert first == second

        events = await orchestrator.list_audit_events(TENANT_ID, run.run_id)
        assert [e.action for e in events] == ["created", "calculated", "calculated"]
        assert events[2].details["previous_status"] == "calculated"

    async def test_recalculate_picks_up_changes(self, orchestrator, world, session):
        run = await create_june_run(orchestrator, world)
        await orchestrator.calculate(TENANT_ID, run.run_id)

        world.bob.base_salary = Decimal("50000.00")
        await session.commit()
        run = await orchestrator.calculate(TENANT_ID, run.run_id)

        records = {r.employee_code: r for r in await orchestrator.list_records(TENANT_ID, run.run_id)}
        assert records["E002"].net_salary == Decimal("50000.00")
        assert run.total_net_amount == Decimal("149295.45")

    async def test_missing_attendance_becomes_error_record(self, orchestrator, world, session):
        session.add(
            Employee(
                tenant_id=TENANT_ID,
                employee_code="E004",
                first_name="Dinesh",
                last_name="Kumar",
                employment_status="active",
                base_salary=Decimal("30000.00"),
                attendance_affects_salary=True,
            )
        )
        await session.commit()
        run = await create_june_run(orchestrator, world)

        run = await orchestrator.calculate(TENANT_ID, run.run_id)

        assert run.processed_employees == 3
        assert run.error_employees == 1
        assert run.total_net_amount == Decimal("144295.45")
        records = {r.employee_code: r for r in await orchestrator.list_records(TENANT_ID, run.run_id)}
        assert records["E004"].calculation_status == "error"
        assert "No attendance data" in records["E004"].notes
        assert records["E004"].net_salary == Decimal("0")

    async def test_terminated_employee_is_excluded(self, orchestrator, world, session):
        run = await create_june_run(orchestrator, world)
        world.alice.employment_status = "terminated"
        await session.commit()

        run = await orchestrator.calculate(TENANT_ID, run.run_id)

        assert run.processed_employees == 2
        assert run.error_employees == 0
        assert run.total_net_amount == Decimal("89750.00")
        records = {r.employee_code: r for r in await orchestrator.list_records(TENANT_ID, run.run_id)}
        assert records["E001"].calculation_status == "excluded"

    async def test_unknown_run(self, orchestrator, world):
        with pytest.raises(NotFoundError):
            await orchestrator.calculate(TENANT_ID, world.period.period_id)

    async def test_other_tenant_cannot_see_run(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)

        with pytest.raises(NotFoundError):
            await orchestrator.get_run(OTHER_TENANT_ID, run.run_id)
        with pytest.raises(NotFoundError):
            await orchestrator.calculate(OTHER_TENANT_ID, run.run_id)


class TestCurrencyPrecision:
    """Amounts are stored at the configured precision without re-rounding."""

    async def test_three_place_currency(self, session_factory, world):
        orchestrator = RunOrchestrator(
            session_factory, make_settings(currency_precision=3), today=lambda: AS_OF
        )
        run = await create_june_run(orchestrator, world)

        await orchestrator.calculate(TENANT_ID, run.run_id)

        run = await orchestrator.get_run(TENANT_ID, run.run_id)
        records = await orchestrator.list_records(TENANT_ID, run.run_id)
        alice = next(r for r in records if r.employee_code == "E001")
        # 60000 * 20 / 22 = 54545.4545... rounds half-even to 0.001
        assert alice.actual_earned_base == Decimal("54545.455")
        assert alice.attendance_shortfall == Decimal("5454.545")
        assert alice.gross_salary == alice.actual_earned_base + alice.total_earnings
        assert run.total_net_amount == sum(r.net_salary for r in records)
        assert run.total_net_amount == Decimal("144295.455")


class TestProcess:
    """Processing pays calculated records and completes the run."""

    async def test_process_before_calculate(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)

        with pytest.raises(StateError) as exc_info:
            await orchestrator.process(TENANT_ID, run.run_id, "bank_transfer", date(2026, 6, 30))
        assert exc_info.value.current_status == "draft"
        assert "allowed only from calculated" in exc_info.value.message

    async def test_process(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)
        await orchestrator.calculate(TENANT_ID, run.run_id)

        run = await orchestrator.process(
            TENANT_ID, run.run_id, "bank_transfer", date(2026, 6, 30), batch_reference="JUN-2026"
        )

        assert run.status == "completed"
        assert run.processed_employees == run.total_employees
        assert run.payment_method == "bank_transfer"
        assert run.batch_reference == "JUN-2026"
        assert run.locked_by is None

        records = await orchestrator.list_records(TENANT_ID, run.run_id)
        assert {r.payment_status for r in records} == {"paid"}
        assert records[0].payment_reference == "JUN-2026-E001"
        assert records[0].payment_date == date(2026, 6, 30)

        events = await orchestrator.list_audit_events(TENANT_ID, run.run_id)
        assert events[-1].action == "processed"
        assert events[-1].details["paid_records"] == 3

    async def test_error_records_are_not_payable(self, orchestrator, world, session):
        session.add(
            Employee(
                tenant_id=TENANT_ID,
                employee_code="E004",
                first_name="Dinesh",
                last_name="Kumar",
                base_salary=Decimal("30000.00"),
            )
        )
        await session.commit()
        run = await create_june_run(orchestrator, world)
        await orchestrator.calculate(TENANT_ID, run.run_id)

        await orchestrator.process(TENANT_ID, run.run_id, "cash", date(2026, 6, 30))

        records = {r.employee_code: r for r in await orchestrator.list_records(TENANT_ID, run.run_id)}
        assert records["E004"].payment_status == "not_payable"
        assert records["E001"].payment_status == "paid"
        assert records["E001"].payment_reference is None

    async def test_installment_deduction_is_consumed(
        self, orchestrator, world, session, session_factory
    ):
        loan = EmployeeDeduction(
            tenant_id=TENANT_ID,
            employee_id=world.alice.employee_id,
            type_code="LOAN",
            name="Staff loan",
            amount=Decimal("1000.00"),
            remaining_installments=1,
            effective_from=date(2026, 1, 1),
        )
        session.add(loan)
        await session.commit()
        run = await create_june_run(orchestrator, world)
        run = await orchestrator.calculate(TENANT_ID, run.run_id)

        records = {r.employee_code: r for r in await orchestrator.list_records(TENANT_ID, run.run_id)}
        assert records["E001"].total_deductions == Decimal("1000.00")
        assert records["E001"].net_salary == Decimal("53545.45")

        await orchestrator.process(TENANT_ID, run.run_id, "bank_transfer", date(2026, 6, 30))

        # The paid record keeps the deduction it was paid with
        records = {r.employee_code: r for r in await orchestrator.list_records(TENANT_ID, run.run_id)}
        assert records["E001"].total_deductions == Decimal("1000.00")
        assert records["E001"].payment_status == "paid"

        async with session_factory() as fresh:
            stored = await fresh.get(EmployeeDeduction, loan.deduction_id)
            assert stored.remaining_installments == 0
            assert stored.is_active is False

    async def test_payment_validation(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)
        await orchestrator.calculate(TENANT_ID, run.run_id)

        with pytest.raises(ValidationError, match="payment method"):
            await orchestrator.process(TENANT_ID, run.run_id, "crypto", date(2026, 6, 30))
        with pytest.raises(ValidationError, match="Payment date"):
            await orchestrator.process(TENANT_ID, run.run_id, "cash", None)

        # Rejected requests leave the run untouched
        run = await orchestrator.get_run(TENANT_ID, run.run_id)
        assert run.status == "calculated"
        assert run.locked_by is None

    async def test_completed_run_is_final(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)
        await orchestrator.calculate(TENANT_ID, run.run_id)
        await orchestrator.process(TENANT_ID, run.run_id, "cheque", date(2026, 6, 30))

        with pytest.raises(StateError):
            await orchestrator.cancel(TENANT_ID, run.run_id)
        with pytest.raises(StateError):
            await orchestrator.calculate(TENANT_ID, run.run_id)
        with pytest.raises(StateError):
            await orchestrator.process(TENANT_ID, run.run_id, "cheque", date(2026, 6, 30))


class TestCancel:
    async def test_cancel_discards_records(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)
        await orchestrator.calculate(TENANT_ID, run.run_id)

        run = await orchestrator.cancel(TENANT_ID, run.run_id, reason="Wrong population")

        assert run.status == "cancelled"
        assert run.cancellation_reason == "Wrong population"
        assert run.cancelled_at is not None
        assert await orchestrator.list_records(TENANT_ID, run.run_id) == []

    async def test_cancelled_run_is_final(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)
        await orchestrator.cancel(TENANT_ID, run.run_id)

        with pytest.raises(StateError):
            await orchestrator.cancel(TENANT_ID, run.run_id)
        with pytest.raises(StateError):
            await orchestrator.calculate(TENANT_ID, run.run_id)


class TestRunLock:
    """Only one mutating operation may run at a time."""

    async def test_concurrent_calculate_conflicts(
        self, orchestrator, world, session_factory, settings
    ):
        run = await create_june_run(orchestrator, world)
        provider = GatedSnapshotProvider(session_factory, settings)
        slow = RunOrchestrator(
            session_factory, settings, snapshot_provider=provider, today=lambda: AS_OF
        )

        task = asyncio.create_task(slow.calculate(TENANT_ID, run.run_id))
        await asyncio.wait_for(provider.entered.wait(), timeout=5)

        with pytest.raises(ConflictError):
            await orchestrator.calculate(TENANT_ID, run.run_id)
        with pytest.raises(ConflictError):
            await orchestrator.cancel(TENANT_ID, run.run_id)

        provider.gate.set()
        finished = await asyncio.wait_for(task, timeout=10)

        assert finished.status == "calculated"
        assert finished.processed_employees == 3
        assert finished.locked_by is None

    async def test_failed_calculation_releases_lock(self, orchestrator, world, session_factory, settings):
        run = await create_june_run(orchestrator, world)
        broken = RunOrchestrator(
            session_factory,
            settings,
            snapshot_provider=FailingSnapshotProvider(),
            today=lambda: AS_OF,
        )

        with pytest.raises(RuntimeError):
            await broken.calculate(TENANT_ID, run.run_id)

        run = await orchestrator.get_run(TENANT_ID, run.run_id)
        assert run.status == "draft"
        assert run.locked_by is None

        run = await orchestrator.calculate(TENANT_ID, run.run_id)
        assert run.status == "calculated"

    async def test_held_and_stale_locks(self, orchestrator, world, session):
        run = await create_june_run(orchestrator, world)

        await session.execute(
            update(PayrollRun)
            .where(PayrollRun.run_id == run.run_id)
            .values(locked_by="calculate:other", locked_at=utcnow())
        )
        await session.commit()
        with pytest.raises(ConflictError):
            await orchestrator.calculate(TENANT_ID, run.run_id)

        # A lock past the timeout is taken over
        await session.execute(
            update(PayrollRun)
            .where(PayrollRun.run_id == run.run_id)
            .values(locked_at=utcnow() - timedelta(hours=2))
        )
        await session.commit()
        run = await orchestrator.calculate(TENANT_ID, run.run_id)
        assert run.status == "calculated"


class TestQueries:
    async def test_list_runs(self, orchestrator, world):
        regular = await create_june_run(orchestrator, world)
        await create_june_run(orchestrator, world, run_type="bonus")
        await orchestrator.calculate(TENANT_ID, regular.run_id)

        runs, total = await orchestrator.list_runs(TENANT_ID)
        assert total == 2
        assert len(runs) == 2

        runs, total = await orchestrator.list_runs(TENANT_ID, status="calculated")
        assert total == 1
        assert runs[0].run_id == regular.run_id

        runs, total = await orchestrator.list_runs(TENANT_ID, run_type="bonus", limit=1)
        assert total == 1
        assert runs[0].run_type == "bonus"

        runs, total = await orchestrator.list_runs(TENANT_ID, limit=1, offset=1)
        assert total == 2
        assert len(runs) == 1

        runs, total = await orchestrator.list_runs(OTHER_TENANT_ID)
        assert (runs, total) == ([], 0)

    async def test_summary(self, orchestrator, world):
        run = await create_june_run(orchestrator, world)
        await orchestrator.calculate(TENANT_ID, run.run_id)

        summary = await orchestrator.get_summary(TENANT_ID, run.run_id)

        assert summary["period"].period_id == world.period.period_id
        stats = summary["statistics"]
        assert stats["record_count"] == 3
        assert stats["total_net_amount"] == Decimal("144295.45")
        assert stats["total_attendance_shortfall"] == Decimal("5454.55")
        assert stats["average_net_salary"] == Decimal("48098.48")
        assert summary["status_breakdown"] == {"calculated": 3}
        assert summary["payment_breakdown"] == {"unpaid": 3}

    async def test_period_rows_untouched(self, orchestrator, world, session_factory):
        """Calculation never writes to the period."""
        run = await create_june_run(orchestrator, world)
        await orchestrator.calculate(TENANT_ID, run.run_id)

        async with session_factory() as fresh:
            period = (
                await fresh.execute(
                    select(PayrollPeriod).where(PayrollPeriod.period_id == world.period.period_id)
                )
            ).scalar_one()
        assert period.status == "active"
