"""Run orchestrator - lifecycle and persistence for payroll runs."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from payrun_engine.calculators.aggregator import RecordAggregator
from payrun_engine.calculators.engine import (
    CalculationResult,
    EmployeeInputs,
    PayrollCalculator,
)
from payrun_engine.calculators.tax_engine import TaxEngine, parse_tax_brackets
from payrun_engine.calculators.types import CalculationMethod, PeriodWindow
from payrun_engine.config import Settings, get_settings
from payrun_engine.errors import NotFoundError, ValidationError
from payrun_engine.logging_config import run_logger
from payrun_engine.models import (
    ComponentApplication,
    EmployeeDeduction,
    PayrollAuditEvent,
    PayrollPeriod,
    PayrollRecord,
    PayrollRun,
    PayrollRunMember,
)
from payrun_engine.models.base import utcnow
from payrun_engine.providers.base import (
    AttendanceAggregator,
    ComponentCatalog,
    EmployeeFilters,
    EmployeeSnapshotProvider,
)
from payrun_engine.providers.sql import (
    SqlAttendanceAggregator,
    SqlComponentCatalog,
    SqlEmployeeSnapshotProvider,
)
from payrun_engine.services.run_lock import RunLockService
from payrun_engine.services.state_machine import RunStateMachine, RunStatus

logger = logging.getLogger(__name__)

RUN_TYPES = ("regular", "bonus", "correction", "off-cycle")
PAYMENT_METHODS = ("bank_transfer", "cash", "cheque")
ZERO = Decimal("0")
# Inserts retried after a concurrent create takes the same run number
CREATE_ATTEMPTS = 3


class RunOrchestrator:
    """Service for managing payroll run lifecycle.

    Operations:
    - create_run: Snapshot the employee population into a draft run
    - calculate: Compute (or recompute) every member's record
    - process: Mark records paid and complete the run
    - cancel: Discard records and cancel the run

    Every mutating operation takes the run lock first and commits its
    changes in a single transaction. Each operation opens its own session
    because the lock must be committed before the work begins.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        snapshot_provider: EmployeeSnapshotProvider | None = None,
        attendance_aggregator: AttendanceAggregator | None = None,
        component_catalog: ComponentCatalog | None = None,
        today: Callable[[], date] | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self._snapshot_provider = snapshot_provider
        self._attendance_aggregator = attendance_aggregator
        self._component_catalog = component_catalog
        self.today = today or date.today
        self.lock = RunLockService(session_factory, self.settings.run_lock_timeout_seconds)
        self.tax_engine = TaxEngine(
            self.settings.flat_tax_rate, parse_tax_brackets(self.settings.tax_brackets)
        )
        self.aggregator = RecordAggregator(self.settings.minor_unit)

    # ===== Providers =====

    def _snapshots(self, session: AsyncSession) -> EmployeeSnapshotProvider:
        return self._snapshot_provider or SqlEmployeeSnapshotProvider(session, self.settings)

    def _attendance(self, session: AsyncSession) -> AttendanceAggregator:
        return self._attendance_aggregator or SqlAttendanceAggregator(session)

    def _components(self, session: AsyncSession) -> ComponentCatalog:
        return self._component_catalog or SqlComponentCatalog(session)

    # ===== Create =====

    async def create_run(
        self,
        tenant_id: UUID,
        period_id: UUID,
        run_name: str,
        run_type: str = "regular",
        calculation_method: str = "advanced",
        employee_filters: dict[str, Any] | None = None,
        notes: str | None = None,
        created_by: UUID | None = None,
    ) -> PayrollRun:
        """Create a draft run with a snapshot of the matching employees.

        Raises:
            ValidationError: Missing period, bad run type or method, an
                existing active regular run, or no matching employees
        """
        if not run_name or not run_name.strip():
            raise ValidationError("Run name is required")
        if run_type not in RUN_TYPES:
            raise ValidationError(
                f"Invalid run type {run_type!r}; expected one of {', '.join(RUN_TYPES)}"
            )
        try:
            CalculationMethod(calculation_method)
        except ValueError as e:
            raise ValidationError(
                f"Invalid calculation method {calculation_method!r}; expected simple or advanced"
            ) from e
        try:
            filters = EmployeeFilters.from_dict(employee_filters)
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Invalid employee filters: {e}") from e

        for attempt in range(1, CREATE_ATTEMPTS + 1):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        run = await self._insert_run(
                            session,
                            tenant_id,
                            period_id,
                            run_name.strip(),
                            run_type,
                            calculation_method,
                            filters,
                            notes,
                            created_by,
                        )
                break
            except IntegrityError:
                # A concurrent create took the run number or the period's
                # regular run; the next attempt sees the committed row
                logger.info(
                    "Run creation for period %s collided (attempt %d of %d)",
                    period_id,
                    attempt,
                    CREATE_ATTEMPTS,
                )
                if attempt == CREATE_ATTEMPTS:
                    raise ValidationError(
                        f"Could not allocate a run number for period {period_id}; retry"
                    ) from None

        run_logger(logger, run.run_id).info(
            "Created %s with %d employees", run.run_number, run.total_employees
        )
        return run

    async def _insert_run(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        period_id: UUID,
        run_name: str,
        run_type: str,
        calculation_method: str,
        filters: EmployeeFilters,
        notes: str | None,
        created_by: UUID | None,
    ) -> PayrollRun:
        period = (
            await session.execute(
                select(PayrollPeriod).where(
                    PayrollPeriod.period_id == period_id,
                    PayrollPeriod.tenant_id == tenant_id,
                )
            )
        ).scalar_one_or_none()
        if period is None:
            raise ValidationError(f"Payroll period {period_id} not found")
        if period.status != "active":
            raise ValidationError(f"Payroll period {period_id} is {period.status}")

        if run_type == "regular":
            active = await session.execute(
                select(PayrollRun.run_number).where(
                    PayrollRun.tenant_id == tenant_id,
                    PayrollRun.period_id == period_id,
                    PayrollRun.run_type == "regular",
                    PayrollRun.status.in_([s.value for s in RunStateMachine.ACTIVE]),
                )
            )
            existing = active.scalars().first()
            if existing is not None:
                raise ValidationError(
                    f"Period already has an active regular run ({existing})"
                )

        population = await self._snapshots(session).find_employees(tenant_id, filters)
        if not population:
            raise ValidationError("No active employees match the employee filters")

        run = PayrollRun(
            tenant_id=tenant_id,
            run_number=await self._generate_run_number(session, tenant_id, period, run_type),
            period_id=period_id,
            run_name=run_name,
            run_type=run_type,
            calculation_method=calculation_method,
            status=RunStatus.DRAFT.value,
            employee_filters=filters.to_dict(),
            notes=notes,
            total_employees=len(population),
            created_by=created_by,
            members=[
                PayrollRunMember(
                    employee_id=e.employee_id,
                    employee_code=e.employee_code,
                    employee_name=e.employee_name,
                    department_id=e.department_id,
                    employee_type=e.employee_type,
                )
                for e in population
            ],
        )
        session.add(run)
        await session.flush()

        await self._record_audit(
            session,
            run,
            "created",
            created_by,
            {
                "run_number": run.run_number,
                "total_employees": run.total_employees,
                "employee_filters": run.employee_filters,
            },
        )
        return run

    async def _generate_run_number(
        self, session: AsyncSession, tenant_id: UUID, period: PayrollPeriod, run_type: str
    ) -> str:
        """Build ``{PERIOD_TYPE}_{YEAR}_{NN}_{RUN_TYPE}``, suffixed if taken."""
        base = "_".join(
            [
                period.period_type.upper().replace("-", "_"),
                str(period.period_year),
                f"{period.period_number:02d}",
                run_type.upper().replace("-", "_"),
            ]
        )
        result = await session.execute(
            select(PayrollRun.run_number).where(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.run_number.like(f"{base}%"),
            )
        )
        taken = set(result.scalars().all())
        if base not in taken:
            return base
        suffix = 2
        while f"{base}_{suffix}" in taken:
            suffix += 1
        return f"{base}_{suffix}"

    # ===== Calculate =====

    async def calculate(
        self, tenant_id: UUID, run_id: UUID, actor_id: UUID | None = None
    ) -> PayrollRun:
        """Calculate every member of the run and replace its records.

        Per-employee failures become ``error`` records. The record set and
        run totals are replaced in one transaction; on failure the previous
        state is left intact and the lock is released.

        Raises:
            NotFoundError: Unknown run
            StateError: Run is not draft or calculated
            ConflictError: Another operation holds the run lock
        """
        token = await self.lock.acquire(tenant_id, run_id, "calculate")
        log = run_logger(logger, run_id)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    run = await self._load_run(session, tenant_id, run_id, members=True)
                    period = run.period
                    window = PeriodWindow(
                        period_id=period.period_id,
                        start_date=period.start_date,
                        end_date=period.end_date,
                        pay_date=period.pay_date,
                    )
                    members = list(run.members)
                    employee_ids = [m.employee_id for m in members]

                    # Fetch everything once for the whole run
                    snapshots = await self._snapshots(session).get_snapshots(
                        tenant_id, employee_ids
                    )
                    attendance_source = self._attendance(session)
                    attendance = await attendance_source.get_attendance(
                        tenant_id, employee_ids, window.start_date, window.end_date
                    )
                    holidays = await attendance_source.get_holidays(
                        tenant_id, window.start_date, window.end_date
                    )
                    catalog = await self._components(session).load(
                        tenant_id, employee_ids, window
                    )
                    method = CalculationMethod(run.calculation_method)

                calculator = PayrollCalculator(
                    period=window,
                    method=method,
                    catalog=catalog,
                    tax_engine=self.tax_engine,
                    aggregator=self.aggregator,
                    holidays=holidays,
                    as_of=self.today(),
                    engine_version=self.settings.engine_version,
                )
                log.info("Calculating %d employees", len(members))
                results = await calculator.calculate_all(
                    [
                        EmployeeInputs(
                            employee_id=m.employee_id,
                            employee_code=m.employee_code,
                            employee_name=m.employee_name,
                            snapshot=snapshots.get(m.employee_id),
                            attendance=attendance.get(m.employee_id),
                        )
                        for m in members
                    ],
                    workers=self.settings.calculation_workers,
                )

                async with session.begin():
                    run = await self._load_run(session, tenant_id, run_id, refresh=True)
                    RunLockService.verify(run, token, "calculate")
                    RunStateMachine.validate_transition(run.status, RunStatus.CALCULATED)

                    await self._delete_records(session, run_id)
                    now = utcnow()
                    for result in results:
                        session.add(self._build_record(run_id, result, now))

                    counted = [r for r in results if r.status != "error" and r.totals]
                    run.total_gross_amount = sum((r.totals.gross_salary for r in counted), ZERO)
                    run.total_deductions_amount = sum(
                        (r.totals.total_deductions for r in counted), ZERO
                    )
                    run.total_taxes_amount = sum((r.totals.total_taxes for r in counted), ZERO)
                    run.total_net_amount = sum((r.totals.net_salary for r in counted), ZERO)
                    run.processed_employees = sum(1 for r in results if r.success)
                    run.error_employees = sum(1 for r in results if r.status == "error")

                    previous_status = run.status
                    run.status = RunStatus.CALCULATED.value
                    run.calculated_at = now
                    RunLockService.clear(run)

                    await self._record_audit(
                        session,
                        run,
                        "calculated",
                        actor_id,
                        {
                            "previous_status": previous_status,
                            "processed_employees": run.processed_employees,
                            "error_employees": run.error_employees,
                            "total_net_amount": str(run.total_net_amount),
                        },
                    )
        except Exception:
            log.warning("Calculation failed; releasing lock")
            await self.lock.release(run_id, token)
            raise

        log.info(
            "Calculated: %d ok, %d errors, net %s",
            run.processed_employees,
            run.error_employees,
            run.total_net_amount,
        )
        return run

    def _build_record(
        self, run_id: UUID, result: CalculationResult, now: datetime
    ) -> PayrollRecord:
        record = PayrollRecord(
            run_id=run_id,
            employee_id=result.employee_id,
            employee_code=result.employee_code,
            employee_name=result.employee_name,
            calculation_status=result.status,
            payment_status="unpaid",
            calculation_fingerprint=result.fingerprint or None,
            calculated_at=now,
            notes="; ".join(result.notes) or None,
        )
        totals = result.totals
        if totals is not None:
            record.base_salary = totals.base_salary
            record.expected_base_salary = totals.expected_base_salary
            record.actual_earned_base = totals.actual_earned_base
            record.attendance_shortfall = totals.attendance_shortfall
            record.worked_days = totals.worked_days
            record.overtime_hours = totals.overtime_hours
            record.total_earnings = totals.total_earnings
            record.total_deductions = totals.total_deductions
            record.total_taxes = totals.total_taxes
            record.gross_salary = totals.gross_salary
            record.taxable_income = totals.taxable_income
            record.net_salary = totals.net_salary
        else:
            for name in (
                "base_salary",
                "expected_base_salary",
                "actual_earned_base",
                "attendance_shortfall",
                "worked_days",
                "overtime_hours",
                "total_earnings",
                "total_deductions",
                "total_taxes",
                "gross_salary",
                "taxable_income",
                "net_salary",
            ):
                setattr(record, name, ZERO)

        record.components = [
            ComponentApplication(
                sequence=i,
                component_code=c.code,
                component_name=c.name,
                component_type=c.component_type.value,
                component_category=c.category,
                calculated_amount=self.aggregator.round(c.amount),
                calculation_method=c.calculation_method,
                details={**c.details, "exact_amount": str(c.amount)},
            )
            for i, c in enumerate(result.components, start=1)
        ]
        return record

    async def _delete_records(self, session: AsyncSession, run_id: UUID) -> None:
        record_ids = select(PayrollRecord.record_id).where(PayrollRecord.run_id == run_id)
        await session.execute(
            delete(ComponentApplication)
            .where(ComponentApplication.record_id.in_(record_ids))
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            delete(PayrollRecord)
            .where(PayrollRecord.run_id == run_id)
            .execution_options(synchronize_session=False)
        )

    # ===== Process =====

    async def process(
        self,
        tenant_id: UUID,
        run_id: UUID,
        payment_method: str,
        payment_date: date | None,
        batch_reference: str | None = None,
        actor_id: UUID | None = None,
    ) -> PayrollRun:
        """Pay the calculated records and complete the run.

        Records in ``calculated`` status are marked paid; all others are
        not payable. Installment deductions applied by paid records are
        decremented and deactivated when they reach zero.

        Raises:
            ValidationError: Bad payment method or missing payment date
            StateError: Run is not calculated
            ConflictError: Another operation holds the run lock
        """
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method {payment_method!r}; "
                f"expected one of {', '.join(PAYMENT_METHODS)}"
            )
        if payment_date is None:
            raise ValidationError("Payment date is required")

        token = await self.lock.acquire(tenant_id, run_id, "process")
        log = run_logger(logger, run_id)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    run = await self._load_run(session, tenant_id, run_id, refresh=True)
                    RunLockService.verify(run, token, "process")
                    RunStateMachine.validate_transition(run.status, RunStatus.PROCESSING)
                    run.status = RunStatus.PROCESSING.value
                    await session.flush()

                    records = (
                        await session.execute(
                            select(PayrollRecord)
                            .where(PayrollRecord.run_id == run_id)
                            .options(selectinload(PayrollRecord.components))
                        )
                    ).scalars().all()

                    paid = 0
                    installment_ids: list[UUID] = []
                    for record in records:
                        if record.calculation_status != "calculated":
                            record.payment_status = "not_payable"
                            continue
                        record.payment_status = "paid"
                        record.payment_method = payment_method
                        record.payment_date = payment_date
                        record.payment_reference = (
                            f"{batch_reference}-{record.employee_code}" if batch_reference else None
                        )
                        paid += 1
                        installment_ids.extend(
                            UUID(c.details["assignment_id"])
                            for c in record.components
                            if c.details.get("source") == "deduction"
                            and c.details.get("remaining_installments") is not None
                        )

                    deactivated = await self._apply_installments(session, installment_ids)

                    now = utcnow()
                    RunStateMachine.validate_transition(run.status, RunStatus.COMPLETED)
                    run.status = RunStatus.COMPLETED.value
                    run.processed_employees = run.total_employees
                    run.processed_at = now
                    run.processed_by = actor_id
                    run.payment_method = payment_method
                    run.payment_date = payment_date
                    run.batch_reference = batch_reference
                    RunLockService.clear(run)

                    await self._record_audit(
                        session,
                        run,
                        "processed",
                        actor_id,
                        {
                            "payment_method": payment_method,
                            "payment_date": payment_date.isoformat(),
                            "batch_reference": batch_reference,
                            "paid_records": paid,
                            "installments_decremented": len(installment_ids),
                            "deductions_deactivated": deactivated,
                        },
                    )
        except Exception:
            log.warning("Processing failed; releasing lock")
            await self.lock.release(run_id, token)
            raise

        log.info("Processed: %d records paid via %s", paid, payment_method)
        return run

    async def _apply_installments(self, session: AsyncSession, deduction_ids: list[UUID]) -> int:
        """Decrement installment counters; returns how many reached zero."""
        if not deduction_ids:
            return 0
        counts = Counter(deduction_ids)
        result = await session.execute(
            select(EmployeeDeduction).where(EmployeeDeduction.deduction_id.in_(list(counts)))
        )
        deactivated = 0
        for deduction in result.scalars().all():
            if deduction.remaining_installments is None:
                continue
            remaining = max(0, deduction.remaining_installments - counts[deduction.deduction_id])
            deduction.remaining_installments = remaining
            if remaining == 0:
                deduction.is_active = False
                deactivated += 1
        return deactivated

    # ===== Cancel =====

    async def cancel(
        self,
        tenant_id: UUID,
        run_id: UUID,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> PayrollRun:
        """Cancel a draft or calculated run and discard its records.

        Raises:
            StateError: Run is processing, completed or already cancelled
            ConflictError: Another operation holds the run lock
        """
        token = await self.lock.acquire(tenant_id, run_id, "cancel")
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    run = await self._load_run(session, tenant_id, run_id, refresh=True)
                    RunLockService.verify(run, token, "cancel")
                    previous_status = run.status
                    RunStateMachine.validate_transition(previous_status, RunStatus.CANCELLED)

                    await self._delete_records(session, run_id)
                    run.status = RunStatus.CANCELLED.value
                    run.cancellation_reason = reason
                    run.cancelled_at = utcnow()
                    RunLockService.clear(run)

                    await self._record_audit(
                        session,
                        run,
                        "cancelled",
                        actor_id,
                        {"previous_status": previous_status, "reason": reason},
                    )
        except Exception:
            await self.lock.release(run_id, token)
            raise

        run_logger(logger, run_id).info("Cancelled (was %s)", previous_status)
        return run

    # ===== Queries =====

    async def get_run(self, tenant_id: UUID, run_id: UUID) -> PayrollRun:
        async with self.session_factory() as session:
            return await self._load_run(session, tenant_id, run_id)

    async def list_runs(
        self,
        tenant_id: UUID,
        status: str | None = None,
        period_id: UUID | None = None,
        run_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[PayrollRun], int]:
        """List runs newest first, with the total count before paging."""
        conditions = [PayrollRun.tenant_id == tenant_id]
        if status:
            conditions.append(PayrollRun.status == status)
        if period_id:
            conditions.append(PayrollRun.period_id == period_id)
        if run_type:
            conditions.append(PayrollRun.run_type == run_type)

        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(PayrollRun).where(*conditions)
            )
            result = await session.execute(
                select(PayrollRun)
                .where(*conditions)
                .options(selectinload(PayrollRun.period))
                .order_by(PayrollRun.created_at.desc(), PayrollRun.run_number.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), int(total or 0)

    async def get_summary(self, tenant_id: UUID, run_id: UUID) -> dict[str, Any]:
        """Run, period and aggregate statistics over its records."""
        async with self.session_factory() as session:
            run = await self._load_run(session, tenant_id, run_id)
            rows = (
                await session.execute(
                    select(
                        PayrollRecord.calculation_status,
                        PayrollRecord.payment_status,
                        PayrollRecord.net_salary,
                        PayrollRecord.attendance_shortfall,
                    ).where(PayrollRecord.run_id == run_id)
                )
            ).all()

        status_breakdown = Counter(r.calculation_status for r in rows)
        payment_breakdown = Counter(r.payment_status for r in rows)
        calculated = [r for r in rows if r.calculation_status == "calculated"]
        average_net = (
            self.aggregator.round(sum((r.net_salary for r in calculated), ZERO) / len(calculated))
            if calculated
            else ZERO
        )

        return {
            "run": run,
            "period": run.period,
            "statistics": {
                "total_employees": run.total_employees,
                "processed_employees": run.processed_employees,
                "error_employees": run.error_employees,
                "record_count": len(rows),
                "total_gross_amount": run.total_gross_amount,
                "total_deductions_amount": run.total_deductions_amount,
                "total_taxes_amount": run.total_taxes_amount,
                "total_net_amount": run.total_net_amount,
                "total_attendance_shortfall": sum(
                    (r.attendance_shortfall for r in calculated), ZERO
                ),
                "average_net_salary": average_net,
            },
            "status_breakdown": dict(status_breakdown),
            "payment_breakdown": dict(payment_breakdown),
        }

    async def list_records(self, tenant_id: UUID, run_id: UUID) -> list[PayrollRecord]:
        async with self.session_factory() as session:
            await self._load_run(session, tenant_id, run_id)
            result = await session.execute(
                select(PayrollRecord)
                .where(PayrollRecord.run_id == run_id)
                .order_by(PayrollRecord.employee_code)
            )
            return list(result.scalars().all())

    async def get_record_components(
        self, tenant_id: UUID, record_id: UUID
    ) -> tuple[PayrollRecord, list[ComponentApplication]]:
        """A record and its component lines in application order."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(PayrollRecord)
                .join(PayrollRun, PayrollRun.run_id == PayrollRecord.run_id)
                .where(PayrollRecord.record_id == record_id, PayrollRun.tenant_id == tenant_id)
                .options(selectinload(PayrollRecord.components))
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise NotFoundError("Payroll record", record_id)
            return record, list(record.components)

    async def list_audit_events(self, tenant_id: UUID, run_id: UUID) -> list[PayrollAuditEvent]:
        async with self.session_factory() as session:
            await self._load_run(session, tenant_id, run_id)
            result = await session.execute(
                select(PayrollAuditEvent)
                .where(
                    PayrollAuditEvent.tenant_id == tenant_id,
                    PayrollAuditEvent.run_id == run_id,
                )
                .order_by(PayrollAuditEvent.created_at)
            )
            return list(result.scalars().all())

    # ===== Helpers =====

    async def _load_run(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        run_id: UUID,
        members: bool = False,
        refresh: bool = False,
    ) -> PayrollRun:
        """Load a run with its period, raising NotFoundError if missing."""
        options = [selectinload(PayrollRun.period)]
        if members:
            options.append(selectinload(PayrollRun.members))
        stmt = (
            select(PayrollRun)
            .where(PayrollRun.run_id == run_id, PayrollRun.tenant_id == tenant_id)
            .options(*options)
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        run = (await session.execute(stmt)).scalar_one_or_none()
        if run is None:
            raise NotFoundError("Payroll run", run_id)
        return run

    async def _record_audit(
        self,
        session: AsyncSession,
        run: PayrollRun,
        action: str,
        actor_id: UUID | None = None,
        details: dict | None = None,
    ) -> None:
        """Record an audit event for a run action."""
        session.add(
            PayrollAuditEvent(
                tenant_id=run.tenant_id,
                run_id=run.run_id,
                action=action,
                actor_id=actor_id,
                details=details,
            )
        )
