"""Payroll period registry."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.errors import NotFoundError, StateError, ValidationError
from payrun_engine.models import PayrollPeriod, PayrollRun
from payrun_engine.services.state_machine import RunStateMachine, RunStatus

PERIOD_TYPES = ("weekly", "bi-weekly", "monthly", "quarterly")

# Fields frozen once a non-cancelled run references the period
IMMUTABLE_FIELDS = frozenset(
    {"period_type", "period_year", "period_number", "start_date", "end_date", "pay_date"}
)
MUTABLE_FIELDS = IMMUTABLE_FIELDS | {"cut_off_date", "status"}


class PeriodRegistry:
    """Stores payroll periods for a tenant."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_period(self, tenant_id: UUID, period_id: UUID) -> PayrollPeriod:
        """Load a period, raising NotFoundError if it does not exist."""
        result = await self.session.execute(
            select(PayrollPeriod).where(
                PayrollPeriod.period_id == period_id,
                PayrollPeriod.tenant_id == tenant_id,
            )
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise NotFoundError("Payroll period", period_id)
        return period

    async def list_available(self, tenant_id: UUID, limit: int = 12) -> list[dict[str, Any]]:
        """Active periods, most recent first, with their regular-run status.

        A period with an active regular run can still take bonus, correction
        and off-cycle runs, so it is listed and flagged rather than hidden.
        """
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(PayrollPeriod.tenant_id == tenant_id, PayrollPeriod.status == "active")
            .order_by(PayrollPeriod.start_date.desc())
            .limit(limit)
        )
        periods = list(result.scalars().all())
        if not periods:
            return []

        blocked = await self.session.execute(
            select(PayrollRun.period_id).where(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.period_id.in_([p.period_id for p in periods]),
                PayrollRun.run_type == "regular",
                PayrollRun.status.in_([s.value for s in RunStateMachine.ACTIVE]),
            )
        )
        blocked_ids = set(blocked.scalars().all())

        return [
            {"period": p, "has_active_regular_run": p.period_id in blocked_ids}
            for p in periods
        ]

    async def register_period(
        self,
        tenant_id: UUID,
        period_type: str,
        period_year: int,
        period_number: int,
        start_date: date,
        end_date: date,
        pay_date: date,
        cut_off_date: date | None = None,
    ) -> PayrollPeriod:
        """Create a new active period.

        Raises:
            ValidationError: On bad dates, unknown type or a duplicate number
        """
        self._validate(period_type, period_number, start_date, end_date, pay_date, cut_off_date)

        existing = await self.session.execute(
            select(PayrollPeriod.period_id).where(
                PayrollPeriod.tenant_id == tenant_id,
                PayrollPeriod.period_type == period_type,
                PayrollPeriod.period_year == period_year,
                PayrollPeriod.period_number == period_number,
            )
        )
        if existing.first() is not None:
            raise ValidationError(
                f"Period {period_type} {period_year}/{period_number} already exists"
            )

        period = PayrollPeriod(
            tenant_id=tenant_id,
            period_type=period_type,
            period_year=period_year,
            period_number=period_number,
            start_date=start_date,
            end_date=end_date,
            cut_off_date=cut_off_date,
            pay_date=pay_date,
            status="active",
        )
        self.session.add(period)
        await self.session.flush()
        return period

    async def update_period(
        self, tenant_id: UUID, period_id: UUID, changes: dict[str, Any]
    ) -> PayrollPeriod:
        """Apply changes to a period.

        Raises:
            StateError: If a frozen field changes while a non-cancelled run
                references the period
            ValidationError: On unknown fields or bad dates
        """
        period = await self.get_period(tenant_id, period_id)

        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update period fields: {', '.join(sorted(unknown))}")

        frozen = {
            k for k, v in changes.items() if k in IMMUTABLE_FIELDS and getattr(period, k) != v
        }
        if frozen and await self._is_referenced(period_id):
            raise StateError(
                period.status,
                "modify payroll period",
                reason=f"referenced by a payroll run ({', '.join(sorted(frozen))})",
            )

        if "status" in changes and changes["status"] not in ("active", "closed"):
            raise ValidationError(f"Invalid period status {changes['status']!r}")

        merged = {k: getattr(period, k) for k in MUTABLE_FIELDS}
        merged.update(changes)
        self._validate(
            merged["period_type"],
            merged["period_number"],
            merged["start_date"],
            merged["end_date"],
            merged["pay_date"],
            merged["cut_off_date"],
        )

        for key, value in changes.items():
            setattr(period, key, value)
        await self.session.flush()
        return period

    async def _is_referenced(self, period_id: UUID) -> bool:
        result = await self.session.execute(
            select(PayrollRun.run_id)
            .where(
                PayrollRun.period_id == period_id,
                PayrollRun.status != RunStatus.CANCELLED.value,
            )
            .limit(1)
        )
        return result.first() is not None

    @staticmethod
    def _validate(
        period_type: str,
        period_number: int,
        start_date: date,
        end_date: date,
        pay_date: date,
        cut_off_date: date | None,
    ) -> None:
        if period_type not in PERIOD_TYPES:
            raise ValidationError(
                f"Invalid period type {period_type!r}; expected one of {', '.join(PERIOD_TYPES)}"
            )
        if period_number < 1:
            raise ValidationError("Period number must be positive")
        if end_date < start_date:
            raise ValidationError("Period end date must not precede start date")
        if pay_date < start_date:
            raise ValidationError("Pay date must not precede period start")
        if cut_off_date is not None and not (start_date <= cut_off_date <= end_date):
            raise ValidationError("Cut-off date must fall within the period")
