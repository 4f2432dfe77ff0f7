"""Payroll period, run, record and component application models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrun_engine.models.base import Base, Money, TimestampMixin

ZERO = Decimal("0")
ACTIVE_REGULAR_RUN = text(
    "run_type = 'regular' AND status IN ('draft', 'calculated', 'processing')"
)


# ===== Periods =====


class PayrollPeriod(Base, TimestampMixin):
    """Payroll period instance."""

    __tablename__ = "payroll_period"

    period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    period_type: Mapped[str] = mapped_column(String, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    cut_off_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "period_type",
            "period_year",
            "period_number",
            name="payroll_period_tenant_number_unique",
        ),
        CheckConstraint(
            "period_type IN ('weekly', 'bi-weekly', 'monthly', 'quarterly')",
            name="payroll_period_type_check",
        ),
        CheckConstraint(
            "status IN ('active', 'closed')",
            name="payroll_period_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="payroll_period_dates_check"),
    )

    runs: Mapped[list[PayrollRun]] = relationship(back_populates="period")


# ===== Runs =====


class PayrollRun(Base, TimestampMixin):
    """Payroll run: one batch calculation for a period and population."""

    __tablename__ = "payroll_run"

    run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    run_number: Mapped[str] = mapped_column(String, nullable=False)
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="RESTRICT"),
        nullable=False,
    )
    run_name: Mapped[str] = mapped_column(String, nullable=False)
    run_type: Mapped[str] = mapped_column(String, nullable=False, default="regular")
    calculation_method: Mapped[str] = mapped_column(String, nullable=False, default="advanced")
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    employee_filters: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Statistics
    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_deductions_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_taxes_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_net_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    # Workflow
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)
    calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Payment
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    batch_reference: Mapped[str | None] = mapped_column(String, nullable=True)

    # Exclusive mutation lock
    locked_by: Mapped[str | None] = mapped_column(String, nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "run_number", name="payroll_run_tenant_number_unique"),
        # At most one draft, calculated or processing regular run per period
        Index(
            "payroll_run_one_active_regular",
            "tenant_id",
            "period_id",
            unique=True,
            postgresql_where=ACTIVE_REGULAR_RUN,
            sqlite_where=ACTIVE_REGULAR_RUN,
        ),
        CheckConstraint(
            "run_type IN ('regular', 'bonus', 'correction', 'off-cycle')",
            name="payroll_run_type_check",
        ),
        CheckConstraint(
            "calculation_method IN ('simple', 'advanced')",
            name="payroll_run_method_check",
        ),
        CheckConstraint(
            "status IN ('draft', 'calculated', 'processing', 'completed', 'cancelled')",
            name="payroll_run_status_check",
        ),
        CheckConstraint(
            "total_gross_amount >= 0 AND total_deductions_amount >= 0 "
            "AND total_taxes_amount >= 0 AND total_net_amount >= 0",
            name="payroll_run_totals_check",
        ),
    )

    # Relationships
    period: Mapped[PayrollPeriod] = relationship(back_populates="runs")
    members: Mapped[list[PayrollRunMember]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="PayrollRunMember.employee_code",
    )
    records: Mapped[list[PayrollRecord]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="PayrollRecord.employee_code",
    )


class PayrollRunMember(Base):
    """Employee population snapshot taken when the run is created."""

    __tablename__ = "payroll_run_member"

    member_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.run_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    employee_name: Mapped[str] = mapped_column(String, nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    employee_type: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("run_id", "employee_id", name="payroll_run_member_unique"),
    )

    run: Mapped[PayrollRun] = relationship(back_populates="members")


# ===== Records =====


class PayrollRecord(Base):
    """One employee's computed payroll outcome within a run."""

    __tablename__ = "payroll_record"

    record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.run_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    employee_name: Mapped[str] = mapped_column(String, nullable=False)
    calculation_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    base_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    expected_base_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    actual_earned_base: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    attendance_shortfall: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    worked_days: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    overtime_hours: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_earnings: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_taxes: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    gross_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    taxable_income: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    net_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    payment_status: Mapped[str] = mapped_column(String, nullable=False, default="unpaid")
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String, nullable=True)

    calculation_fingerprint: Mapped[str | None] = mapped_column(String, nullable=True)
    calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("run_id", "employee_id", name="payroll_record_run_employee_unique"),
        CheckConstraint(
            "calculation_status IN ('pending', 'calculated', 'error', 'excluded')",
            name="payroll_record_status_check",
        ),
        CheckConstraint(
            "payment_status IN ('unpaid', 'paid', 'not_payable')",
            name="payroll_record_payment_status_check",
        ),
        CheckConstraint(
            "gross_salary >= 0 AND net_salary >= 0 AND total_deductions >= 0 "
            "AND total_taxes >= 0 AND attendance_shortfall >= 0",
            name="payroll_record_amounts_check",
        ),
    )

    run: Mapped[PayrollRun] = relationship(back_populates="records")
    components: Mapped[list[ComponentApplication]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="ComponentApplication.sequence",
    )


class ComponentApplication(Base):
    """A component line item applied to a payroll record."""

    __tablename__ = "payroll_record_component"

    application_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    record_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_record.record_id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    component_code: Mapped[str] = mapped_column(String, nullable=False)
    component_name: Mapped[str] = mapped_column(String, nullable=False)
    component_type: Mapped[str] = mapped_column(String, nullable=False)
    component_category: Mapped[str] = mapped_column(String, nullable=False)
    calculated_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    calculation_method: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("record_id", "sequence", name="payroll_record_component_seq_unique"),
        CheckConstraint(
            "component_type IN ('earning', 'deduction', 'tax')",
            name="payroll_record_component_type_check",
        ),
        CheckConstraint("calculated_amount >= 0", name="payroll_record_component_amount_check"),
    )

    record: Mapped[PayrollRecord] = relationship(back_populates="components")


# ===== Audit =====


class PayrollAuditEvent(Base, TimestampMixin):
    """Audit trail entry for run lifecycle actions."""

    __tablename__ = "payroll_audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    run_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
