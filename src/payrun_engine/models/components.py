"""Component templates and employee allowance/deduction assignments."""

from __future__ import annotations

from datetime import date
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
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payrun_engine.models.base import Base, Money, TimestampMixin


class ComponentTemplate(Base, TimestampMixin):
    """Company-wide earning, deduction or tax definition."""

    __tablename__ = "payroll_component_template"

    template_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    component_type: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="other")
    calculation_type: Mapped[str] = mapped_column(String, nullable=False, default="fixed")
    amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    formula: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Targeting: 'all', 'department' (applies_to_department_id) or
    # 'employees' (applies_to_employee_ids)
    applies_to: Mapped[str] = mapped_column(String, nullable=False, default="all")
    applies_to_department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    applies_to_employee_ids: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)

    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="component_template_tenant_code_unique"),
        CheckConstraint(
            "component_type IN ('earning', 'deduction', 'tax')",
            name="component_template_type_check",
        ),
        CheckConstraint(
            "calculation_type IN ('fixed', 'percentage', 'formula')",
            name="component_template_calc_type_check",
        ),
        CheckConstraint(
            "applies_to IN ('all', 'department', 'employees')",
            name="component_template_applies_to_check",
        ),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="component_template_dates_check",
        ),
    )


class EmployeeAllowance(Base, TimestampMixin):
    """Allowance assigned to a single employee."""

    __tablename__ = "employee_allowance"

    allowance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    type_code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_percentage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="employee_allowance_amount_check"),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="employee_allowance_dates_check",
        ),
    )


class EmployeeDeduction(Base, TimestampMixin):
    """Deduction assigned to a single employee, optionally in installments."""

    __tablename__ = "employee_deduction"

    deduction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    type_code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_percentage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    remaining_installments: Mapped[int | None] = mapped_column(Integer, nullable=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="employee_deduction_amount_check"),
        CheckConstraint(
            "remaining_installments IS NULL OR remaining_installments >= 0",
            name="employee_deduction_installments_check",
        ),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="employee_deduction_dates_check",
        ),
    )
