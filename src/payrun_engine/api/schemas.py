"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

DataT = TypeVar("DataT")


# ============================================================================
# Envelope
# ============================================================================


class ApiResponse(BaseModel, Generic[DataT]):
    """Envelope carried by every response."""

    success: bool = True
    data: DataT | None = None
    message: str | None = None


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    success: bool = False
    data: dict[str, Any] | None = None
    message: str


# ============================================================================
# Period schemas
# ============================================================================


class PeriodCreate(BaseModel):
    """Schema for registering a payroll period."""

    period_type: str = Field(..., description="weekly, bi-weekly, monthly or quarterly")
    period_year: int = Field(..., ge=1900, le=9999)
    period_number: int = Field(..., ge=1)
    start_date: date
    end_date: date
    pay_date: date
    cut_off_date: date | None = None


class PeriodUpdate(BaseModel):
    """Schema for updating a payroll period; only set fields change."""

    period_type: str | None = None
    period_year: int | None = None
    period_number: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    pay_date: date | None = None
    cut_off_date: date | None = None
    status: str | None = None


class PeriodResponse(BaseModel):
    """Schema for payroll period response."""

    model_config = ConfigDict(from_attributes=True)

    period_id: UUID
    tenant_id: UUID
    period_type: str
    period_year: int
    period_number: int
    start_date: date
    end_date: date
    cut_off_date: date | None = None
    pay_date: date
    status: str


class AvailablePeriodResponse(PeriodResponse):
    """Period listed as a candidate for a new run."""

    has_active_regular_run: bool = False


# ============================================================================
# Run schemas
# ============================================================================


class EmployeeFiltersIn(BaseModel):
    """Population filters for a new run."""

    department_id: UUID | None = None
    employee_type: str | None = None
    employee_ids: list[UUID] = Field(default_factory=list)


class RunCreate(BaseModel):
    """Schema for creating a payroll run."""

    period_id: UUID
    run_name: str = Field(..., min_length=1, max_length=200)
    run_type: str = "regular"
    calculation_method: str = "advanced"
    employee_filters: EmployeeFiltersIn | None = None
    notes: str | None = None


class RunResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    run_id: UUID
    tenant_id: UUID
    run_number: str
    period_id: UUID
    run_name: str
    run_type: str
    calculation_method: str
    status: str
    employee_filters: dict[str, Any] = Field(default_factory=dict)
    notes: str | None = None
    total_employees: int
    processed_employees: int
    error_employees: int
    total_gross_amount: Decimal
    total_deductions_amount: Decimal
    total_taxes_amount: Decimal
    total_net_amount: Decimal
    created_by: UUID | None = None
    created_at: datetime
    calculated_at: datetime | None = None
    processed_at: datetime | None = None
    processed_by: UUID | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    payment_method: str | None = None
    payment_date: date | None = None
    batch_reference: str | None = None


class RunListResponse(BaseModel):
    """Schema for listing payroll runs."""

    items: list[RunResponse]
    total: int
    limit: int
    offset: int


class ProcessRequest(BaseModel):
    """Schema for processing (paying) a calculated run."""

    payment_method: str
    payment_date: date | None = None
    batch_reference: str | None = Field(None, max_length=100)


class CancelRequest(BaseModel):
    """Schema for cancelling a run."""

    cancellation_reason: str | None = Field(None, max_length=500)


class RunStatistics(BaseModel):
    """Aggregate figures over a run's records."""

    total_employees: int
    processed_employees: int
    error_employees: int
    record_count: int
    total_gross_amount: Decimal
    total_deductions_amount: Decimal
    total_taxes_amount: Decimal
    total_net_amount: Decimal
    total_attendance_shortfall: Decimal
    average_net_salary: Decimal


class RunSummaryResponse(BaseModel):
    """Run with its period and statistics."""

    run: RunResponse
    period: PeriodResponse
    statistics: RunStatistics
    status_breakdown: dict[str, int]
    payment_breakdown: dict[str, int]


class AuditEventResponse(BaseModel):
    """Schema for a run audit trail entry."""

    model_config = ConfigDict(from_attributes=True)

    audit_event_id: UUID
    run_id: UUID
    action: str
    actor_id: UUID | None = None
    details: dict[str, Any] | None = None
    created_at: datetime


# ============================================================================
# Record schemas
# ============================================================================


class RecordResponse(BaseModel):
    """Schema for one employee's payroll record."""

    model_config = ConfigDict(from_attributes=True)

    record_id: UUID
    run_id: UUID
    employee_id: UUID
    employee_code: str
    employee_name: str
    calculation_status: str
    base_salary: Decimal
    expected_base_salary: Decimal
    actual_earned_base: Decimal
    attendance_shortfall: Decimal
    worked_days: Decimal
    overtime_hours: Decimal
    total_earnings: Decimal
    total_deductions: Decimal
    total_taxes: Decimal
    gross_salary: Decimal
    taxable_income: Decimal
    net_salary: Decimal
    payment_status: str
    payment_method: str | None = None
    payment_date: date | None = None
    payment_reference: str | None = None
    calculation_fingerprint: str | None = None
    calculated_at: datetime | None = None
    notes: str | None = None


class ComponentResponse(BaseModel):
    """Schema for a component line on a record."""

    model_config = ConfigDict(from_attributes=True)

    application_id: UUID
    sequence: int
    component_code: str
    component_name: str
    component_type: str
    component_category: str
    calculated_amount: Decimal
    calculation_method: str
    details: dict[str, Any] = Field(default_factory=dict)


class RecordComponentsResponse(BaseModel):
    """A record with its component breakdown."""

    record: RecordResponse
    components: list[ComponentResponse]
