"""Payroll run API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payrun_engine.api.dependencies import ActorId, Orchestrator, TenantId
from payrun_engine.api.schemas import (
    ApiResponse,
    AuditEventResponse,
    CancelRequest,
    ErrorResponse,
    PeriodResponse,
    ProcessRequest,
    RecordResponse,
    RunCreate,
    RunListResponse,
    RunResponse,
    RunStatistics,
    RunSummaryResponse,
)

router = APIRouter(prefix="/payroll-runs", tags=["payroll-runs"])

RunIdPath = Annotated[UUID, Path()]


# ============================================================================
# Run CRUD
# ============================================================================


@router.post(
    "",
    response_model=ApiResponse[RunResponse],
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_run(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    actor_id: ActorId,
    payload: RunCreate,
) -> ApiResponse[RunResponse]:
    """Create a payroll run in draft status."""
    filters = (
        payload.employee_filters.model_dump(mode="json") if payload.employee_filters else None
    )
    run = await orchestrator.create_run(
        tenant_id,
        period_id=payload.period_id,
        run_name=payload.run_name,
        run_type=payload.run_type,
        calculation_method=payload.calculation_method,
        employee_filters=filters,
        notes=payload.notes,
        created_by=actor_id,
    )
    return ApiResponse(data=RunResponse.model_validate(run), message="Payroll run created")


@router.get(
    "",
    response_model=ApiResponse[RunListResponse],
)
async def list_runs(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    period_id: UUID | None = None,
    run_type: str | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ApiResponse[RunListResponse]:
    """List payroll runs for a tenant with optional filters."""
    runs, total = await orchestrator.list_runs(
        tenant_id,
        status=status_filter,
        period_id=period_id,
        run_type=run_type,
        limit=limit,
        offset=offset,
    )
    return ApiResponse(
        data=RunListResponse(
            items=[RunResponse.model_validate(r) for r in runs],
            total=total,
            limit=limit,
            offset=offset,
        )
    )


@router.get(
    "/{run_id}",
    response_model=ApiResponse[RunResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_run(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    run_id: RunIdPath,
) -> ApiResponse[RunResponse]:
    """Get a payroll run."""
    run = await orchestrator.get_run(tenant_id, run_id)
    return ApiResponse(data=RunResponse.model_validate(run))


@router.get(
    "/{run_id}/summary",
    response_model=ApiResponse[RunSummaryResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_run_summary(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    run_id: RunIdPath,
) -> ApiResponse[RunSummaryResponse]:
    """Get a run with aggregate statistics."""
    summary = await orchestrator.get_summary(tenant_id, run_id)
    return ApiResponse(
        data=RunSummaryResponse(
            run=RunResponse.model_validate(summary["run"]),
            period=PeriodResponse.model_validate(summary["period"]),
            statistics=RunStatistics(**summary["statistics"]),
            status_breakdown=summary["status_breakdown"],
            payment_breakdown=summary["payment_breakdown"],
        )
    )


@router.get(
    "/{run_id}/records",
    response_model=ApiResponse[list[RecordResponse]],
    responses={404: {"model": ErrorResponse}},
)
async def list_run_records(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    run_id: RunIdPath,
) -> ApiResponse[list[RecordResponse]]:
    """List per-employee records of a run."""
    records = await orchestrator.list_records(tenant_id, run_id)
    return ApiResponse(data=[RecordResponse.model_validate(r) for r in records])


@router.get(
    "/{run_id}/audit",
    response_model=ApiResponse[list[AuditEventResponse]],
    responses={404: {"model": ErrorResponse}},
)
async def list_run_audit_events(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    run_id: RunIdPath,
) -> ApiResponse[list[AuditEventResponse]]:
    """List the audit trail of a run."""
    events = await orchestrator.list_audit_events(tenant_id, run_id)
    return ApiResponse(data=[AuditEventResponse.model_validate(e) for e in events])


# ============================================================================
# Lifecycle operations
# ============================================================================


@router.post(
    "/{run_id}/calculate",
    response_model=ApiResponse[RunResponse],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def calculate_run(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    actor_id: ActorId,
    run_id: RunIdPath,
) -> ApiResponse[RunResponse]:
    """Calculate or recalculate every record of a run."""
    run = await orchestrator.calculate(tenant_id, run_id, actor_id=actor_id)
    return ApiResponse(
        data=RunResponse.model_validate(run),
        message=(
            f"Calculated {run.processed_employees} of {run.total_employees} employees"
            f" ({run.error_employees} errors)"
        ),
    )


@router.post(
    "/{run_id}/process",
    response_model=ApiResponse[RunResponse],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def process_run(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    actor_id: ActorId,
    run_id: RunIdPath,
    payload: ProcessRequest,
) -> ApiResponse[RunResponse]:
    """Pay a calculated run."""
    run = await orchestrator.process(
        tenant_id,
        run_id,
        payment_method=payload.payment_method,
        payment_date=payload.payment_date,
        batch_reference=payload.batch_reference,
        actor_id=actor_id,
    )
    return ApiResponse(data=RunResponse.model_validate(run), message="Payroll run processed")


@router.post(
    "/{run_id}/cancel",
    response_model=ApiResponse[RunResponse],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_run(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    actor_id: ActorId,
    run_id: RunIdPath,
    payload: CancelRequest | None = None,
) -> ApiResponse[RunResponse]:
    """Cancel a draft or calculated run."""
    reason = payload.cancellation_reason if payload else None
    run = await orchestrator.cancel(tenant_id, run_id, reason=reason, actor_id=actor_id)
    return ApiResponse(data=RunResponse.model_validate(run), message="Payroll run cancelled")
