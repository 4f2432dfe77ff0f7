"""Payroll period API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payrun_engine.api.dependencies import DbSession, TenantId
from payrun_engine.api.schemas import (
    ApiResponse,
    AvailablePeriodResponse,
    ErrorResponse,
    PeriodCreate,
    PeriodResponse,
    PeriodUpdate,
)
from payrun_engine.services.period_registry import PeriodRegistry

router = APIRouter(prefix="/payroll-periods", tags=["payroll-periods"])


@router.get(
    "/available",
    response_model=ApiResponse[list[AvailablePeriodResponse]],
)
async def list_available_periods(
    db: DbSession,
    tenant_id: TenantId,
    limit: Annotated[int, Query(ge=1, le=100)] = 12,
) -> ApiResponse[list[AvailablePeriodResponse]]:
    """List active periods that can take a new run."""
    entries = await PeriodRegistry(db).list_available(tenant_id, limit=limit)
    items = [
        AvailablePeriodResponse.model_validate(
            {
                **PeriodResponse.model_validate(e["period"]).model_dump(),
                "has_active_regular_run": e["has_active_regular_run"],
            }
        )
        for e in entries
    ]
    return ApiResponse(data=items)


@router.post(
    "",
    response_model=ApiResponse[PeriodResponse],
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def register_period(
    db: DbSession,
    tenant_id: TenantId,
    payload: PeriodCreate,
) -> ApiResponse[PeriodResponse]:
    """Register a new payroll period."""
    period = await PeriodRegistry(db).register_period(tenant_id, **payload.model_dump())
    await db.commit()
    return ApiResponse(
        data=PeriodResponse.model_validate(period), message="Payroll period registered"
    )


@router.get(
    "/{period_id}",
    response_model=ApiResponse[PeriodResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    db: DbSession,
    tenant_id: TenantId,
    period_id: Annotated[UUID, Path()],
) -> ApiResponse[PeriodResponse]:
    """Get a payroll period."""
    period = await PeriodRegistry(db).get_period(tenant_id, period_id)
    return ApiResponse(data=PeriodResponse.model_validate(period))


@router.patch(
    "/{period_id}",
    response_model=ApiResponse[PeriodResponse],
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_period(
    db: DbSession,
    tenant_id: TenantId,
    period_id: Annotated[UUID, Path()],
    payload: PeriodUpdate,
) -> ApiResponse[PeriodResponse]:
    """Update a period; dates and type are frozen once a run uses it."""
    period = await PeriodRegistry(db).update_period(
        tenant_id, period_id, payload.model_dump(exclude_unset=True)
    )
    await db.commit()
    return ApiResponse(data=PeriodResponse.model_validate(period), message="Payroll period updated")
