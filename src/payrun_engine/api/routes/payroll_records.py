"""Payroll record API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from payrun_engine.api.dependencies import Orchestrator, TenantId
from payrun_engine.api.schemas import (
    ApiResponse,
    ComponentResponse,
    ErrorResponse,
    RecordComponentsResponse,
    RecordResponse,
)

router = APIRouter(prefix="/payroll-records", tags=["payroll-records"])


@router.get(
    "/{record_id}/components",
    response_model=ApiResponse[RecordComponentsResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_record_components(
    orchestrator: Orchestrator,
    tenant_id: TenantId,
    record_id: Annotated[UUID, Path()],
) -> ApiResponse[RecordComponentsResponse]:
    """Get the component breakdown of one record."""
    record, components = await orchestrator.get_record_components(tenant_id, record_id)
    return ApiResponse(
        data=RecordComponentsResponse(
            record=RecordResponse.model_validate(record),
            components=[ComponentResponse.model_validate(c) for c in components],
        )
    )
