"""API routes."""

from payrun_engine.api.routes.health import router as health_router
from payrun_engine.api.routes.payroll_periods import router as payroll_periods_router
from payrun_engine.api.routes.payroll_records import router as payroll_records_router
from payrun_engine.api.routes.payroll_runs import router as payroll_runs_router

__all__ = [
    "health_router",
    "payroll_periods_router",
    "payroll_records_router",
    "payroll_runs_router",
]
