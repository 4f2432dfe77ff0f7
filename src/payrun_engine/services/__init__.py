"""Payroll run services."""

from payrun_engine.services.period_registry import PeriodRegistry
from payrun_engine.services.run_lock import RunLockService
from payrun_engine.services.run_orchestrator import RunOrchestrator
from payrun_engine.services.state_machine import RunStateMachine, RunStatus

__all__ = [
    "PeriodRegistry",
    "RunLockService",
    "RunOrchestrator",
    "RunStateMachine",
    "RunStatus",
]
