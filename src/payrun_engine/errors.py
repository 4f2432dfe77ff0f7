"""Typed exception hierarchy for the payroll run engine.

Every error carries a machine-readable ``code`` so the API layer can map it
onto a response without parsing messages:

    PayrollEngineError
    +-- ValidationError    bad input, rejected before persistence
    +-- StateError         invalid run lifecycle transition
    +-- ConflictError      run is locked by another mutation (retryable)
    +-- NotFoundError      unknown run / record / period
    +-- CalculationError   one employee's pipeline failed (isolated)
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class PayrollEngineError(Exception):
    """Base class for all engine errors."""

    code: str = "PAYROLL_ERROR"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)


class ValidationError(PayrollEngineError):
    """Request data is missing or invalid."""

    code = "VALIDATION_ERROR"


class StateError(PayrollEngineError):
    """Operation is not allowed in the run's current status."""

    code = "INVALID_STATE"

    def __init__(self, current_status: str, operation: str, reason: str | None = None):
        self.current_status = current_status
        self.operation = operation
        msg = f"Cannot {operation} payroll run in '{current_status}' status"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, current_status=current_status, operation=operation)


class ConflictError(PayrollEngineError):
    """Another mutation holds the run lock."""

    code = "CONFLICT"

    def __init__(self, run_id: UUID, operation: str):
        self.run_id = run_id
        self.operation = operation
        super().__init__(
            f"Payroll run {run_id} is locked by another operation; "
            f"retry {operation} later",
            run_id=str(run_id),
            operation=operation,
        )


class NotFoundError(PayrollEngineError):
    """Referenced entity does not exist for this tenant."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", entity=entity)


class CalculationError(PayrollEngineError):
    """Calculation failed for a single employee."""

    code = "CALCULATION_ERROR"

    def __init__(self, message: str, employee_id: UUID | None = None):
        self.employee_id = employee_id
        super().__init__(message, employee_id=str(employee_id) if employee_id else None)
