"""Payroll run state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from payrun_engine.errors import StateError


class RunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    CALCULATED = "calculated"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → calculated
    - calculated → calculated (recalculate)
    - calculated → processing
    - processing → completed
    - draft → cancelled
    - calculated → cancelled
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        RunStatus.DRAFT: [RunStatus.CALCULATED, RunStatus.CANCELLED],
        RunStatus.CALCULATED: [
            RunStatus.CALCULATED,
            RunStatus.PROCESSING,
            RunStatus.CANCELLED,
        ],
        RunStatus.PROCESSING: [RunStatus.COMPLETED],
        RunStatus.COMPLETED: [],  # Terminal state
        RunStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses from which each mutating operation may start
    OPERATION_ALLOWED: dict[str, frozenset[str]] = {
        "calculate": frozenset({RunStatus.DRAFT, RunStatus.CALCULATED}),
        "process": frozenset({RunStatus.CALCULATED}),
        "cancel": frozenset({RunStatus.DRAFT, RunStatus.CALCULATED}),
    }

    # Runs in these statuses block another regular run for the same period
    ACTIVE = frozenset({RunStatus.DRAFT, RunStatus.CALCULATED, RunStatus.PROCESSING})

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising StateError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise StateError(
                from_status,
                f"move to '{to_status}'",
                reason="transition not allowed",
            )

    @classmethod
    def can_perform(cls, operation: str, status: str) -> bool:
        """Check if an operation may start in this status."""
        return status in cls.OPERATION_ALLOWED.get(operation, frozenset())

    @classmethod
    def validate_operation(cls, operation: str, status: str) -> None:
        """Raise StateError unless ``operation`` may start in ``status``."""
        if not cls.can_perform(operation, status):
            allowed = ", ".join(sorted(s.value for s in cls.OPERATION_ALLOWED[operation]))
            raise StateError(status, operation, reason=f"allowed only from {allowed}")

