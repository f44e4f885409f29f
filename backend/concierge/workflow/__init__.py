"""Order workflow package."""

from concierge.workflow.transitions import (
    ALLOWED_STATUS_TRANSITIONS,
    DEFAULT_TRANSITIONS,
    TransitionTable,
)
from concierge.workflow.types import (
    TERMINAL_STATUSES,
    ActionResult,
    Actor,
    ErrorCode,
    OrderStatus,
    Severity,
    ValidationResult,
    WorkflowAction,
    WorkflowPhase,
)

__all__ = [
    "ALLOWED_STATUS_TRANSITIONS",
    "DEFAULT_TRANSITIONS",
    "TERMINAL_STATUSES",
    "ActionResult",
    "Actor",
    "ErrorCode",
    "OrderStatus",
    "Severity",
    "TransitionTable",
    "ValidationResult",
    "WorkflowAction",
    "WorkflowPhase",
]
