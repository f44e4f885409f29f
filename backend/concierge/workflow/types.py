"""Workflow domain types shared across the order workflow.

Frozen dataclasses for value objects, str-valued enums for every closed
set of names that crosses the persistence or request boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class OrderStatus(str, Enum):
    """Order lifecycle statuses."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    SHOPPING = "shopping"
    PACKED = "packed"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CLOSED = "closed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {
        OrderStatus.CLOSED,
        OrderStatus.CANCELLED,
    }
)

# Happy-path order; repair may only move an order backwards along it.
WORKFLOW_SEQUENCE: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.ASSIGNED,
    OrderStatus.SHOPPING,
    OrderStatus.PACKED,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
    OrderStatus.CLOSED,
)


class ItemShoppingStatus(str, Enum):
    """Per-item shopping state, independent of the order status."""

    PENDING = "pending"
    FOUND = "found"
    SUBSTITUTION_NEEDED = "substitution_needed"


class StakeholderRole(str, Enum):
    SHOPPER = "shopper"
    DRIVER = "driver"
    CONCIERGE = "concierge"


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"


class WorkflowAction(str, Enum):
    """Commands a caller can issue against an order."""

    CONFIRM_ORDER = "confirm_order"
    ACCEPT_ORDER = "accept_order"
    START_SHOPPING = "start_shopping"
    MARK_ITEM_FOUND = "mark_item_found"
    REQUEST_SUBSTITUTION = "request_substitution"
    COMPLETE_SHOPPING = "complete_shopping"
    START_DELIVERY = "start_delivery"
    COMPLETE_DELIVERY = "complete_delivery"
    ROLLBACK_STATUS = "rollback_status"
    ASSIGN_STAFF = "assign_staff"


class WorkflowPhase(str, Enum):
    """Phase label written on workflow log entries."""

    ORDER_CONFIRMATION = "order_confirmation"
    ORDER_ASSIGNMENT = "order_assignment"
    STAFF_ASSIGNMENT = "assignment"
    SHOPPING = "shopping"
    DELIVERY = "delivery"
    ROLLBACK = "rollback"
    AUDIT = "audit"


class ErrorCode(str, Enum):
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    ACTION_EXECUTION_FAILED = "ACTION_EXECUTION_FAILED"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller identity."""

    user_id: str
    role: str


@dataclass(frozen=True)
class Transition:
    """One ``(from_status, action) -> to_status`` edge."""

    from_status: OrderStatus
    action: WorkflowAction
    to_status: OrderStatus

    def as_dict(self) -> dict[str, str]:
        return {"action": self.action.value, "to": self.to_status.value}


@dataclass(frozen=True)
class ValidationResult:
    """Validator decision. On rejection carries the legal moves."""

    valid: bool
    error: str = ""
    current_status: OrderStatus | None = None
    allowed_transitions: tuple[Transition, ...] = ()


@dataclass(frozen=True)
class OrderSnapshot:
    """Mutable order fields captured before an executor runs."""

    status: OrderStatus
    assigned_shopper_id: str | None


@dataclass(frozen=True)
class ActionResult:
    """Executor outcome."""

    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)
