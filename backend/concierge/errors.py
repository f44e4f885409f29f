"""Workflow error hierarchy.

All executor and repair failures inherit from WorkflowError, enabling
clean exception handling at the Command Dispatcher boundary.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base exception for all order-workflow failures."""


class OrderNotFoundError(WorkflowError):
    """The referenced order does not exist."""

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class ItemNotFoundError(WorkflowError):
    """The referenced order item does not exist."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Order item {item_id} not found")


class StaleTransitionError(WorkflowError):
    """A conditional update affected zero rows.

    The order no longer holds the status (or owner) the caller observed:
    another request won the race, or the command is a replay.
    """

    def __init__(self, order_id: str, expected_status: str, action: str) -> None:
        self.order_id = order_id
        self.expected_status = expected_status
        self.action = action
        super().__init__(
            f"Failed to {action.replace('_', ' ')}: order {order_id} is no longer "
            f"'{expected_status}' or is owned by another shopper"
        )


class OwnershipError(WorkflowError):
    """Actor is not the shopper assigned to the order."""

    def __init__(self, order_id: str, actor_id: str) -> None:
        self.order_id = order_id
        self.actor_id = actor_id
        super().__init__(
            f"Only the assigned shopper can act on order {order_id}; "
            f"{actor_id} is not assigned"
        )


class InvalidPayloadError(WorkflowError):
    """Action-specific payload is missing or malformed."""


class RepairRejectedError(WorkflowError):
    """The integrity-repair procedure refused a status rollback."""


class AssignmentRejectedError(WorkflowError):
    """An administrative staff assignment was refused."""


class UnknownActionError(WorkflowError):
    """Action name is not part of the workflow."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Unknown action: {action}")
