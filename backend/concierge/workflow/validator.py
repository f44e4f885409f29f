"""Validator -- decides whether a command may proceed.

One read of the persisted order, no writes, so it is safe to call
speculatively. Rejections carry the persisted status and every transition
that is legal from it, letting the caller reconcile instead of retrying
blindly.
"""

from __future__ import annotations

import structlog

from concierge.workflow.store import WorkflowStore
from concierge.workflow.transitions import DEFAULT_TRANSITIONS, TransitionTable
from concierge.workflow.types import (
    Actor,
    OrderStatus,
    ValidationResult,
    WorkflowAction,
)

log = structlog.get_logger()


class WorkflowValidator:
    def __init__(
        self,
        store: WorkflowStore,
        transitions: TransitionTable = DEFAULT_TRANSITIONS,
    ) -> None:
        self._store = store
        self._transitions = transitions

    async def validate(
        self,
        order_id: str,
        expected_current_status: str | None,
        target_status: OrderStatus | None,
        actor: Actor,
        action: WorkflowAction,
    ) -> ValidationResult:
        """Check status freshness, edge legality, role and ownership.

        Actions with no order-level target (item actions, administrative
        rollback) pass unconditionally.
        """
        if target_status is None:
            return ValidationResult(valid=True)

        order = await self._store.get_order(order_id)
        if order is None:
            return ValidationResult(valid=False, error=f"Order {order_id} not found")

        current = OrderStatus(order.status)
        table = self._transitions

        def reject(error: str) -> ValidationResult:
            log.info(
                "validation_rejected",
                order_id=order_id,
                action=action.value,
                current_status=current.value,
                reason=error,
            )
            return ValidationResult(
                valid=False,
                error=error,
                current_status=current,
                allowed_transitions=table.allowed_from(current),
            )

        if expected_current_status != current.value:
            return reject(
                f"Expected status '{expected_current_status}', "
                f"but order is currently '{current.value}'"
            )

        if not table.is_legal(current, action, target_status):
            legal = ", ".join(t.to_status.value for t in table.allowed_from(current))
            return reject(
                f"Cannot transition from '{current.value}' to "
                f"'{target_status.value}' via {action.value}. Allowed: [{legal}]"
            )

        if not table.role_allowed(action, actor.role):
            return reject(f"Role '{actor.role}' may not perform {action.value}")

        if (
            table.requires_owner(action)
            and order.assigned_shopper_id != actor.user_id
        ):
            return reject("Only the assigned shopper can perform this action")

        if (
            action == WorkflowAction.ACCEPT_ORDER
            and order.assigned_shopper_id is not None
            and order.assigned_shopper_id != actor.user_id
        ):
            return reject("Order already assigned to another shopper")

        return ValidationResult(valid=True, current_status=current)
