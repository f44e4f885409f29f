"""Integrity repair -- administrative status rollback.

``rollback_status`` is the only path that moves an order against the
transition table: backwards along the happy path, or to ``cancelled``
while the status graph still allows it.
It requires an explicit reason, is still conditional on the status the
operator observed, and always leaves a transition entry behind.
"""

from __future__ import annotations

import structlog

from concierge.errors import (
    OrderNotFoundError,
    RepairRejectedError,
    StaleTransitionError,
)
from concierge.workflow.commands import RollbackRequestData
from concierge.workflow.notifications import NotificationDispatcher
from concierge.workflow.store import WorkflowStore
from concierge.workflow.transitions import (
    ALLOWED_STATUS_TRANSITIONS,
    DEFAULT_TRANSITIONS,
    TransitionTable,
)
from concierge.workflow.types import (
    TERMINAL_STATUSES,
    WORKFLOW_SEQUENCE,
    ActionResult,
    Actor,
    OrderStatus,
    WorkflowAction,
    WorkflowPhase,
)

log = structlog.get_logger()

# Rolling back before assignment releases the shopper.
_UNOWNED_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


def check_rollback_allowed(current: OrderStatus, target: OrderStatus) -> None:
    """Raise RepairRejectedError unless ``current -> target`` is a valid repair."""
    if target == current:
        raise RepairRejectedError(f"Order is already '{current.value}'")
    if current in TERMINAL_STATUSES:
        raise RepairRejectedError(
            f"Cannot roll back an order in terminal status '{current.value}'"
        )
    if target == OrderStatus.CANCELLED:
        if target in ALLOWED_STATUS_TRANSITIONS[current]:
            return
        raise RepairRejectedError(
            f"An order in '{current.value}' can no longer be cancelled"
        )
    if (
        target in WORKFLOW_SEQUENCE
        and current in WORKFLOW_SEQUENCE
        and WORKFLOW_SEQUENCE.index(target) < WORKFLOW_SEQUENCE.index(current)
    ):
        return
    raise RepairRejectedError(
        f"Rollback can only move an order backwards: "
        f"'{current.value}' -> '{target.value}' is not allowed"
    )


class IntegrityRepair:
    def __init__(
        self,
        store: WorkflowStore,
        notifier: NotificationDispatcher,
        transitions: TransitionTable = DEFAULT_TRANSITIONS,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._transitions = transitions

    async def rollback_status(
        self,
        order_id: str | None,
        actor: Actor,
        payload: RollbackRequestData,
    ) -> ActionResult:
        action = WorkflowAction.ROLLBACK_STATUS
        if not order_id:
            raise RepairRejectedError("orderId is required for rollback_status")
        if not self._transitions.role_allowed(action, actor.role):
            raise RepairRejectedError(
                f"Role '{actor.role}' may not roll back order status"
            )
        reason = payload.reason.strip()
        if not reason:
            raise RepairRejectedError("A reason is required to roll back status")
        try:
            target = OrderStatus(payload.target_status)
        except ValueError as exc:
            raise RepairRejectedError(
                f"Unknown target status '{payload.target_status}'"
            ) from exc

        order = await self._store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        current = OrderStatus(order.status)
        check_rollback_allowed(current, target)

        rows = await self._store.force_status(
            order_id,
            observed_status=current,
            new_status=target,
            clear_owner=target in _UNOWNED_STATUSES,
        )
        if rows == 0:
            raise StaleTransitionError(order_id, current.value, action.value)

        log.warning(
            "order_status_rolled_back",
            order_id=order_id,
            from_status=current.value,
            to_status=target.value,
            actor_id=actor.user_id,
            reason=reason,
        )
        await self._store.append_log(
            order_id=order_id,
            action=action.value,
            phase=WorkflowPhase.ROLLBACK.value,
            actor_id=actor.user_id,
            actor_role=actor.role,
            previous_status=current.value,
            new_status=target.value,
            details={
                "reason": reason,
                "previous_shopper_id": order.assigned_shopper_id,
            },
        )
        await self._notifier.notify(order_id, "status_rolled_back")
        return ActionResult(True, f"Order rolled back to {target.value}")
