"""Administrative staff assignment.

Shoppers claim orders themselves through accept_order. Drivers and
concierges are placed on an order by an operator: one holder per role,
replaced in place when reassigned. The order's status is never touched.
"""

from __future__ import annotations

import structlog

from concierge.errors import AssignmentRejectedError, OrderNotFoundError
from concierge.workflow.commands import AssignStaffData
from concierge.workflow.notifications import NotificationDispatcher
from concierge.workflow.store import WorkflowStore
from concierge.workflow.transitions import DEFAULT_TRANSITIONS, TransitionTable
from concierge.workflow.types import (
    TERMINAL_STATUSES,
    ActionResult,
    Actor,
    OrderStatus,
    StakeholderRole,
    WorkflowAction,
)

log = structlog.get_logger()


class StaffAssignment:
    def __init__(
        self,
        store: WorkflowStore,
        notifier: NotificationDispatcher,
        transitions: TransitionTable = DEFAULT_TRANSITIONS,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._transitions = transitions

    async def assign_staff(
        self,
        order_id: str | None,
        actor: Actor,
        payload: AssignStaffData,
    ) -> ActionResult:
        action = WorkflowAction.ASSIGN_STAFF
        if not order_id:
            raise AssignmentRejectedError("orderId is required for assign_staff")
        if not self._transitions.role_allowed(action, actor.role):
            raise AssignmentRejectedError(
                f"Role '{actor.role}' may not assign staff"
            )
        try:
            role = StakeholderRole(payload.role)
        except ValueError as exc:
            raise AssignmentRejectedError(
                f"Unknown staff role '{payload.role}'"
            ) from exc
        if role == StakeholderRole.SHOPPER:
            raise AssignmentRejectedError(
                "Shoppers claim orders through accept_order"
            )

        order = await self._store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        current = OrderStatus(order.status)
        if current in TERMINAL_STATUSES:
            raise AssignmentRejectedError(
                f"Cannot assign staff to an order in terminal status '{current.value}'"
            )

        replaced = await self._store.assign_stakeholder(
            order_id, payload.staff_id, role
        )
        await self._store.append_log(
            order_id=order_id,
            action=action.value,
            phase=self._transitions.phase_for(action).value,
            actor_id=actor.user_id,
            actor_role=actor.role,
            previous_status=current.value,
            new_status=current.value,
            details={
                "assigned_user_id": payload.staff_id,
                "role": role.value,
                "replaced_user_id": replaced,
            },
        )
        log.info(
            "staff_assigned",
            order_id=order_id,
            role=role.value,
            staff_id=payload.staff_id,
            replaced_user_id=replaced,
            actor_id=actor.user_id,
        )

        await self._notifier.notify(order_id, "staff_assigned")
        await self._notifier.notify_staff(
            order_id, "assignment_received", role.value, payload.staff_id
        )
        return ActionResult(
            True,
            f"Staff assigned as {role.value}",
            data={
                "assignment": {
                    "orderId": order_id,
                    "staffId": payload.staff_id,
                    "role": role.value,
                    "replacedStaffId": replaced,
                }
            },
        )
