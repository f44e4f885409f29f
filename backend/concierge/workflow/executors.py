"""Action Executors -- the minimal writes behind each workflow action.

Every status-changing executor issues exactly one conditional UPDATE keyed
on the expected prior status (and the owning shopper where the action is
owner-scoped). Zero affected rows means another request got there first
or the command is a replay; it surfaces as StaleTransitionError, or as
OwnershipError when the order is still in place but held by someone else. After a
successful write the executor appends one transition entry and sends one
customer notification.
"""

from __future__ import annotations

import structlog

from concierge.errors import (
    InvalidPayloadError,
    ItemNotFoundError,
    OwnershipError,
    StaleTransitionError,
)
from concierge.models.order import OrderItemModel
from concierge.utils.time import now_timestamp
from concierge.workflow.commands import ItemFoundData, SubstitutionRequestData
from concierge.workflow.notifications import NotificationDispatcher
from concierge.workflow.store import WorkflowStore
from concierge.workflow.transitions import DEFAULT_TRANSITIONS, TransitionTable
from concierge.workflow.types import (
    ActionResult,
    Actor,
    AssignmentStatus,
    ItemShoppingStatus,
    OrderStatus,
    StakeholderRole,
    WorkflowAction,
)

log = structlog.get_logger()


class ActionExecutors:
    """One coroutine per workflow action."""

    def __init__(
        self,
        store: WorkflowStore,
        notifier: NotificationDispatcher,
        transitions: TransitionTable = DEFAULT_TRANSITIONS,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._transitions = transitions

    async def confirm_order(self, order_id: str, actor: Actor) -> ActionResult:
        await self._advance(order_id, actor, WorkflowAction.CONFIRM_ORDER)
        await self._notifier.notify(order_id, "order_confirmed")
        return ActionResult(True, "Order confirmed successfully")

    async def accept_order(self, order_id: str, actor: Actor) -> ActionResult:
        """Claim the order for the acting shopper.

        Two writes: the assignment insert, then the conditional order
        update. If the update fails or loses the race, the assignment this
        request inserted is deleted before the error propagates.
        """
        action = WorkflowAction.ACCEPT_ORDER
        inserted = await self._store.insert_assignment(
            order_id,
            actor.user_id,
            StakeholderRole.SHOPPER,
            AssignmentStatus.ACCEPTED,
        )
        try:
            await self._advance(order_id, actor, action, claim=True)
        except Exception:
            if inserted:
                await self._remove_assignment(order_id, actor.user_id)
            raise

        await self._notifier.notify(order_id, "order_accepted")
        return ActionResult(True, "Order accepted successfully")

    async def start_shopping(self, order_id: str, actor: Actor) -> ActionResult:
        await self._advance(
            order_id,
            actor,
            WorkflowAction.START_SHOPPING,
            stamp="shopping_started_at",
        )
        await self._notifier.notify(order_id, "shopping_started")
        return ActionResult(True, "Shopping started successfully")

    async def complete_shopping(self, order_id: str, actor: Actor) -> ActionResult:
        # Not gated on item shopping_status; the shopper decides when done.
        await self._advance(
            order_id,
            actor,
            WorkflowAction.COMPLETE_SHOPPING,
            stamp="shopping_completed_at",
        )
        await self._notifier.notify(order_id, "shopping_completed")
        return ActionResult(True, "Shopping completed successfully")

    async def start_delivery(self, order_id: str, actor: Actor) -> ActionResult:
        await self._advance(
            order_id,
            actor,
            WorkflowAction.START_DELIVERY,
            stamp="delivery_started_at",
        )
        await self._notifier.notify(order_id, "delivery_started")
        return ActionResult(True, "Delivery started successfully")

    async def complete_delivery(self, order_id: str, actor: Actor) -> ActionResult:
        await self._advance(
            order_id,
            actor,
            WorkflowAction.COMPLETE_DELIVERY,
            stamp="delivery_completed_at",
        )
        await self._notifier.notify(order_id, "delivery_completed")
        return ActionResult(True, "Delivery completed successfully")

    async def mark_item_found(
        self,
        item_id: str | None,
        actor: Actor,
        payload: ItemFoundData,
        order_id: str | None = None,
    ) -> ActionResult:
        """Item-scoped: no transition entry, no notification."""
        item = await self._require_item(item_id, order_id)
        await self._store.update_item(
            item.id,
            shopping_status=ItemShoppingStatus.FOUND.value,
            found_quantity=payload.found_quantity,
            shopper_notes=payload.notes,
            photo_url=payload.photo_url,
        )
        log.info(
            "item_marked_found",
            item_id=item.id,
            actor_id=actor.user_id,
            found_quantity=payload.found_quantity,
        )
        return ActionResult(True, "Item marked as found")

    async def request_substitution(
        self,
        item_id: str | None,
        actor: Actor,
        payload: SubstitutionRequestData,
        order_id: str | None = None,
    ) -> ActionResult:
        item = await self._require_item(item_id, order_id)
        await self._store.update_item(
            item.id,
            shopping_status=ItemShoppingStatus.SUBSTITUTION_NEEDED.value,
            substitution_data={
                "reason": payload.reason,
                "suggested_product": payload.suggested_product,
                "notes": payload.notes,
                "requested_at": now_timestamp(),
            },
            shopper_notes=payload.notes,
        )
        log.info(
            "substitution_requested",
            item_id=item.id,
            actor_id=actor.user_id,
            reason=payload.reason,
        )
        await self._notifier.notify(item.order_id, "substitution_requested")
        return ActionResult(True, "Substitution requested successfully")

    # --- Internal helpers ---

    async def _advance(
        self,
        order_id: str,
        actor: Actor,
        action: WorkflowAction,
        *,
        claim: bool = False,
        stamp: str | None = None,
    ) -> OrderStatus:
        """Conditional status write plus its transition entry."""
        table = self._transitions
        new_status = table.target_for(action)
        if new_status is None:
            raise ValueError(f"{action.value} does not change order status")
        sources = table.sources_for(action)

        # Read before the write, so for multi-source actions the logged
        # previous status is advisory; the conditional UPDATE is what decides.
        if len(sources) == 1:
            (previous,) = sources
        else:
            snapshot = await self._store.snapshot(order_id)
            previous = snapshot.status if snapshot else next(iter(sources))

        rows = await self._store.transition_order(
            order_id,
            expected_statuses=sources,
            new_status=new_status,
            expected_owner=actor.user_id if table.requires_owner(action) else None,
            claim_for=actor.user_id if claim else None,
            stamp=stamp,
        )
        if rows == 0:
            if table.requires_owner(action):
                await self._check_owner(order_id, actor, sources)
            raise StaleTransitionError(
                order_id,
                "/".join(sorted(s.value for s in sources)),
                action.value,
            )

        log.info(
            "order_transitioned",
            order_id=order_id,
            action=action.value,
            from_status=previous.value,
            to_status=new_status.value,
            actor_id=actor.user_id,
        )
        await self._log_transition(order_id, actor, action, previous, new_status)
        return new_status

    async def _check_owner(
        self, order_id: str, actor: Actor, sources: frozenset[OrderStatus]
    ) -> None:
        """Tell a lost race apart from an order held by another shopper."""
        current = await self._store.snapshot(order_id)
        if (
            current is not None
            and current.status in sources
            and current.assigned_shopper_id != actor.user_id
        ):
            raise OwnershipError(order_id, actor.user_id)

    async def _log_transition(
        self,
        order_id: str,
        actor: Actor,
        action: WorkflowAction,
        previous: OrderStatus,
        new_status: OrderStatus,
    ) -> None:
        try:
            await self._store.append_log(
                order_id=order_id,
                action=action.value,
                phase=self._transitions.phase_for(action).value,
                actor_id=actor.user_id,
                actor_role=actor.role,
                previous_status=previous.value,
                new_status=new_status.value,
                details={"source": "validated_workflow"},
            )
        except Exception:
            log.exception(
                "transition_log_failed",
                order_id=order_id,
                action=action.value,
            )

    async def _remove_assignment(self, order_id: str, user_id: str) -> None:
        try:
            await self._store.delete_assignment(
                order_id, user_id, StakeholderRole.SHOPPER
            )
        except Exception:
            log.exception(
                "assignment_cleanup_failed",
                order_id=order_id,
                user_id=user_id,
            )
        else:
            log.info("assignment_cleaned_up", order_id=order_id, user_id=user_id)

    async def _require_item(
        self,
        item_id: str | None,
        order_id: str | None,
    ) -> OrderItemModel:
        if not item_id:
            raise InvalidPayloadError("itemId is required")
        item = await self._store.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        if order_id is not None and item.order_id != order_id:
            raise InvalidPayloadError(
                f"Item {item_id} does not belong to order {order_id}"
            )
        return item
