"""Tests for ActionExecutors -- conditional writes, transition entries,
notifications, and the accept_order assignment cleanup.
"""

from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from concierge.errors import (
    InvalidPayloadError,
    ItemNotFoundError,
    OwnershipError,
    StaleTransitionError,
)
from concierge.workflow.commands import ItemFoundData, SubstitutionRequestData
from concierge.workflow.executors import ActionExecutors
from concierge.workflow.notifications import NotificationDispatcher, RecordingChannel
from concierge.workflow.queries import WorkflowQueries
from concierge.workflow.store import WorkflowStore
from concierge.workflow.types import (
    Actor,
    ItemShoppingStatus,
    OrderStatus,
    WorkflowPhase,
)
from tests.factories import fetch_log, seed_order


@pytest.fixture
def executors(store: WorkflowStore, notifier: NotificationDispatcher) -> ActionExecutors:
    return ActionExecutors(store, notifier)


@pytest.fixture
def queries(session_factory: async_sessionmaker[AsyncSession]) -> WorkflowQueries:
    return WorkflowQueries(session_factory)


class TestConfirmOrder:
    async def test_moves_pending_to_confirmed(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        session_factory: async_sessionmaker[AsyncSession],
        channel: RecordingChannel,
        admin: Actor,
    ) -> None:
        order_id = await seed_order(store)

        result = await executors.confirm_order(order_id, admin)

        assert result.success
        assert result.message == "Order confirmed successfully"
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == OrderStatus.CONFIRMED.value

        entries = await fetch_log(session_factory, audit=False, order_id=order_id)
        assert len(entries) == 1
        assert entries[0].phase == WorkflowPhase.ORDER_CONFIRMATION.value
        assert entries[0].previous_status == "pending"
        assert entries[0].new_status == "confirmed"
        assert entries[0].actor_id == admin.user_id

        assert [n.notification_type for n in channel.sent] == ["order_confirmed"]

    async def test_wrong_status_raises_stale(
        self, executors: ActionExecutors, store: WorkflowStore, admin: Actor
    ) -> None:
        order_id = await seed_order(store, status=OrderStatus.SHOPPING)
        with pytest.raises(StaleTransitionError) as exc_info:
            await executors.confirm_order(order_id, admin)
        assert "confirm order" in str(exc_info.value)
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == OrderStatus.SHOPPING.value

    async def test_missing_order_raises_stale(
        self, executors: ActionExecutors, admin: Actor
    ) -> None:
        with pytest.raises(StaleTransitionError):
            await executors.confirm_order("nope", admin)


class TestAcceptOrder:
    async def test_claims_order_and_records_assignment(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        queries: WorkflowQueries,
        shopper: Actor,
    ) -> None:
        order_id = await seed_order(store, status=OrderStatus.CONFIRMED)

        result = await executors.accept_order(order_id, shopper)

        assert result.message == "Order accepted successfully"
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == OrderStatus.ASSIGNED.value
        assert order.assigned_shopper_id == shopper.user_id
        assignments = await queries.list_assignments(order_id)
        assert [(a.user_id, a.role, a.status) for a in assignments] == [
            (shopper.user_id, "shopper", "accepted")
        ]
        assert assignments[0].accepted_at is not None

    async def test_accept_from_pending_records_previous_status(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        session_factory: async_sessionmaker[AsyncSession],
        shopper: Actor,
    ) -> None:
        order_id = await seed_order(store)
        await executors.accept_order(order_id, shopper)
        entries = await fetch_log(session_factory, audit=False, order_id=order_id)
        assert entries[0].previous_status == "pending"
        assert entries[0].phase == WorkflowPhase.ORDER_ASSIGNMENT.value

    async def test_loser_assignment_is_removed(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        queries: WorkflowQueries,
        shopper: Actor,
        other_shopper: Actor,
    ) -> None:
        order_id = await seed_order(store, status=OrderStatus.CONFIRMED)
        await executors.accept_order(order_id, shopper)

        with pytest.raises(StaleTransitionError):
            await executors.accept_order(order_id, other_shopper)

        assignments = await queries.list_assignments(order_id)
        assert [a.user_id for a in assignments] == [shopper.user_id]
        order = await store.get_order(order_id)
        assert order is not None
        assert order.assigned_shopper_id == shopper.user_id

    async def test_replay_keeps_existing_assignment(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        queries: WorkflowQueries,
        shopper: Actor,
    ) -> None:
        order_id = await seed_order(store)
        await executors.accept_order(order_id, shopper)

        with pytest.raises(StaleTransitionError):
            await executors.accept_order(order_id, shopper)

        assignments = await queries.list_assignments(order_id)
        assert len(assignments) == 1

    async def test_unowned_pending_order_held_by_other_cannot_be_claimed(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        shopper: Actor,
        other_shopper: Actor,
    ) -> None:
        order_id = await seed_order(store, shopper_id=shopper.user_id)
        with pytest.raises(StaleTransitionError):
            await executors.accept_order(order_id, other_shopper)


class TestShoppingAndDelivery:
    async def test_start_shopping_stamps_timestamp(
        self, executors: ActionExecutors, store: WorkflowStore, shopper: Actor
    ) -> None:
        order_id = await seed_order(
            store, status=OrderStatus.ASSIGNED, shopper_id=shopper.user_id
        )
        result = await executors.start_shopping(order_id, shopper)
        assert result.message == "Shopping started successfully"
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == OrderStatus.SHOPPING.value
        assert order.shopping_started_at is not None

    @pytest.mark.parametrize(
        ("method", "status", "stamp"),
        [
            ("start_shopping", OrderStatus.ASSIGNED, "shopping_started_at"),
            ("complete_shopping", OrderStatus.SHOPPING, "shopping_completed_at"),
            ("start_delivery", OrderStatus.PACKED, "delivery_started_at"),
            ("complete_delivery", OrderStatus.IN_TRANSIT, "delivery_completed_at"),
        ],
    )
    async def test_non_owner_write_matches_no_row(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        channel: RecordingChannel,
        shopper: Actor,
        other_shopper: Actor,
        method: str,
        status: OrderStatus,
        stamp: str,
    ) -> None:
        order_id = await seed_order(store, status=status, shopper_id=shopper.user_id)
        with pytest.raises(OwnershipError, match="shopper-2 is not assigned"):
            await getattr(executors, method)(order_id, other_shopper)
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == status.value
        assert order.assigned_shopper_id == shopper.user_id
        assert getattr(order, stamp) is None
        assert channel.sent == []

    async def test_lost_race_stays_stale(
        self, executors: ActionExecutors, store: WorkflowStore, shopper: Actor
    ) -> None:
        order_id = await seed_order(
            store, status=OrderStatus.SHOPPING, shopper_id=shopper.user_id
        )
        with pytest.raises(StaleTransitionError):
            await executors.start_shopping(order_id, shopper)

    async def test_phase_timestamp_is_write_once(
        self, executors: ActionExecutors, store: WorkflowStore, shopper: Actor
    ) -> None:
        order_id = await seed_order(
            store, status=OrderStatus.ASSIGNED, shopper_id=shopper.user_id
        )
        await executors.start_shopping(order_id, shopper)
        first = (await store.get_order(order_id)).shopping_started_at  # type: ignore[union-attr]

        await store.force_status(
            order_id,
            observed_status=OrderStatus.SHOPPING,
            new_status=OrderStatus.ASSIGNED,
        )
        await executors.start_shopping(order_id, shopper)

        again = (await store.get_order(order_id)).shopping_started_at  # type: ignore[union-attr]
        assert again == first

    async def test_complete_shopping_not_gated_on_items(
        self, executors: ActionExecutors, store: WorkflowStore, shopper: Actor
    ) -> None:
        order_id = await seed_order(
            store, status=OrderStatus.SHOPPING, shopper_id=shopper.user_id
        )
        result = await executors.complete_shopping(order_id, shopper)
        assert result.message == "Shopping completed successfully"
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == OrderStatus.PACKED.value
        assert order.shopping_completed_at is not None

    async def test_delivery_leg(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        channel: RecordingChannel,
        shopper: Actor,
    ) -> None:
        order_id = await seed_order(
            store, status=OrderStatus.PACKED, shopper_id=shopper.user_id
        )
        await executors.start_delivery(order_id, shopper)
        result = await executors.complete_delivery(order_id, shopper)

        assert result.message == "Delivery completed successfully"
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == OrderStatus.DELIVERED.value
        assert order.delivery_started_at is not None
        assert order.delivery_completed_at is not None
        assert [n.notification_type for n in channel.sent] == [
            "delivery_started",
            "delivery_completed",
        ]


class TestItemActions:
    async def test_mark_item_found(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        queries: WorkflowQueries,
        session_factory: async_sessionmaker[AsyncSession],
        channel: RecordingChannel,
        shopper: Actor,
    ) -> None:
        order_id = await seed_order(
            store, status=OrderStatus.SHOPPING, shopper_id=shopper.user_id
        )
        item = (await queries.list_items(order_id))[0]

        result = await executors.mark_item_found(
            item.id,
            shopper,
            ItemFoundData(found_quantity=6, notes="ripe", photo_url="https://x/y.jpg"),
            order_id=order_id,
        )

        assert result.message == "Item marked as found"
        updated = await store.get_item(item.id)
        assert updated is not None
        assert updated.shopping_status == ItemShoppingStatus.FOUND.value
        assert updated.found_quantity == 6
        assert updated.shopper_notes == "ripe"
        assert updated.photo_url == "https://x/y.jpg"
        # Item actions leave no transition entry and send nothing.
        assert await fetch_log(session_factory, audit=False, order_id=order_id) == []
        assert channel.sent == []
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == OrderStatus.SHOPPING.value

    async def test_request_substitution(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        queries: WorkflowQueries,
        channel: RecordingChannel,
        shopper: Actor,
    ) -> None:
        order_id = await seed_order(
            store, status=OrderStatus.SHOPPING, shopper_id=shopper.user_id
        )
        item = (await queries.list_items(order_id))[1]

        result = await executors.request_substitution(
            item.id,
            shopper,
            SubstitutionRequestData(
                reason="out of stock",
                suggested_product="Soy milk",
                notes="same brand",
            ),
        )

        assert result.message == "Substitution requested successfully"
        updated = await store.get_item(item.id)
        assert updated is not None
        assert updated.shopping_status == ItemShoppingStatus.SUBSTITUTION_NEEDED.value
        data: dict[str, Any] = updated.substitution_data or {}
        assert data["reason"] == "out of stock"
        assert data["suggested_product"] == "Soy milk"
        assert data["requested_at"].endswith("Z")
        assert [(n.notification_type, n.order_id) for n in channel.sent] == [
            ("substitution_requested", order_id)
        ]

    async def test_missing_item_id(
        self, executors: ActionExecutors, shopper: Actor
    ) -> None:
        with pytest.raises(InvalidPayloadError, match="itemId is required"):
            await executors.mark_item_found(None, shopper, ItemFoundData())

    async def test_unknown_item(
        self, executors: ActionExecutors, shopper: Actor
    ) -> None:
        with pytest.raises(ItemNotFoundError):
            await executors.mark_item_found("ghost", shopper, ItemFoundData())

    async def test_item_from_other_order(
        self,
        executors: ActionExecutors,
        store: WorkflowStore,
        queries: WorkflowQueries,
        shopper: Actor,
    ) -> None:
        order_a = await seed_order(store)
        order_b = await seed_order(store)
        item = (await queries.list_items(order_a))[0]
        with pytest.raises(InvalidPayloadError, match="does not belong"):
            await executors.mark_item_found(
                item.id, shopper, ItemFoundData(), order_id=order_b
            )


class _FailingLogStore(WorkflowStore):
    async def append_log(self, **kwargs: Any) -> None:
        raise RuntimeError("log table unavailable")


class TestTransitionLogFailure:
    async def test_log_failure_does_not_fail_action(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        admin: Actor,
    ) -> None:
        store = _FailingLogStore(session_factory)
        executors = ActionExecutors(store, NotificationDispatcher(store, RecordingChannel()))
        order_id = await seed_order(store)

        result = await executors.confirm_order(order_id, admin)

        assert result.success
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == OrderStatus.CONFIRMED.value
