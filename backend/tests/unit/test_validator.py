"""Tests for WorkflowValidator -- status freshness, legality, role, ownership."""

from __future__ import annotations

import pytest

from concierge.workflow.store import WorkflowStore
from concierge.workflow.transitions import DEFAULT_TRANSITIONS
from concierge.workflow.types import Actor, OrderStatus, WorkflowAction
from concierge.workflow.validator import WorkflowValidator
from tests.factories import seed_order


@pytest.fixture
def validator(store: WorkflowStore) -> WorkflowValidator:
    return WorkflowValidator(store)


async def _validate(
    validator: WorkflowValidator,
    order_id: str,
    expected: str | None,
    actor: Actor,
    action: WorkflowAction,
):
    return await validator.validate(
        order_id,
        expected,
        DEFAULT_TRANSITIONS.target_for(action),
        actor,
        action,
    )


class TestValidatorAccepts:
    async def test_confirm_pending_order(
        self, validator: WorkflowValidator, store: WorkflowStore, admin: Actor
    ) -> None:
        order_id = await seed_order(store)
        result = await _validate(
            validator, order_id, "pending", admin, WorkflowAction.CONFIRM_ORDER
        )
        assert result.valid
        assert result.current_status == OrderStatus.PENDING

    async def test_owner_may_start_shopping(
        self, validator: WorkflowValidator, store: WorkflowStore, shopper: Actor
    ) -> None:
        order_id = await seed_order(
            store, status=OrderStatus.ASSIGNED, shopper_id=shopper.user_id
        )
        result = await _validate(
            validator, order_id, "assigned", shopper, WorkflowAction.START_SHOPPING
        )
        assert result.valid

    async def test_accept_by_same_shopper_on_own_pending_order(
        self, validator: WorkflowValidator, store: WorkflowStore, shopper: Actor
    ) -> None:
        order_id = await seed_order(store, shopper_id=shopper.user_id)
        result = await _validate(
            validator, order_id, "pending", shopper, WorkflowAction.ACCEPT_ORDER
        )
        assert result.valid

    @pytest.mark.parametrize(
        "action",
        [
            WorkflowAction.MARK_ITEM_FOUND,
            WorkflowAction.REQUEST_SUBSTITUTION,
            WorkflowAction.ROLLBACK_STATUS,
        ],
    )
    async def test_actions_without_target_pass(
        self,
        validator: WorkflowValidator,
        customer: Actor,
        action: WorkflowAction,
    ) -> None:
        # Not even the order is read.
        result = await _validate(validator, "no-such-order", None, customer, action)
        assert result.valid


class TestValidatorRejects:
    async def test_missing_order(
        self, validator: WorkflowValidator, admin: Actor
    ) -> None:
        result = await _validate(
            validator, "missing", "pending", admin, WorkflowAction.CONFIRM_ORDER
        )
        assert not result.valid
        assert result.error == "Order missing not found"
        assert result.current_status is None

    async def test_stale_expected_status(
        self, validator: WorkflowValidator, store: WorkflowStore, admin: Actor
    ) -> None:
        order_id = await seed_order(store, status=OrderStatus.CONFIRMED)
        result = await _validate(
            validator, order_id, "pending", admin, WorkflowAction.CONFIRM_ORDER
        )
        assert not result.valid
        assert result.error == (
            "Expected status 'pending', but order is currently 'confirmed'"
        )
        assert result.current_status == OrderStatus.CONFIRMED
        assert [t.as_dict() for t in result.allowed_transitions] == [
            {"action": "accept_order", "to": "assigned"}
        ]

    async def test_missing_expected_status_is_a_mismatch(
        self, validator: WorkflowValidator, store: WorkflowStore, admin: Actor
    ) -> None:
        order_id = await seed_order(store)
        result = await _validate(
            validator, order_id, None, admin, WorkflowAction.CONFIRM_ORDER
        )
        assert not result.valid
        assert "Expected status 'None'" in result.error

    async def test_illegal_edge(
        self, validator: WorkflowValidator, store: WorkflowStore, admin: Actor
    ) -> None:
        order_id = await seed_order(store, status=OrderStatus.SHOPPING)
        result = await _validate(
            validator, order_id, "shopping", admin, WorkflowAction.CONFIRM_ORDER
        )
        assert not result.valid
        assert result.error.startswith(
            "Cannot transition from 'shopping' to 'confirmed'"
        )
        assert "packed" in result.error

    async def test_role_not_allowed_to_accept(
        self, validator: WorkflowValidator, store: WorkflowStore, customer: Actor
    ) -> None:
        order_id = await seed_order(store)
        result = await _validate(
            validator, order_id, "pending", customer, WorkflowAction.ACCEPT_ORDER
        )
        assert not result.valid
        assert result.error == "Role 'customer' may not perform accept_order"

    @pytest.mark.parametrize(
        ("action", "status"),
        [
            (WorkflowAction.START_SHOPPING, OrderStatus.ASSIGNED),
            (WorkflowAction.COMPLETE_SHOPPING, OrderStatus.SHOPPING),
            (WorkflowAction.START_DELIVERY, OrderStatus.PACKED),
            (WorkflowAction.COMPLETE_DELIVERY, OrderStatus.IN_TRANSIT),
        ],
    )
    async def test_non_owner_rejected(
        self,
        validator: WorkflowValidator,
        store: WorkflowStore,
        shopper: Actor,
        other_shopper: Actor,
        action: WorkflowAction,
        status: OrderStatus,
    ) -> None:
        order_id = await seed_order(store, status=status, shopper_id=shopper.user_id)
        result = await _validate(
            validator, order_id, status.value, other_shopper, action
        )
        assert not result.valid
        assert result.error == "Only the assigned shopper can perform this action"
        assert result.current_status == status
        order = await store.get_order(order_id)
        assert order is not None
        assert order.status == status.value

    async def test_accept_order_held_by_another_shopper(
        self,
        validator: WorkflowValidator,
        store: WorkflowStore,
        shopper: Actor,
        other_shopper: Actor,
    ) -> None:
        order_id = await seed_order(
            store, status=OrderStatus.CONFIRMED, shopper_id=shopper.user_id
        )
        result = await _validate(
            validator,
            order_id,
            "confirmed",
            other_shopper,
            WorkflowAction.ACCEPT_ORDER,
        )
        assert not result.valid
        assert result.error == "Order already assigned to another shopper"

    async def test_terminal_order_reports_no_allowed_transitions(
        self, validator: WorkflowValidator, store: WorkflowStore, admin: Actor
    ) -> None:
        order_id = await seed_order(store, status=OrderStatus.CANCELLED)
        result = await _validate(
            validator, order_id, "cancelled", admin, WorkflowAction.CONFIRM_ORDER
        )
        assert not result.valid
        assert result.allowed_transitions == ()
