"""Persistence gateway -- conditional reads and writes for the workflow core.

Every method opens its own session and commits its own transaction; the
core never holds a transaction across calls. Status changes are expressed
as a single conditional UPDATE whose WHERE clause carries the expected
prior status (and owner), and the affected-row count is returned to the
caller as the conflict signal.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from concierge.models.order import (
    OrderItemModel,
    OrderModel,
    StakeholderAssignmentModel,
)
from concierge.models.workflow import NotificationModel, WorkflowLogModel
from concierge.utils.time import now_timestamp
from concierge.workflow.types import (
    AssignmentStatus,
    ItemShoppingStatus,
    OrderSnapshot,
    OrderStatus,
    StakeholderRole,
)

log = structlog.get_logger()

# Phase boundary columns that may be written once and never rewritten.
WRITE_ONCE_COLUMNS = frozenset(
    {
        "shopping_started_at",
        "shopping_completed_at",
        "delivery_started_at",
        "delivery_completed_at",
    }
)


class WorkflowStore:
    """Async conditional read/update/insert/delete over the workflow tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # --- Intake (external to the workflow, used to seed orders) ---

    async def create_order(
        self,
        *,
        customer_name: str | None = None,
        customer_email: str | None = None,
        items: Sequence[tuple[str, int]] = (),
        order_id: str | None = None,
        status: OrderStatus = OrderStatus.PENDING,
        assigned_shopper_id: str | None = None,
    ) -> str:
        """Insert an order and its items. Returns the order id."""
        order_id = order_id or str(uuid4())
        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            session.add(
                OrderModel(
                    id=order_id,
                    customer_name=customer_name,
                    customer_email=customer_email,
                    status=status.value,
                    assigned_shopper_id=assigned_shopper_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            await session.flush()
            for product_name, quantity in items:
                session.add(
                    OrderItemModel(
                        id=str(uuid4()),
                        order_id=order_id,
                        product_name=product_name,
                        quantity=quantity,
                        shopping_status=ItemShoppingStatus.PENDING.value,
                        updated_at=now,
                    )
                )
        log.info("order_created", order_id=order_id, items=len(items))
        return order_id

    # --- Reads ---

    async def get_order(self, order_id: str) -> OrderModel | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderModel).where(OrderModel.id == order_id)
            )
            return result.scalar_one_or_none()

    async def get_item(self, item_id: str) -> OrderItemModel | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderItemModel).where(OrderItemModel.id == item_id)
            )
            return result.scalar_one_or_none()

    async def snapshot(self, order_id: str) -> OrderSnapshot | None:
        """Capture the fields the Rollback Wrapper restores."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderModel.status, OrderModel.assigned_shopper_id).where(
                    OrderModel.id == order_id
                )
            )
            row = result.one_or_none()
        if row is None:
            return None
        return OrderSnapshot(
            status=OrderStatus(row.status),
            assigned_shopper_id=row.assigned_shopper_id,
        )

    # --- Conditional order writes ---

    async def transition_order(
        self,
        order_id: str,
        *,
        expected_statuses: Collection[OrderStatus],
        new_status: OrderStatus,
        expected_owner: str | None = None,
        claim_for: str | None = None,
        stamp: str | None = None,
    ) -> int:
        """Compare-and-swap the order status. Returns rows affected.

        Args:
            expected_statuses: Prior statuses the row must still hold.
            expected_owner: If set, ``assigned_shopper_id`` must equal it.
            claim_for: If set, the row must be unowned (or already owned by
                this actor) and becomes owned by it.
            stamp: Write-once phase timestamp column to set to now.
        """
        now = now_timestamp()
        conditions = [
            OrderModel.id == order_id,
            OrderModel.status.in_([s.value for s in expected_statuses]),
        ]
        values: dict[str, Any] = {"status": new_status.value, "updated_at": now}

        if expected_owner is not None:
            conditions.append(OrderModel.assigned_shopper_id == expected_owner)
        if claim_for is not None:
            conditions.append(
                or_(
                    OrderModel.assigned_shopper_id.is_(None),
                    OrderModel.assigned_shopper_id == claim_for,
                )
            )
            values["assigned_shopper_id"] = claim_for
        if stamp is not None:
            if stamp not in WRITE_ONCE_COLUMNS:
                raise ValueError(f"Not a phase timestamp column: {stamp}")
            column = getattr(OrderModel, stamp)
            values[stamp] = func.coalesce(column, now)

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(OrderModel)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount)  # type: ignore[attr-defined]

    async def force_status(
        self,
        order_id: str,
        *,
        observed_status: OrderStatus,
        new_status: OrderStatus,
        clear_owner: bool = False,
    ) -> int:
        """Administrative overwrite, still conditional on the observed status."""
        values: dict[str, Any] = {
            "status": new_status.value,
            "updated_at": now_timestamp(),
        }
        if clear_owner:
            values["assigned_shopper_id"] = None
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(OrderModel)
                .where(
                    OrderModel.id == order_id,
                    OrderModel.status == observed_status.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount)  # type: ignore[attr-defined]

    async def restore_snapshot(
        self,
        order_id: str,
        snapshot: OrderSnapshot,
        *,
        written_status: OrderStatus,
        written_owner: str | None,
    ) -> int:
        """Put ``status`` and ``assigned_shopper_id`` back to ``snapshot``.

        Only touches the row if it still holds what the failed request
        wrote, so a request that lost a race never overwrites the winner.
        """
        conditions = [
            OrderModel.id == order_id,
            OrderModel.status == written_status.value,
        ]
        if written_owner is None:
            conditions.append(OrderModel.assigned_shopper_id.is_(None))
        else:
            conditions.append(OrderModel.assigned_shopper_id == written_owner)

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(OrderModel)
                .where(*conditions)
                .values(
                    status=snapshot.status.value,
                    assigned_shopper_id=snapshot.assigned_shopper_id,
                    updated_at=now_timestamp(),
                )
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount)  # type: ignore[attr-defined]

    # --- Assignments ---

    async def insert_assignment(
        self,
        order_id: str,
        user_id: str,
        role: StakeholderRole,
        status: AssignmentStatus,
    ) -> bool:
        """Create an assignment. Returns False if it already existed."""
        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            existing = await session.execute(
                select(StakeholderAssignmentModel.id).where(
                    StakeholderAssignmentModel.order_id == order_id,
                    StakeholderAssignmentModel.user_id == user_id,
                    StakeholderAssignmentModel.role == role.value,
                )
            )
            if existing.scalar_one_or_none() is not None:
                return False
            session.add(
                StakeholderAssignmentModel(
                    order_id=order_id,
                    user_id=user_id,
                    role=role.value,
                    status=status.value,
                    assigned_at=now,
                    accepted_at=now if status == AssignmentStatus.ACCEPTED else None,
                    created_at=now,
                )
            )
        return True

    async def delete_assignment(
        self,
        order_id: str,
        user_id: str,
        role: StakeholderRole,
    ) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(StakeholderAssignmentModel).where(
                    StakeholderAssignmentModel.order_id == order_id,
                    StakeholderAssignmentModel.user_id == user_id,
                    StakeholderAssignmentModel.role == role.value,
                )
            )
            return int(result.rowcount)  # type: ignore[attr-defined]

    async def assign_stakeholder(
        self,
        order_id: str,
        user_id: str,
        role: StakeholderRole,
    ) -> str | None:
        """Make ``user_id`` the order's single holder of ``role``.

        An existing holder is replaced in place. Returns the replaced
        user id, or None when the role was vacant or already held by
        ``user_id``.
        """
        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(StakeholderAssignmentModel)
                .where(
                    StakeholderAssignmentModel.order_id == order_id,
                    StakeholderAssignmentModel.role == role.value,
                )
                .order_by(StakeholderAssignmentModel.id)
            )
            rows = list(result.scalars().all())
            keep = next((r for r in rows if r.user_id == user_id), None)
            if keep is None and rows:
                keep = rows[0]
            replaced = next((r.user_id for r in rows if r.user_id != user_id), None)
            for row in rows:
                if row is not keep:
                    await session.delete(row)
            # Flush the deletes before a user_id change can hit the unique key.
            await session.flush()
            if keep is None:
                session.add(
                    StakeholderAssignmentModel(
                        order_id=order_id,
                        user_id=user_id,
                        role=role.value,
                        status=AssignmentStatus.ASSIGNED.value,
                        assigned_at=now,
                        created_at=now,
                    )
                )
            else:
                keep.user_id = user_id
                keep.status = AssignmentStatus.ASSIGNED.value
                keep.assigned_at = now
                keep.accepted_at = None
        log.info(
            "stakeholder_assigned",
            order_id=order_id,
            user_id=user_id,
            role=role.value,
            replaced_user_id=replaced,
        )
        return replaced

    async def list_assignments(
        self, order_id: str
    ) -> Sequence[StakeholderAssignmentModel]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StakeholderAssignmentModel)
                .where(StakeholderAssignmentModel.order_id == order_id)
                .order_by(StakeholderAssignmentModel.id)
            )
            return result.scalars().all()

    # --- Items ---

    async def update_item(self, item_id: str, **values: Any) -> int:
        values["updated_at"] = now_timestamp()
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(OrderItemModel)
                .where(OrderItemModel.id == item_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount)  # type: ignore[attr-defined]

    # --- Append-only side effects ---

    async def append_log(
        self,
        *,
        order_id: str,
        action: str,
        phase: str,
        actor_id: str | None = None,
        actor_role: str | None = None,
        previous_status: str | None = None,
        new_status: str | None = None,
        success: bool | None = None,
        error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        async with self._session_factory() as session, session.begin():
            session.add(
                WorkflowLogModel(
                    order_id=order_id,
                    actor_id=actor_id,
                    actor_role=actor_role,
                    action=action,
                    phase=phase,
                    previous_status=previous_status,
                    new_status=new_status,
                    success=success,
                    error=error,
                    details=details,
                    recorded_at=now_timestamp(),
                )
            )

    async def insert_notification(
        self,
        *,
        order_id: str,
        notification_type: str,
        recipient_type: str,
        recipient_identifier: str | None,
        channel: str,
        status: str,
        message_content: str,
    ) -> None:
        now = now_timestamp()
        async with self._session_factory() as session, session.begin():
            session.add(
                NotificationModel(
                    order_id=order_id,
                    notification_type=notification_type,
                    recipient_type=recipient_type,
                    recipient_identifier=recipient_identifier,
                    channel=channel,
                    status=status,
                    message_content=message_content,
                    created_at=now,
                    sent_at=now if status == "sent" else None,
                )
            )
