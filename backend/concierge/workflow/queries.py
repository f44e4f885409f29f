"""Read-only views over the workflow tables for dashboards and the CLI."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from concierge.models.order import (
    OrderItemModel,
    OrderModel,
    StakeholderAssignmentModel,
)
from concierge.models.workflow import NotificationModel, WorkflowLogModel
from concierge.workflow.types import TERMINAL_STATUSES, OrderStatus, WorkflowPhase


class WorkflowQueries:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_order(self, order_id: str) -> OrderModel | None:
        async with self._session_factory() as session:
            return await session.get(OrderModel, order_id)

    async def list_items(self, order_id: str) -> Sequence[OrderItemModel]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderItemModel)
                .where(OrderItemModel.order_id == order_id)
                .order_by(OrderItemModel.product_name, OrderItemModel.id)
            )
            return result.scalars().all()

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

    async def workflow_history(self, order_id: str) -> Sequence[WorkflowLogModel]:
        """Transition entries for an order, oldest first (audit rows excluded)."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowLogModel)
                .where(
                    WorkflowLogModel.order_id == order_id,
                    WorkflowLogModel.phase != WorkflowPhase.AUDIT.value,
                )
                .order_by(WorkflowLogModel.id)
            )
            return result.scalars().all()

    async def audit_trail(
        self,
        order_id: str | None = None,
        *,
        limit: int = 100,
    ) -> Sequence[WorkflowLogModel]:
        """Dispatcher audit records, newest first."""
        stmt = select(WorkflowLogModel).where(
            WorkflowLogModel.phase == WorkflowPhase.AUDIT.value
        )
        if order_id is not None:
            stmt = stmt.where(WorkflowLogModel.order_id == order_id)
        stmt = stmt.order_by(WorkflowLogModel.id.desc()).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def notifications_for(self, order_id: str) -> Sequence[NotificationModel]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(NotificationModel)
                .where(NotificationModel.order_id == order_id)
                .order_by(NotificationModel.id)
            )
            return result.scalars().all()

    async def orders_for_shopper(
        self,
        shopper_id: str,
        *,
        include_closed: bool = False,
    ) -> Sequence[OrderModel]:
        """Orders currently assigned to ``shopper_id``."""
        stmt = select(OrderModel).where(OrderModel.assigned_shopper_id == shopper_id)
        if not include_closed:
            stmt = stmt.where(
                OrderModel.status.not_in(
                    [s.value for s in TERMINAL_STATUSES | {OrderStatus.DELIVERED}]
                )
            )
        async with self._session_factory() as session:
            result = await session.execute(stmt.order_by(OrderModel.created_at))
            return result.scalars().all()
