"""Database models package."""

from concierge.models.base import Base, create_immutability_triggers
from concierge.models.order import (
    OrderItemModel,
    OrderModel,
    StakeholderAssignmentModel,
)
from concierge.models.workflow import NotificationModel, WorkflowLogModel

__all__ = [
    "Base",
    "NotificationModel",
    "OrderItemModel",
    "OrderModel",
    "StakeholderAssignmentModel",
    "WorkflowLogModel",
    "create_immutability_triggers",
]
