"""Order-related database models.

Tables: orders, order_items, stakeholder_assignments
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from concierge.models.base import Base


class OrderModel(Base):
    """Workflow aggregate root. ``status`` is the single source of truth."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    customer_name: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'assigned', 'shopping', "
            "'packed', 'in_transit', 'delivered', 'closed', 'cancelled')",
            name="ck_orders_status",
        ),
        nullable=False,
        server_default="pending",
    )
    assigned_shopper_id: Mapped[str | None] = mapped_column(String, nullable=True)
    shopping_started_at: Mapped[str | None] = mapped_column(String, nullable=True)
    shopping_completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
    delivery_started_at: Mapped[str | None] = mapped_column(String, nullable=True)
    delivery_completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        Index("ix_orders_status", "status"),
        Index("ix_orders_assigned_shopper", "assigned_shopper_id"),
    )


class OrderItemModel(Base):
    """Line item with its own small shopping state."""

    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    order_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("orders.id"),
        nullable=False,
    )
    product_name: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    shopping_status: Mapped[str] = mapped_column(
        String,
        CheckConstraint(
            "shopping_status IN ('pending', 'found', 'substitution_needed')",
            name="ck_order_items_shopping_status",
        ),
        nullable=False,
        server_default="pending",
    )
    found_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    shopper_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    photo_url: Mapped[str | None] = mapped_column(String, nullable=True)
    substitution_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    updated_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (Index("ix_order_items_order_id", "order_id"),)


class StakeholderAssignmentModel(Base):
    """A staff user holding a role on an order."""

    __tablename__ = "stakeholder_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("orders.id"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(
        String,
        CheckConstraint(
            "role IN ('shopper', 'driver', 'concierge')",
            name="ck_stakeholder_assignments_role",
        ),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint(
            "status IN ('assigned', 'accepted')",
            name="ck_stakeholder_assignments_status",
        ),
        nullable=False,
        server_default="assigned",
    )
    assigned_at: Mapped[str | None] = mapped_column(String, nullable=True)
    accepted_at: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "order_id", "user_id", "role", name="uq_stakeholder_assignment"
        ),
        Index("ix_stakeholder_assignments_user", "user_id"),
    )
