"""Append-only workflow side-effect tables.

Tables: order_workflow_log, order_notifications

Both are protected by immutability triggers (see models.base).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from concierge.models.base import Base


class WorkflowLogModel(Base):
    """Immutable audit trail.

    Holds both executor transition entries (phase = workflow phase) and
    dispatcher audit records (phase = "audit", ``success`` set).
    """

    __tablename__ = "order_workflow_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String, nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String, nullable=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    phase: Mapped[str] = mapped_column(String, nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String, nullable=True)
    new_status: Mapped[str | None] = mapped_column(String, nullable=True)
    success: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    recorded_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        Index("ix_order_workflow_log_order", "order_id", "recorded_at"),
        Index("ix_order_workflow_log_phase", "phase"),
    )


class NotificationModel(Base):
    """Immutable record of a message emitted for an order event."""

    __tablename__ = "order_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String, nullable=False)
    notification_type: Mapped[str] = mapped_column(String, nullable=False)
    recipient_type: Mapped[str] = mapped_column(String, nullable=False)
    recipient_identifier: Mapped[str | None] = mapped_column(String, nullable=True)
    channel: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    message_content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    sent_at: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (Index("ix_order_notifications_order", "order_id"),)
