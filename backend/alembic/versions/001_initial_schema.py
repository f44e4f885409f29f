"""Initial schema: orders, items, assignments, workflow log, notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

from concierge.models.base import IMMUTABLE_TABLES, immutability_trigger_sql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def create_immutability_triggers() -> None:
    """Create append-only triggers for the audit tables.

    Call this from any migration that uses batch mode on
    order_workflow_log or order_notifications, as batch mode drops and
    recreates tables which silently destroys triggers.
    """
    for table in IMMUTABLE_TABLES:
        for statement in immutability_trigger_sql(table):
            op.execute(statement)


def upgrade() -> None:
    # --- orders ---
    op.create_table(
        "orders",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("customer_name", sa.String(), nullable=True),
        sa.Column("customer_email", sa.String(), nullable=True),
        sa.Column(
            "status",
            sa.String(),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("assigned_shopper_id", sa.String(), nullable=True),
        sa.Column("shopping_started_at", sa.String(), nullable=True),
        sa.Column("shopping_completed_at", sa.String(), nullable=True),
        sa.Column("delivery_started_at", sa.String(), nullable=True),
        sa.Column("delivery_completed_at", sa.String(), nullable=True),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.Column("updated_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'assigned', 'shopping', "
            "'packed', 'in_transit', 'delivered', 'closed', 'cancelled')",
            name="ck_orders_status",
        ),
    )
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index(
        "ix_orders_assigned_shopper", "orders", ["assigned_shopper_id"]
    )

    # --- order_items ---
    op.create_table(
        "order_items",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("product_name", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "shopping_status",
            sa.String(),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("found_quantity", sa.Integer(), nullable=True),
        sa.Column("shopper_notes", sa.Text(), nullable=True),
        sa.Column("photo_url", sa.String(), nullable=True),
        sa.Column("substitution_data", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.CheckConstraint(
            "shopping_status IN ('pending', 'found', 'substitution_needed')",
            name="ck_order_items_shopping_status",
        ),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    # --- stakeholder_assignments ---
    op.create_table(
        "stakeholder_assignments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column(
            "status",
            sa.String(),
            nullable=False,
            server_default="assigned",
        ),
        sa.Column("assigned_at", sa.String(), nullable=True),
        sa.Column("accepted_at", sa.String(), nullable=True),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.UniqueConstraint(
            "order_id", "user_id", "role", name="uq_stakeholder_assignment"
        ),
        sa.CheckConstraint(
            "role IN ('shopper', 'driver', 'concierge')",
            name="ck_stakeholder_assignments_role",
        ),
        sa.CheckConstraint(
            "status IN ('assigned', 'accepted')",
            name="ck_stakeholder_assignments_status",
        ),
    )
    op.create_index(
        "ix_stakeholder_assignments_user", "stakeholder_assignments", ["user_id"]
    )

    # --- order_workflow_log ---
    op.create_table(
        "order_workflow_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("actor_role", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("phase", sa.String(), nullable=False),
        sa.Column("previous_status", sa.String(), nullable=True),
        sa.Column("new_status", sa.String(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("recorded_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_order_workflow_log_order",
        "order_workflow_log",
        ["order_id", "recorded_at"],
    )
    op.create_index("ix_order_workflow_log_phase", "order_workflow_log", ["phase"])

    # --- order_notifications ---
    op.create_table(
        "order_notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("notification_type", sa.String(), nullable=False),
        sa.Column("recipient_type", sa.String(), nullable=False),
        sa.Column("recipient_identifier", sa.String(), nullable=True),
        sa.Column("channel", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("message_content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.Column("sent_at", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_order_notifications_order", "order_notifications", ["order_id"]
    )

    # --- Immutability triggers ---
    create_immutability_triggers()


def downgrade() -> None:
    for table in IMMUTABLE_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS no_update_{table}")
        op.execute(f"DROP TRIGGER IF EXISTS no_delete_{table}")
    op.drop_table("order_notifications")
    op.drop_table("order_workflow_log")
    op.drop_table("stakeholder_assignments")
    op.drop_table("order_items")
    op.drop_table("orders")
