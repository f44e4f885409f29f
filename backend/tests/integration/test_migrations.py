"""Tests for Alembic migrations."""

from __future__ import annotations

from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic.config import Config
from sqlalchemy import inspect, text

from alembic import command

BACKEND_DIR = Path(__file__).resolve().parent.parent.parent


@pytest.fixture()
def alembic_config(tmp_path: Path) -> Config:
    """Create Alembic config pointing to a temp database."""
    db_path = tmp_path / "test_migration.db"
    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    return config


@pytest.fixture()
def migrated_engine(alembic_config: Config, tmp_path: Path) -> sa.engine.Engine:
    """Run migrations and return engine for verification."""
    command.upgrade(alembic_config, "head")
    return sa.create_engine(f"sqlite:///{tmp_path / 'test_migration.db'}")


class TestMigrationUpgrade:
    def test_upgrade_from_empty(self, alembic_config: Config) -> None:
        command.upgrade(alembic_config, "head")

    def test_all_tables_exist(self, migrated_engine: sa.engine.Engine) -> None:
        table_names = set(inspect(migrated_engine).get_table_names())
        expected = {
            "orders",
            "order_items",
            "stakeholder_assignments",
            "order_workflow_log",
            "order_notifications",
        }
        assert expected.issubset(table_names), (
            f"Missing tables: {expected - table_names}"
        )

    def test_key_indexes_exist(self, migrated_engine: sa.engine.Engine) -> None:
        inspector = inspect(migrated_engine)
        order_indexes = {idx["name"] for idx in inspector.get_indexes("orders")}
        assert {"ix_orders_status", "ix_orders_assigned_shopper"} <= order_indexes
        log_indexes = {
            idx["name"] for idx in inspector.get_indexes("order_workflow_log")
        }
        assert "ix_order_workflow_log_order" in log_indexes

    def test_assignment_unique_constraint(
        self, migrated_engine: sa.engine.Engine
    ) -> None:
        uniques = inspect(migrated_engine).get_unique_constraints(
            "stakeholder_assignments"
        )
        assert any(
            set(u["column_names"]) == {"order_id", "user_id", "role"} for u in uniques
        )

    def test_immutability_triggers_exist(
        self, migrated_engine: sa.engine.Engine
    ) -> None:
        with migrated_engine.connect() as conn:
            trigger_names = {
                row[0]
                for row in conn.execute(
                    text("SELECT name FROM sqlite_master WHERE type='trigger'")
                )
            }

        assert {
            "no_update_order_workflow_log",
            "no_delete_order_workflow_log",
            "no_update_order_notifications",
            "no_delete_order_notifications",
        } <= trigger_names

    def test_status_check_enforced(self, migrated_engine: sa.engine.Engine) -> None:
        with migrated_engine.connect() as conn:
            with pytest.raises(sa.exc.IntegrityError):
                conn.execute(
                    text(
                        "INSERT INTO orders (id, status, created_at, updated_at) "
                        "VALUES ('o-1', 'teleported', '2026-10-19', '2026-10-19')"
                    )
                )


class TestMigrationDowngrade:
    def test_downgrade_to_base(
        self, alembic_config: Config, tmp_path: Path
    ) -> None:
        command.upgrade(alembic_config, "head")
        command.downgrade(alembic_config, "base")
        engine = sa.create_engine(f"sqlite:///{tmp_path / 'test_migration.db'}")
        assert "orders" not in set(inspect(engine).get_table_names())
