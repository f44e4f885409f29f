"""SQLAlchemy base, SQLite pragmas, and audit-table immutability triggers."""

from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import text

DEFAULT_BUSY_TIMEOUT_MS = 5000

# Append-only tables: the audit trail and the notification record.
IMMUTABLE_TABLES = ("order_workflow_log", "order_notifications")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def set_sqlite_pragmas(
    dbapi_connection: Any,
    connection_record: Any,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> None:
    """Set SQLite pragmas on every new connection.

    SQLite pragmas are per-connection, not per-database, so they must be
    set every time. The busy timeout lets concurrent conditional updates
    queue behind each other instead of failing with "database is locked".
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def register_engine_events(
    engine: Engine,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> None:
    """Register the SQLite pragma listener on a (sync) engine.

    For an AsyncEngine pass ``async_engine.sync_engine``.
    """

    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        set_sqlite_pragmas(dbapi_connection, connection_record, busy_timeout_ms)

    event.listen(engine, "connect", _on_connect)


def immutability_trigger_sql(table: str) -> list[str]:
    """CREATE TRIGGER statements rejecting UPDATE and DELETE on ``table``."""
    return [
        f"CREATE TRIGGER IF NOT EXISTS no_update_{table} "
        f"BEFORE UPDATE ON {table} "
        f"BEGIN SELECT RAISE(ABORT, '{table} is immutable'); END;",
        f"CREATE TRIGGER IF NOT EXISTS no_delete_{table} "
        f"BEFORE DELETE ON {table} "
        f"BEGIN SELECT RAISE(ABORT, '{table} is immutable'); END;",
    ]


def create_immutability_triggers(connection: Connection) -> None:
    """Install append-only triggers on every audit table.

    Usable from ``AsyncConnection.run_sync`` as well as Alembic migrations.
    """
    for table in IMMUTABLE_TABLES:
        for statement in immutability_trigger_sql(table):
            connection.execute(text(statement))
