"""Click CLI commands for the grocery concierge workflow."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import click

from concierge.config import AppConfig
from concierge.utils.logging import setup_logging


@click.group()
def cli() -> None:
    """Grocery concierge: order workflow state machine."""


def _load_config() -> AppConfig:
    cfg = AppConfig()
    setup_logging(cfg.log_level, cfg.log_format)
    return cfg


@cli.command()
def config() -> None:
    """Show current configuration."""
    cfg = AppConfig()

    click.echo("=== Concierge Configuration ===\n")

    click.echo(f"Log Level:    {cfg.log_level}")
    click.echo(f"Log Format:   {cfg.log_format}")
    click.echo(f"DB Path:      {cfg.db_path}")
    click.echo("")

    click.echo("[Workflow]")
    click.echo(f"  Accept Roles:    {', '.join(cfg.workflow.accept_roles)}")
    click.echo(f"  Rollback Roles:  {', '.join(cfg.workflow.rollback_roles)}")
    click.echo(f"  Assign Roles:    {', '.join(cfg.workflow.assign_roles)}")
    click.echo(
        f"  Retryable:       {', '.join(cfg.workflow.retryable_error_signatures)}"
    )
    click.echo("")

    click.echo("[Notifications]")
    click.echo(f"  Channel:    {cfg.notifications.channel}")
    if cfg.notifications.webhook_url:
        click.echo(f"  Webhook:    {cfg.notifications.webhook_url}")
    if cfg.notifications.admin_recipient:
        click.echo(f"  Admin:      {cfg.notifications.admin_recipient}")
    click.echo("")

    click.echo(f"Auth Tokens:  {len(cfg.auth.tokens)} configured")


@cli.command("init-db")
def init_db() -> None:
    """Create tables and immutability triggers."""
    cfg = _load_config()
    Path(cfg.db_path).parent.mkdir(parents=True, exist_ok=True)
    asyncio.run(_init_db(cfg))
    click.echo(f"Database initialized at {cfg.db_path}")


async def _init_db(cfg: AppConfig) -> None:
    from concierge.db import create_engine, init_schema

    engine = create_engine(cfg.database_url, cfg.db_busy_timeout_ms)
    try:
        await init_schema(engine)
    finally:
        await engine.dispose()


@cli.command("create-order")
@click.option("--customer-name", default=None, help="Customer display name.")
@click.option("--customer-email", default=None, help="Notification recipient.")
@click.option(
    "--item",
    "items",
    multiple=True,
    help="Item as NAME or NAME:QTY (repeatable).",
)
def create_order(
    customer_name: str | None,
    customer_email: str | None,
    items: tuple[str, ...],
) -> None:
    """Seed a pending order (intake is normally external)."""
    parsed: list[tuple[str, int]] = []
    for raw in items:
        name, _, qty = raw.partition(":")
        try:
            parsed.append((name.strip(), int(qty) if qty else 1))
        except ValueError as e:
            raise click.ClickException(f"Invalid item '{raw}'") from e

    cfg = _load_config()
    order_id = asyncio.run(_create_order(cfg, customer_name, customer_email, parsed))
    click.echo(order_id)


async def _create_order(
    cfg: AppConfig,
    customer_name: str | None,
    customer_email: str | None,
    items: list[tuple[str, int]],
) -> str:
    from concierge.db import create_engine, create_session_factory
    from concierge.workflow.store import WorkflowStore

    engine = create_engine(cfg.database_url, cfg.db_busy_timeout_ms)
    try:
        store = WorkflowStore(create_session_factory(engine))
        return await store.create_order(
            customer_name=customer_name,
            customer_email=customer_email,
            items=items,
        )
    finally:
        await engine.dispose()


@cli.command()
@click.argument("command_json")
@click.option(
    "--token",
    envvar="CONCIERGE_TOKEN",
    default=None,
    help="Bearer token identifying the actor.",
)
def dispatch(command_json: str, token: str | None) -> None:
    """Run one workflow command (JSON object) and print the response.

    Exits non-zero when the response reports an error.
    """
    try:
        request = json.loads(command_json)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON: {e}") from e
    if not isinstance(request, dict):
        raise click.ClickException("Command must be a JSON object")

    cfg = _load_config()
    response = asyncio.run(_dispatch(cfg, request, token))
    click.echo(json.dumps(response, indent=2, sort_keys=True))
    if "error" in response:
        raise SystemExit(1)


async def _dispatch(
    cfg: AppConfig,
    request: dict[str, Any],
    token: str | None,
) -> dict[str, Any]:
    from concierge.db import create_engine, create_session_factory
    from concierge.workflow.dispatcher import CommandDispatcher

    engine = create_engine(cfg.database_url, cfg.db_busy_timeout_ms)
    try:
        dispatcher = CommandDispatcher.from_config(cfg, create_session_factory(engine))
        return await dispatcher.dispatch(request, token)
    finally:
        await engine.dispose()


@cli.command()
@click.argument("order_id")
@click.option("--audit", is_flag=True, help="Show audit records instead.")
def history(order_id: str, audit: bool) -> None:
    """Print the workflow log for an order."""
    cfg = _load_config()
    rows = asyncio.run(_history(cfg, order_id, audit))
    if not rows:
        click.echo(f"No entries for order {order_id}")
        return
    for row in rows:
        click.echo(row)


async def _history(cfg: AppConfig, order_id: str, audit: bool) -> list[str]:
    from concierge.db import create_engine, create_session_factory
    from concierge.workflow.queries import WorkflowQueries

    engine = create_engine(cfg.database_url, cfg.db_busy_timeout_ms)
    try:
        queries = WorkflowQueries(create_session_factory(engine))
        if audit:
            entries = await queries.audit_trail(order_id)
            return [
                f"{e.recorded_at}  {e.action:<22} {e.new_status:<8} "
                f"{e.actor_id or '-'}  {e.error or ''}".rstrip()
                for e in entries
            ]
        entries = await queries.workflow_history(order_id)
        return [
            f"{e.recorded_at}  {e.action:<22} "
            f"{e.previous_status or '-'} -> {e.new_status or '-'}  "
            f"{e.actor_id or '-'} ({e.actor_role or '-'})"
            for e in entries
        ]
    finally:
        await engine.dispose()
