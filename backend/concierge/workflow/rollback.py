"""Rollback Wrapper -- snapshot/compensate around an executor.

Each store call is its own transaction, so a multi-step executor has no
enclosing atomic boundary. Before the executor runs, the order's
``status`` and ``assigned_shopper_id`` are captured; if the executor
raises, both fields are written back and the original error re-raised.

Known limitation: only those two order fields are restored. Rows written
to other tables (assignment inserts, item updates, log entries) are not
undone here; accept_order compensates its own assignment insert. Phase
timestamps are not restored either.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from concierge.workflow.store import WorkflowStore
from concierge.workflow.types import OrderStatus

log = structlog.get_logger()

T = TypeVar("T")


class RollbackWrapper:
    def __init__(self, store: WorkflowStore) -> None:
        self._store = store

    async def execute_with_rollback(
        self,
        action: Callable[[], Awaitable[T]],
        order_id: str,
        *,
        action_name: str,
        written_status: OrderStatus,
        written_owner: str | None = None,
    ) -> T:
        """Run ``action``; on failure restore the pre-call order fields.

        Args:
            action: Zero-argument coroutine factory performing the writes.
            order_id: Order whose fields are snapshotted.
            action_name: For logging.
            written_status: Status the action sets on success.
            written_owner: Owner the action claims; None if it leaves the
                owner untouched.
        """
        snapshot = await self._store.snapshot(order_id)

        try:
            result = await action()
        except Exception as exc:
            log.warning(
                "action_failed_rolling_back",
                action=action_name,
                order_id=order_id,
                error=str(exc),
            )
            if snapshot is not None:
                expected_owner = (
                    written_owner
                    if written_owner is not None
                    else snapshot.assigned_shopper_id
                )
                try:
                    restored = await self._store.restore_snapshot(
                        order_id,
                        snapshot,
                        written_status=written_status,
                        written_owner=expected_owner,
                    )
                except Exception:
                    log.exception(
                        "rollback_failed",
                        action=action_name,
                        order_id=order_id,
                    )
                else:
                    log.info(
                        "rollback_applied" if restored else "rollback_not_needed",
                        action=action_name,
                        order_id=order_id,
                        status=snapshot.status.value,
                    )
            raise

        log.info("action_completed", action=action_name, order_id=order_id)
        return result
