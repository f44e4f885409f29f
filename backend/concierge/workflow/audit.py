"""Audit Logger -- one append-only record per dispatched command.

Independent of the Rollback Wrapper: the record is written after the
executor has settled, so it survives compensation and reflects the real
outcome. Failures to write are logged and swallowed.
"""

from __future__ import annotations

from typing import Any

import structlog

from concierge.workflow.store import WorkflowStore
from concierge.workflow.types import Actor, WorkflowPhase

log = structlog.get_logger()

# Orderless commands (e.g. an item action without orderId) still get a row.
NO_ORDER = "N/A"


class AuditLogger:
    def __init__(self, store: WorkflowStore) -> None:
        self._store = store

    async def record(
        self,
        action: str,
        order_id: str | None,
        actor: Actor | None,
        success: bool,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        try:
            await self._store.append_log(
                order_id=order_id or NO_ORDER,
                action=action,
                phase=WorkflowPhase.AUDIT.value,
                actor_id=actor.user_id if actor else None,
                actor_role=actor.role if actor else None,
                new_status="success" if success else "failure",
                success=success,
                error=error,
                details=metadata or {},
            )
        except Exception:
            log.exception(
                "audit_log_failed",
                action=action,
                order_id=order_id,
                success=success,
            )
