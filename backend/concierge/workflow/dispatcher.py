"""Command Dispatcher -- the single entry point into the order workflow.

Per request: authenticate -> validate (unless skipped) -> run the matched
executor inside the Rollback Wrapper -> audit -> respond. Every path
returns a structured response carrying the request id, and every
invocation leaves exactly one audit record behind.
"""

from __future__ import annotations

import errno
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from concierge.auth import AuthenticationError, Authenticator, StaticTokenAuthenticator
from concierge.config import DEFAULT_RETRYABLE_SIGNATURES, AppConfig
from concierge.errors import InvalidPayloadError, UnknownActionError
from concierge.utils.logging import correlation_scope
from concierge.utils.time import monotonic_ms
from concierge.workflow.assignment import StaffAssignment
from concierge.workflow.audit import AuditLogger
from concierge.workflow.commands import (
    AssignStaffData,
    ItemFoundData,
    RollbackRequestData,
    SubstitutionRequestData,
    WorkflowCommand,
)
from concierge.workflow.executors import ActionExecutors
from concierge.workflow.notifications import (
    NotificationChannel,
    NotificationDispatcher,
    create_channel,
)
from concierge.workflow.repair import IntegrityRepair
from concierge.workflow.rollback import RollbackWrapper
from concierge.workflow.store import WorkflowStore
from concierge.workflow.transitions import DEFAULT_TRANSITIONS, TransitionTable
from concierge.workflow.types import (
    ActionResult,
    Actor,
    ErrorCode,
    Severity,
    ValidationResult,
    WorkflowAction,
)
from concierge.workflow.validator import WorkflowValidator

log = structlog.get_logger()

Handler = Callable[[WorkflowCommand, Actor], Awaitable[ActionResult]]


@dataclass(frozen=True)
class WorkflowFailure:
    """Structured error returned to the caller instead of a raw exception."""

    code: ErrorCode
    message: str
    retryable: bool
    severity: Severity
    details: dict[str, Any] | None = None

    def to_response(self, request_id: str) -> dict[str, Any]:
        response: dict[str, Any] = {
            "error": self.message,
            "code": self.code.value,
            "retryable": self.retryable,
            "severity": self.severity.value,
            "requestId": request_id,
        }
        if self.details is not None:
            response["details"] = self.details
        return response


def is_retryable_error(
    exc: BaseException,
    signatures: Iterable[str] = DEFAULT_RETRYABLE_SIGNATURES,
) -> bool:
    """True if ``exc`` (or anything in its cause chain) looks transient."""
    signatures = tuple(signatures)
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionError | TimeoutError | DisconnectionError):
            return True
        if isinstance(current, OperationalError) and current.connection_invalidated:
            return True
        code = getattr(current, "code", None)
        if isinstance(code, str) and code in signatures:
            return True
        err_no = getattr(current, "errno", None)
        if isinstance(err_no, int) and errno.errorcode.get(err_no) in signatures:
            return True
        text = str(current)
        if any(sig in text for sig in signatures):
            return True
        current = current.__cause__ or current.__context__
    return False


class CommandDispatcher:
    """Routes workflow commands through validation, execution and audit."""

    def __init__(
        self,
        store: WorkflowStore,
        authenticator: Authenticator,
        *,
        transitions: TransitionTable = DEFAULT_TRANSITIONS,
        notifier: NotificationDispatcher | None = None,
        retryable_signatures: Iterable[str] = DEFAULT_RETRYABLE_SIGNATURES,
    ) -> None:
        self._store = store
        self._authenticator = authenticator
        self._transitions = transitions
        self._retryable_signatures = tuple(retryable_signatures)
        notifier = notifier or NotificationDispatcher(store)

        self._validator = WorkflowValidator(store, transitions)
        self._executors = ActionExecutors(store, notifier, transitions)
        self._repair = IntegrityRepair(store, notifier, transitions)
        self._staff = StaffAssignment(store, notifier, transitions)
        self._rollback = RollbackWrapper(store)
        self._audit = AuditLogger(store)

        self._handlers: dict[WorkflowAction, Handler] = {
            WorkflowAction.CONFIRM_ORDER: self._wrapped(self._executors.confirm_order),
            WorkflowAction.ACCEPT_ORDER: self._wrapped(
                self._executors.accept_order, claims_owner=True
            ),
            WorkflowAction.START_SHOPPING: self._wrapped(self._executors.start_shopping),
            WorkflowAction.COMPLETE_SHOPPING: self._wrapped(
                self._executors.complete_shopping
            ),
            WorkflowAction.START_DELIVERY: self._wrapped(self._executors.start_delivery),
            WorkflowAction.COMPLETE_DELIVERY: self._wrapped(
                self._executors.complete_delivery
            ),
            WorkflowAction.MARK_ITEM_FOUND: self._mark_item_found,
            WorkflowAction.REQUEST_SUBSTITUTION: self._request_substitution,
            WorkflowAction.ROLLBACK_STATUS: self._rollback_status,
            WorkflowAction.ASSIGN_STAFF: self._assign_staff,
        }
        missing = set(WorkflowAction) - set(self._handlers)
        if missing:
            raise RuntimeError(
                f"No handler for actions: {sorted(a.value for a in missing)}"
            )

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        channel: NotificationChannel | None = None,
        authenticator: Authenticator | None = None,
    ) -> CommandDispatcher:
        store = WorkflowStore(session_factory)
        return cls(
            store,
            authenticator or StaticTokenAuthenticator.from_config(config.auth),
            transitions=TransitionTable.with_roles(
                config.workflow.accept_roles,
                config.workflow.rollback_roles,
                config.workflow.assign_roles,
            ),
            notifier=NotificationDispatcher(
                store,
                channel or create_channel(config.notifications),
                admin_recipient=config.notifications.admin_recipient,
            ),
            retryable_signatures=config.workflow.retryable_error_signatures,
        )

    async def dispatch(
        self,
        request: WorkflowCommand | Mapping[str, Any],
        credential: str | None,
    ) -> dict[str, Any]:
        """Handle one command. Never raises."""
        request_id = str(uuid4())
        started = monotonic_ms()
        if isinstance(request, WorkflowCommand):
            action_name, order_id = request.action, request.order_id
        else:
            action_name = str(request.get("action") or "unknown")
            order_id = request.get("orderId") or None

        with correlation_scope(request_id, action=action_name):
            log.info("workflow_request", order_id=order_id)
            try:
                return await self._dispatch(request, credential, request_id, started)
            except Exception as exc:
                log.exception("workflow_unexpected_error")
                failure = WorkflowFailure(
                    code=ErrorCode.UNEXPECTED_ERROR,
                    message=str(exc) or "An unexpected error occurred",
                    retryable=False,
                    severity=Severity.CRITICAL,
                )
                await self._audit.record(
                    action_name,
                    order_id,
                    None,
                    success=False,
                    error=failure.message,
                    metadata={"requestId": request_id, "stage": "unexpected"},
                )
                return failure.to_response(request_id)

    async def _dispatch(
        self,
        request: WorkflowCommand | Mapping[str, Any],
        credential: str | None,
        request_id: str,
        started: float,
    ) -> dict[str, Any]:
        command = (
            request
            if isinstance(request, WorkflowCommand)
            else WorkflowCommand.parse(dict(request))
        )

        try:
            actor = await self._authenticator.authenticate(credential)
        except AuthenticationError as exc:
            failure = WorkflowFailure(
                code=ErrorCode.AUTHENTICATION_FAILED,
                message=str(exc) or "User authentication required",
                retryable=False,
                severity=Severity.HIGH,
            )
            log.warning("workflow_authentication_failed", action=command.action)
            await self._audit.record(
                command.action,
                command.order_id,
                None,
                success=False,
                error=failure.message,
                metadata={"requestId": request_id, "stage": "authentication"},
            )
            return failure.to_response(request_id)

        action = self._resolve(command.action)

        if command.order_id and not command.skip_validation:
            validation = await self._run_validation(command, actor, action)
            if not validation.valid:
                current_status = (
                    validation.current_status.value
                    if validation.current_status
                    else None
                )
                failure = WorkflowFailure(
                    code=ErrorCode.VALIDATION_FAILED,
                    message=validation.error or "Validation failed",
                    retryable=True,
                    severity=Severity.MEDIUM,
                    details={
                        "currentStatus": current_status,
                        "allowedTransitions": [
                            t.as_dict() for t in validation.allowed_transitions
                        ],
                    },
                )
                await self._audit.record(
                    command.action,
                    command.order_id,
                    actor,
                    success=False,
                    error=failure.message,
                    metadata={
                        "requestId": request_id,
                        "stage": "validation",
                        "currentStatus": current_status,
                    },
                )
                return failure.to_response(request_id)

        try:
            if action is None:
                raise UnknownActionError(command.action)
            result = await self._handlers[action](command, actor)
        except Exception as exc:
            elapsed = monotonic_ms() - started
            log.warning(
                "workflow_action_failed",
                action=command.action,
                order_id=command.order_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            failure = WorkflowFailure(
                code=ErrorCode.ACTION_EXECUTION_FAILED,
                message=str(exc) or "Action execution failed",
                retryable=is_retryable_error(exc, self._retryable_signatures),
                severity=Severity.HIGH,
                details={
                    "action": command.action,
                    "orderId": command.order_id,
                    "originalError": str(exc),
                },
            )
            await self._audit.record(
                command.action,
                command.order_id,
                actor,
                success=False,
                error=failure.message,
                metadata={
                    "requestId": request_id,
                    "stage": "execution",
                    "executionTime": round(elapsed, 3),
                },
            )
            return failure.to_response(request_id)

        elapsed = monotonic_ms() - started
        await self._audit.record(
            command.action,
            command.order_id,
            actor,
            success=True,
            metadata={
                "requestId": request_id,
                "executionTime": round(elapsed, 3),
                "result": result.message,
            },
        )
        log.info(
            "workflow_action_completed",
            action=command.action,
            order_id=command.order_id,
            execution_ms=round(elapsed, 3),
        )
        return {
            **result.data,
            "success": result.success,
            "message": result.message,
            "requestId": request_id,
            "executionTime": round(monotonic_ms() - started, 3),
        }

    # --- Internal helpers ---

    @staticmethod
    def _resolve(action: str) -> WorkflowAction | None:
        try:
            return WorkflowAction(action)
        except ValueError:
            return None

    async def _run_validation(
        self,
        command: WorkflowCommand,
        actor: Actor,
        action: WorkflowAction | None,
    ) -> ValidationResult:
        assert command.order_id is not None
        if action is None:
            return ValidationResult(valid=True)
        target = self._transitions.target_for(action)
        try:
            return await self._validator.validate(
                command.order_id,
                command.expected_current_status,
                target,
                actor,
                action,
            )
        except Exception:
            log.exception("validation_system_error", order_id=command.order_id)
            return ValidationResult(valid=False, error="Validation system error")

    def _wrapped(
        self,
        executor: Callable[[str, Actor], Awaitable[ActionResult]],
        *,
        claims_owner: bool = False,
    ) -> Handler:
        """Run a status-changing executor inside the Rollback Wrapper."""

        async def handler(command: WorkflowCommand, actor: Actor) -> ActionResult:
            action = WorkflowAction(command.action)
            order_id = command.order_id
            if not order_id:
                raise InvalidPayloadError(f"orderId is required for {action.value}")
            written_status = self._transitions.target_for(action)
            assert written_status is not None
            owner_scoped = claims_owner or self._transitions.requires_owner(action)
            return await self._rollback.execute_with_rollback(
                lambda: executor(order_id, actor),
                order_id,
                action_name=action.value,
                written_status=written_status,
                written_owner=actor.user_id if owner_scoped else None,
            )

        return handler

    async def _mark_item_found(
        self, command: WorkflowCommand, actor: Actor
    ) -> ActionResult:
        return await self._executors.mark_item_found(
            command.item_id,
            actor,
            ItemFoundData.parse(command.data),
            order_id=command.order_id,
        )

    async def _request_substitution(
        self, command: WorkflowCommand, actor: Actor
    ) -> ActionResult:
        return await self._executors.request_substitution(
            command.item_id,
            actor,
            SubstitutionRequestData.parse(command.data),
            order_id=command.order_id,
        )

    async def _rollback_status(
        self, command: WorkflowCommand, actor: Actor
    ) -> ActionResult:
        return await self._repair.rollback_status(
            command.order_id,
            actor,
            RollbackRequestData.parse(command.data),
        )

    async def _assign_staff(
        self, command: WorkflowCommand, actor: Actor
    ) -> ActionResult:
        return await self._staff.assign_staff(
            command.order_id,
            actor,
            AssignStaffData.parse(command.data),
        )
