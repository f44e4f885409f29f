"""Notification Dispatcher -- fire-and-forget workflow messages.

Looks up who should hear about an order event, forwards each message to
a channel, and records one NotificationRecord per recipient with the
delivery outcome. Nothing in here ever raises into the workflow: a
notification failure never fails an action.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx
import structlog

from concierge.config import NotificationConfig
from concierge.workflow.store import WorkflowStore

log = structlog.get_logger()

NOTIFICATION_MESSAGES: dict[str, str] = {
    "order_confirmed": (
        "Your order has been confirmed and is being assigned to a shopper"
    ),
    "order_accepted": "Your order has been assigned to a shopper",
    "shopping_started": "Your shopper has started shopping for your order",
    "substitution_requested": "Substitution requested for an item",
    "shopping_completed": "Your order has been packed and is ready for delivery",
    "delivery_started": "Your order is on the way!",
    "delivery_completed": "Your order has been delivered!",
    "status_rolled_back": "Your order status has been updated by our concierge team",
    "staff_assigned": "A member of our team has been assigned to your order",
    "assignment_received": "You have been assigned to an order",
}

# Per-role templates for staff holding an assignment on the order.
STAKEHOLDER_MESSAGES: dict[str, dict[str, str]] = {
    "order_confirmed": {
        "shopper": "New shopping assignment: an order is confirmed and ready to shop",
    },
    "shopping_started": {
        "driver": "An order you are delivering will be ready for pickup soon",
    },
    "shopping_completed": {
        "driver": "An order is packed and ready for pickup",
        "concierge": "Incoming delivery: an order has been packed",
    },
    "delivery_started": {
        "concierge": "An order is out for delivery. Please prepare for arrival",
    },
    "delivery_completed": {
        "concierge": "An order has been delivered. Please begin kitchen stocking",
    },
}

# Sent to NotificationConfig.admin_recipient when one is configured.
ADMIN_MESSAGES: dict[str, str] = {
    "order_confirmed": "New order confirmed and waiting for a shopper",
    "substitution_requested": "Substitution pending approval",
    "status_rolled_back": "An order status was rolled back by an operator",
}


@runtime_checkable
class NotificationChannel(Protocol):
    """Outbound sink for a single customer message."""

    name: str

    async def send(
        self,
        recipient: str,
        notification_type: str,
        message: str,
        order_id: str,
    ) -> None:
        """Deliver or forward the message. Raise on failure."""
        ...


class LogChannel:
    """Default channel: emits the message as a structured log event."""

    name = "log"

    async def send(
        self,
        recipient: str,
        notification_type: str,
        message: str,
        order_id: str,
    ) -> None:
        log.info(
            "notification_sent",
            recipient=recipient,
            notification_type=notification_type,
            order_id=order_id,
            message=message,
        )


class WebhookChannel:
    """POSTs each notification as JSON to an external delivery service."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    async def send(
        self,
        recipient: str,
        notification_type: str,
        message: str,
        order_id: str,
    ) -> None:
        payload = {
            "recipient": recipient,
            "type": notification_type,
            "message": message,
            "orderId": order_id,
        }
        if self._client is not None:
            response = await self._client.post(
                self._url, json=payload, timeout=self._timeout
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json=payload)
        response.raise_for_status()


@dataclass(frozen=True)
class SentNotification:
    recipient: str
    notification_type: str
    message: str
    order_id: str


class RecordingChannel:
    """In-memory channel for tests. Set ``fail`` to simulate outages."""

    name = "recording"

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[SentNotification] = []

    async def send(
        self,
        recipient: str,
        notification_type: str,
        message: str,
        order_id: str,
    ) -> None:
        if self.fail:
            raise ConnectionError("notification channel unavailable")
        self.sent.append(
            SentNotification(recipient, notification_type, message, order_id)
        )


def create_channel(config: NotificationConfig) -> NotificationChannel:
    """Build the channel selected in configuration."""
    if config.channel == "webhook":
        return WebhookChannel(config.webhook_url, timeout=config.webhook_timeout_seconds)
    return LogChannel()


class NotificationDispatcher:
    """Fans one workflow event out to every interested recipient.

    The customer gets every event. Assigned staff get the events their
    role has a template for, and the configured admin recipient gets the
    operational ones. Each delivery is recorded on its own, and a channel
    failure for one recipient does not stop the rest.
    """

    def __init__(
        self,
        store: WorkflowStore,
        channel: NotificationChannel | None = None,
        *,
        admin_recipient: str = "",
    ) -> None:
        self._store = store
        self._channel: NotificationChannel = channel or LogChannel()
        self._admin_recipient = admin_recipient

    async def notify(
        self,
        order_id: str,
        notification_type: str,
        message: str | None = None,
    ) -> None:
        """Send and record notifications for an order event. Never raises."""
        text = message or NOTIFICATION_MESSAGES.get(
            notification_type, f"Order update: {notification_type}"
        )
        try:
            order = await self._store.get_order(order_id)
            if order is None:
                log.warning(
                    "notification_skipped",
                    order_id=order_id,
                    notification_type=notification_type,
                    reason="no_order",
                )
                return

            if order.customer_email:
                await self._deliver(
                    order_id, notification_type, "customer", order.customer_email, text
                )
            else:
                log.warning(
                    "notification_skipped",
                    order_id=order_id,
                    notification_type=notification_type,
                    reason="no_recipient",
                )

            templates = STAKEHOLDER_MESSAGES.get(notification_type, {})
            if templates:
                for assignment in await self._store.list_assignments(order_id):
                    template = templates.get(assignment.role)
                    if template is None:
                        continue
                    await self._deliver(
                        order_id,
                        notification_type,
                        assignment.role,
                        assignment.user_id,
                        template,
                    )

            admin_text = ADMIN_MESSAGES.get(notification_type)
            if admin_text and self._admin_recipient:
                await self._deliver(
                    order_id,
                    notification_type,
                    "admin",
                    self._admin_recipient,
                    admin_text,
                )
        except Exception:
            log.exception(
                "notification_failed",
                order_id=order_id,
                notification_type=notification_type,
            )

    async def notify_staff(
        self,
        order_id: str,
        notification_type: str,
        role: str,
        user_id: str,
        message: str | None = None,
    ) -> None:
        """Direct message to one staff member. Never raises."""
        text = message or NOTIFICATION_MESSAGES.get(
            notification_type, f"Order update: {notification_type}"
        )
        try:
            await self._deliver(order_id, notification_type, role, user_id, text)
        except Exception:
            log.exception(
                "notification_failed",
                order_id=order_id,
                notification_type=notification_type,
                recipient_type=role,
            )

    async def _deliver(
        self,
        order_id: str,
        notification_type: str,
        recipient_type: str,
        recipient: str,
        text: str,
    ) -> None:
        status = "sent"
        try:
            await self._channel.send(recipient, notification_type, text, order_id)
        except Exception:
            status = "failed"
            log.exception(
                "notification_delivery_failed",
                order_id=order_id,
                notification_type=notification_type,
                recipient_type=recipient_type,
                channel=self._channel.name,
            )

        await self._store.insert_notification(
            order_id=order_id,
            notification_type=notification_type,
            recipient_type=recipient_type,
            recipient_identifier=recipient,
            channel=self._channel.name,
            status=status,
            message_content=text,
        )
