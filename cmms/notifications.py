"""Fire-and-forget notification dispatch.

Deliveries run as background tasks so that the triggering operation never
waits on them. A failed delivery is logged and otherwise ignored.

**Example Usage:**

.. code-block:: python

    async with NotificationDispatcher(LoggingNotifier()) as notifications:
        notifications.notify(NotificationEvent.ACCOUNT_APPROVED, user)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, Self

if TYPE_CHECKING:
    from types import TracebackType

    from cmms.common import User

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


class NotificationEvent(StrEnum):
    """Events that produce a notification to a user."""

    ACCOUNT_REGISTERED = "account_registered"
    ACCOUNT_APPROVED = "account_approved"
    ACCOUNT_REJECTED = "account_rejected"
    WORK_ITEM_ASSIGNED = "work_item_assigned"
    PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class Notification:
    """A single message for one recipient.

    :param event: What happened
    :param recipient: The user to inform
    :param context: Event specific values, e.g. a rejection reason
    """

    event: NotificationEvent
    recipient: User
    context: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    """Delivery channel for notifications."""

    async def notify(self, notification: Notification) -> None:
        """Deliver one notification. May raise on delivery failure."""
        ...


class LoggingNotifier:
    """Notifier that records notifications in the log instead of sending them."""

    async def notify(self, notification: Notification) -> None:
        """Log the notification."""
        LOGGER.info(
            "Notification %s for %s: %s",
            notification.event,
            notification.recipient.email,
            notification.context,
        )


class NotificationDispatcher:
    """Schedules deliveries in the background and drains them on shutdown.

    :param notifier: Delivery channel
    :param shutdown_timeout: Seconds to wait for pending deliveries on close,
        None to wait indefinitely
    """

    def __init__(
        self,
        notifier: Notifier,
        shutdown_timeout: float | None = 5,
    ) -> None:
        """Create a dispatcher for a notifier."""
        self.notifier = notifier
        self.shutdown_timeout = shutdown_timeout
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Return the number of deliveries still in flight."""
        return len(self._pending)

    def notify(
        self,
        event: NotificationEvent,
        recipient: User,
        **context: Any,  # noqa: ANN401
    ) -> None:
        """Schedule a notification without waiting for it."""
        notification = Notification(event, recipient, dict(context))
        task = asyncio.get_running_loop().create_task(self._deliver(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, notification: Notification) -> None:
        try:
            await self.notifier.notify(notification)
        except Exception:
            LOGGER.exception(
                "Failed to deliver %s notification to %s",
                notification.event,
                notification.recipient.email,
            )

    async def drain(self) -> None:
        """Wait for pending deliveries, cancelling those that outlast the timeout."""
        if not self._pending:
            return

        LOGGER.info("Waiting for %d pending notifications", len(self._pending))
        _, still_pending = await asyncio.wait(
            set(self._pending),
            timeout=self.shutdown_timeout,
        )
        for task in still_pending:
            task.cancel()
        if still_pending:
            LOGGER.warning("Dropped %d undelivered notifications", len(still_pending))

    async def __aenter__(self) -> Self:
        """Return the dispatcher for use in an async context."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Drain pending deliveries."""
        await self.drain()
