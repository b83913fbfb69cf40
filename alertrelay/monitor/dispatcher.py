"""Alert dispatcher — relays stored alerts to the chat notifier.

Delivery is best-effort: a failure is logged with operator guidance and the
alert stays stored without delivery info.  Nothing here ever raises into
the request that created the alert.
"""

from __future__ import annotations

import asyncio
from datetime import timezone, tzinfo

import structlog

from alertrelay.core.types import Alert
from alertrelay.monitor.channels import Notifier
from alertrelay.monitor.exceptions import DeliveryError
from alertrelay.monitor.formatters import acknowledge_controls, format_alert_message
from alertrelay.monitor.types import MessageHandle
from alertrelay.storage.repository import AlertRepository

logger = structlog.get_logger(__name__)


class AlertDispatcher:
    """Formats an alert, posts it with an Acknowledge button, records where."""

    def __init__(
        self,
        notifier: Notifier | None,
        repository: AlertRepository,
        chat_id: int | None = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self._notifier = notifier
        self._repository = repository
        self._chat_id = chat_id
        self._tz = tz
        self._tasks: set[asyncio.Task[MessageHandle | None]] = set()

    @property
    def enabled(self) -> bool:
        return self._notifier is not None and self._chat_id is not None

    # ── Delivery ────────────────────────────────────────────────

    async def deliver(self, alert: Alert) -> MessageHandle | None:
        """Send *alert* to the chat. Returns the handle, or None on any failure."""
        if self._notifier is None or self._chat_id is None:
            logger.warning("alert_not_sent_chat_unconfigured", alert_id=alert.id)
            return None

        logger.info("alert_sending", alert_id=alert.id, chat_id=self._chat_id)
        try:
            handle = await self._notifier.send(
                format_alert_message(alert, self._tz),
                acknowledge_controls(alert.id),
            )
        except DeliveryError as exc:
            logger.error(
                "alert_send_failed",
                alert_id=alert.id,
                error=exc.description,
                hint=self._guidance(exc.description),
            )
            return None
        except Exception:
            logger.exception("alert_send_error", alert_id=alert.id)
            return None

        await self._repository.record_delivery(alert.id, handle.message_id, handle.chat_id)
        logger.info("alert_sent", alert_id=alert.id, message_id=handle.message_id)
        return handle

    def schedule(self, alert: Alert) -> bool:
        """Deliver in the background. Returns whether delivery was attempted."""
        if not self.enabled:
            logger.warning("alert_not_sent_chat_unconfigured", alert_id=alert.id)
            return False
        task = asyncio.create_task(self.deliver(alert), name=f"deliver-alert-{alert.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    def _guidance(self, description: str) -> str | None:
        text = description.lower()
        if "chat not found" in text:
            return (
                "verify the bot is in the target group, check the CHAT_ID value "
                f"({self._chat_id}) and that the bot may send messages; "
                "add the bot to the group and send /start to find the id"
            )
        if "bot was blocked" in text or "kicked" in text:
            return "bot was blocked by the user or removed from the group"
        if "timeout" in text:
            return "Telegram API timeout - check network connectivity"
        return None

    # ── Lifecycle ───────────────────────────────────────────────

    async def drain(self) -> None:
        """Wait for in-flight deliveries."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._notifier is not None:
            try:
                await self._notifier.close()
            except Exception:
                logger.exception("notifier_close_error", notifier=type(self._notifier).__name__)
