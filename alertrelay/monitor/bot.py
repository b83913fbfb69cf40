"""Telegram update poller — button presses and chat commands.

Usage::

    bot = TelegramBot(notifier, controller, repository, settings.telegram)
    await bot.start()
    # ...
    await bot.stop()
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from alertrelay.core.config import TelegramConfig
from alertrelay.core.types import Actor
from alertrelay.lifecycle.controller import LifecycleController
from alertrelay.monitor.channels import TelegramNotifier
from alertrelay.monitor.exceptions import DeliveryError
from alertrelay.monitor.formatters import (
    format_status,
    format_weekly_report,
    parse_callback_token,
)
from alertrelay.monitor.types import MessageHandle
from alertrelay.storage.repository import AlertRepository

logger = structlog.get_logger(__name__)

ERROR_BACKOFF_SECS = 5.0

ACCESS_DENIED = "Access denied."

WELCOME_TEXT = """<b>Alert Relay</b> - Alert Management System

Welcome! I manage infrastructure alerts with team collaboration features.

<b>Available Commands:</b>
/status - Show unacknowledged alerts count
/report - Weekly alert summary with statistics
/help - Show detailed help information

<b>How it works:</b>
• External systems send alerts via webhook
• I notify this group with interactive buttons
• Team members can acknowledge and resolve alerts
• Track who handled what and when"""

HELP_TEXT = """<b>Alert Relay Help</b>

<b>Available Commands:</b>
/start - Welcome message and system overview
/status - Current unacknowledged alerts count
/report - Weekly statistics and top contributors
/help - This help guide

<b>Alert Workflow:</b>
1. External monitoring systems send webhooks
2. Bot creates alert and notifies this group
3. Team members click "Acknowledge"
4. After acknowledgment, click "Resolve" when fixed
5. Every action is recorded with who and when

<b>Supported Webhook Formats:</b>
• Grafana alerts
• Prometheus Alertmanager
• Zabbix notifications
• Generic webhooks with a message field
• Native alert format

<b>Webhook:</b>
POST /api/alert with Bearer token authentication"""


def actor_from_user(user: dict[str, Any]) -> Actor:
    return Actor(
        id=user["id"],
        username=user.get("username"),
        first_name=user.get("first_name"),
        last_name=user.get("last_name"),
    )


class TelegramBot:
    """Long-polls ``getUpdates`` and routes each update."""

    def __init__(
        self,
        notifier: TelegramNotifier,
        controller: LifecycleController,
        repository: AlertRepository,
        config: TelegramConfig,
    ) -> None:
        self._notifier = notifier
        self._controller = controller
        self._repository = repository
        self._authorized = set(config.authorized_users)
        self._poll_timeout = config.poll_timeout_secs
        self._offset: int | None = None
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._me: dict[str, Any] | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        if not self._authorized:
            logger.warning("bot_commands_public", reason="no authorized users configured")
        try:
            self._me = await self._notifier.get_me()
            logger.info("bot_connected", username=self._me.get("username"))
        except DeliveryError as exc:
            logger.error("bot_get_me_failed", error=exc.description)
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("bot_polling_stopped")

    async def describe(self) -> dict[str, Any]:
        """Connection summary for the health endpoint."""
        try:
            self._me = await self._notifier.get_me()
        except DeliveryError as exc:
            return {"connected": False, "reason": exc.description}
        return {"connected": True, "username": self._me.get("username")}

    # ── Polling ─────────────────────────────────────────────────

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                return
            except DeliveryError as exc:
                logger.error("bot_polling_error", error=exc.description)
                await asyncio.sleep(ERROR_BACKOFF_SECS)
            except Exception:
                logger.exception("bot_polling_loop_error")
                await asyncio.sleep(ERROR_BACKOFF_SECS)

    async def poll_once(self) -> int:
        """Fetch and handle one batch of updates. Returns how many were seen."""
        updates = await self._notifier.get_updates(self._offset, self._poll_timeout)
        for update in updates:
            self._offset = update["update_id"] + 1
            try:
                await self.handle_update(update)
            except Exception:
                logger.exception("bot_update_error", update_id=update.get("update_id"))
        return len(updates)

    async def handle_update(self, update: dict[str, Any]) -> None:
        if "callback_query" in update:
            await self._handle_callback(update["callback_query"])
        elif "message" in update:
            await self._handle_message(update["message"])

    # ── Button presses ──────────────────────────────────────────

    async def _handle_callback(self, query: dict[str, Any]) -> None:
        query_id = query["id"]
        parsed = parse_callback_token(query.get("data"))
        if parsed is None:
            await self._notifier.answer_callback(query_id, "Invalid callback data", show_alert=True)
            return

        action, alert_id = parsed
        actor = actor_from_user(query["from"])
        try:
            outcome = await self._controller.handle(alert_id, action, actor)
        except Exception:
            logger.exception("callback_handling_error", alert_id=alert_id, action=action.value)
            await self._notifier.answer_callback(
                query_id, "Error processing request", show_alert=True
            )
            return

        if outcome.applied and outcome.text is not None:
            message = query.get("message") or {}
            if message:
                handle = MessageHandle(
                    chat_id=message["chat"]["id"],
                    message_id=message["message_id"],
                )
                try:
                    await self._notifier.edit(handle, outcome.text, outcome.controls)
                except DeliveryError as exc:
                    logger.warning(
                        "alert_message_edit_failed",
                        alert_id=alert_id,
                        error=exc.description,
                    )

        await self._notifier.answer_callback(
            query_id,
            outcome.notice,
            show_alert=not outcome.applied and outcome.by is None,
        )

    # ── Commands ────────────────────────────────────────────────

    def is_authorized(self, user: dict[str, Any]) -> bool:
        if not self._authorized:
            logger.debug("bot_public_access", user_id=user.get("id"))
            return True
        if str(user.get("id")) in self._authorized:
            return True
        username = user.get("username")
        return bool(username) and (
            f"@{username}" in self._authorized or username in self._authorized
        )

    async def _handle_message(self, message: dict[str, Any]) -> None:
        text = (message.get("text") or "").strip()
        if not text.startswith("/"):
            return
        command = text.split()[0].split("@")[0].lower()
        handlers = {
            "/start": self._cmd_start,
            "/status": self._cmd_status,
            "/report": self._cmd_report,
            "/help": self._cmd_help,
        }
        handler = handlers.get(command)
        if handler is None:
            return

        chat_id = message["chat"]["id"]
        user = message.get("from") or {}
        if not self.is_authorized(user):
            logger.info("bot_command_unauthorized", command=command, user_id=user.get("id"))
            await self._notifier.send_text(chat_id, ACCESS_DENIED)
            return

        logger.info("bot_command", command=command, user_id=user.get("id"))
        await handler(chat_id)

    async def _cmd_start(self, chat_id: int) -> None:
        await self._notifier.send_text(chat_id, WELCOME_TEXT)

    async def _cmd_help(self, chat_id: int) -> None:
        await self._notifier.send_text(chat_id, HELP_TEXT)

    async def _cmd_status(self, chat_id: int) -> None:
        try:
            count = await self._repository.unacknowledged_count()
        except Exception:
            logger.exception("bot_status_error")
            await self._notifier.send_text(chat_id, "Error retrieving system status")
            return
        await self._notifier.send_text(chat_id, format_status(count))

    async def _cmd_report(self, chat_id: int) -> None:
        try:
            summary, acknowledgers, resolvers = await asyncio.gather(
                self._repository.weekly_summary(),
                self._repository.top_acknowledgers(),
                self._repository.top_resolvers(),
            )
        except Exception:
            logger.exception("bot_report_error")
            await self._notifier.send_text(chat_id, "Error generating weekly report")
            return
        await self._notifier.send_text(
            chat_id, format_weekly_report(summary, acknowledgers, resolvers)
        )
