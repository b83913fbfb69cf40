"""Notification channels — Telegram Bot API delivery."""

from __future__ import annotations

import abc
import asyncio
from typing import Any

import aiohttp
import structlog

from alertrelay.core.config import TelegramConfig
from alertrelay.monitor.exceptions import DeliveryError
from alertrelay.monitor.types import Control, MessageHandle

logger = structlog.get_logger(__name__)


def inline_keyboard(controls: list[Control]) -> dict[str, Any]:
    """One row of inline buttons, one button per control."""
    return {
        "inline_keyboard": [
            [{"text": c.label, "callback_data": c.token} for c in controls]
        ]
    }


class Notifier(abc.ABC):
    """Base class for the chat destination alerts are relayed to."""

    @abc.abstractmethod
    async def send(self, text: str, controls: list[Control] | None = None) -> MessageHandle:
        """Post a new message. Raises DeliveryError on failure."""

    @abc.abstractmethod
    async def edit(
        self,
        handle: MessageHandle,
        text: str,
        controls: list[Control] | None = None,
    ) -> None:
        """Replace the text (and buttons) of an existing message."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class TelegramNotifier(Notifier):
    """Delivers alerts via the Telegram Bot API (HTML parse mode)."""

    def __init__(self, config: TelegramConfig) -> None:
        self._token = config.bot_token.get_secret_value()
        self._chat_id = config.chat_id
        self._api_base = config.api_base.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_secs)
        self._session: aiohttp.ClientSession | None = None

    @property
    def chat_id(self) -> int | None:
        return self._chat_id

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _call(
        self,
        method: str,
        payload: dict[str, Any] | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> Any:
        """POST one Bot API method and return its ``result`` field."""
        url = f"{self._api_base}/bot{self._token}/{method}"
        try:
            session = self._get_session()
            async with session.post(url, json=payload or {}, timeout=timeout) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = {"ok": False, "description": (await resp.text())[:200]}
                if resp.status == 200 and body.get("ok"):
                    return body.get("result")
                description = str(body.get("description") or f"HTTP {resp.status}")
                logger.warning(
                    "telegram_call_failed",
                    method=method,
                    status=resp.status,
                    description=description,
                )
                raise DeliveryError(method, description, status=resp.status)
        except asyncio.TimeoutError as exc:
            raise DeliveryError(method, "request timeout") from exc
        except aiohttp.ClientError as exc:
            raise DeliveryError(method, str(exc) or type(exc).__name__) from exc

    async def send(self, text: str, controls: list[Control] | None = None) -> MessageHandle:
        if self._chat_id is None:
            raise DeliveryError("sendMessage", "chat id not configured")
        payload: dict[str, Any] = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": "HTML",
        }
        if controls:
            payload["reply_markup"] = inline_keyboard(controls)
        result = await self._call("sendMessage", payload)
        return MessageHandle(
            chat_id=result["chat"]["id"],
            message_id=result["message_id"],
        )

    async def edit(
        self,
        handle: MessageHandle,
        text: str,
        controls: list[Control] | None = None,
    ) -> None:
        payload: dict[str, Any] = {
            "chat_id": handle.chat_id,
            "message_id": handle.message_id,
            "text": text,
            "parse_mode": "HTML",
            # An empty keyboard removes any buttons left on the message.
            "reply_markup": inline_keyboard(controls) if controls else {"inline_keyboard": []},
        }
        await self._call("editMessageText", payload)

    async def answer_callback(
        self,
        callback_query_id: str,
        text: str,
        show_alert: bool = False,
    ) -> None:
        await self._call(
            "answerCallbackQuery",
            {"callback_query_id": callback_query_id, "text": text, "show_alert": show_alert},
        )

    async def send_text(self, chat_id: int, text: str) -> None:
        """Plain reply to a command, outside the alert flow."""
        await self._call("sendMessage", {"chat_id": chat_id, "text": text, "parse_mode": "HTML"})

    async def get_updates(self, offset: int | None, timeout_secs: int) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {
            "timeout": timeout_secs,
            "allowed_updates": ["message", "callback_query"],
        }
        if offset is not None:
            payload["offset"] = offset
        # Long poll: the HTTP timeout must outlive the server-side wait.
        timeout = aiohttp.ClientTimeout(total=timeout_secs + self._timeout.total)
        return await self._call("getUpdates", payload, timeout=timeout) or []

    async def get_me(self) -> dict[str, Any]:
        return await self._call("getMe")

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
