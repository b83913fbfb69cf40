"""Tests for the monitor factory — wiring logic with various config combinations."""

from __future__ import annotations

from datetime import timezone

from pydantic import SecretStr

from alertrelay.core.config import DisplayConfig, Settings, TelegramConfig
from alertrelay.monitor.bot import TelegramBot
from alertrelay.monitor.channels import TelegramNotifier
from alertrelay.monitor.dispatcher import AlertDispatcher
from alertrelay.monitor.factory import create_monitor_stack, resolve_timezone


class TestFactoryWiring:
    def test_webhook_only_without_token(self) -> None:
        stack = create_monitor_stack(Settings(), repository=None)  # type: ignore[arg-type]
        assert isinstance(stack.dispatcher, AlertDispatcher)
        assert stack.notifier is None
        assert stack.bot is None
        assert not stack.dispatcher.enabled

    def test_telegram_enabled(self) -> None:
        settings = Settings(
            telegram=TelegramConfig(bot_token=SecretStr("1:tok"), chat_id=-100),
        )
        stack = create_monitor_stack(settings, repository=None)  # type: ignore[arg-type]
        assert isinstance(stack.notifier, TelegramNotifier)
        assert isinstance(stack.bot, TelegramBot)
        assert stack.dispatcher.enabled

    def test_token_without_chat_keeps_bot(self) -> None:
        settings = Settings(telegram=TelegramConfig(bot_token=SecretStr("1:tok")))
        stack = create_monitor_stack(settings, repository=None)  # type: ignore[arg-type]
        assert stack.bot is not None
        assert not stack.dispatcher.enabled

    def test_unknown_timezone_falls_back_to_utc(self) -> None:
        settings = Settings(display=DisplayConfig(timezone="Mars/Olympus_Mons"))
        stack = create_monitor_stack(settings, repository=None)  # type: ignore[arg-type]
        assert stack.controller._tz is timezone.utc


class TestResolveTimezone:
    def test_unknown(self) -> None:
        assert resolve_timezone("Not/AZone") is timezone.utc
