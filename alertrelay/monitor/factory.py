"""Convenience factory for wiring the notification stack."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from alertrelay.core.config import Settings
from alertrelay.lifecycle.controller import LifecycleController
from alertrelay.monitor.bot import TelegramBot
from alertrelay.monitor.channels import TelegramNotifier
from alertrelay.monitor.dispatcher import AlertDispatcher
from alertrelay.storage.repository import AlertRepository

logger = structlog.get_logger(__name__)


@dataclass
class MonitorStack:
    dispatcher: AlertDispatcher
    controller: LifecycleController
    notifier: TelegramNotifier | None = None
    bot: TelegramBot | None = None


def resolve_timezone(name: str) -> tzinfo:
    """Zone for displayed times; unknown names fall back to UTC."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("display_timezone_unknown", timezone=name)
        return timezone.utc


def create_monitor_stack(settings: Settings, repository: AlertRepository) -> MonitorStack:
    """Build notifier, dispatcher, controller and (when enabled) the bot poller."""
    tz = resolve_timezone(settings.display.timezone)
    controller = LifecycleController(repository, tz)

    notifier: TelegramNotifier | None = None
    bot: TelegramBot | None = None
    if settings.telegram.enabled:
        notifier = TelegramNotifier(settings.telegram)
        bot = TelegramBot(notifier, controller, repository, settings.telegram)

    dispatcher = AlertDispatcher(
        notifier=notifier,
        repository=repository,
        chat_id=settings.telegram.chat_id,
        tz=tz,
    )
    return MonitorStack(dispatcher=dispatcher, controller=controller, notifier=notifier, bot=bot)
