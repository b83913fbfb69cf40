#!/usr/bin/env python3
"""Service entrypoint — wires the alert store, notifier, bot and web server.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from alertrelay.api.app import create_web_app, start_web_server
from alertrelay.core.config import load_settings, validate_settings
from alertrelay.core.logging import setup_logging
from alertrelay.monitor.factory import create_monitor_stack
from alertrelay.storage.exceptions import StorageError
from alertrelay.storage.repository import AlertRepository

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start all components and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    # ── Configuration checks ─────────────────────────────────────
    warnings, errors = validate_settings(settings)
    for message in warnings:
        logger.warning("config_warning", message=message)
    for message in errors:
        logger.error("config_error", message=message)
    if errors and settings.environment == "production":
        print(
            "Configuration errors in production: " + "; ".join(errors),
            file=sys.stderr,
        )
        return 1

    # ── Alert store ──────────────────────────────────────────────
    repository = AlertRepository.from_config(settings.database)
    try:
        await repository.open()
    except StorageError:
        logger.exception("alert_store_open_failed", path=settings.database.path)
        return 1

    # ── Notifier, dispatcher, bot ────────────────────────────────
    stack = create_monitor_stack(settings, repository)
    if stack.bot is None:
        logger.warning("bot_disabled", reason="BOT_TOKEN not configured - webhook-only mode")

    # ── Web server ───────────────────────────────────────────────
    app = create_web_app(settings, repository, stack.dispatcher, stack.bot)
    runner = await start_web_server(app, settings.server.host, settings.server.port)

    if stack.bot is not None:
        await stack.bot.start()

    logger.info(
        "service_running",
        environment=settings.environment,
        host=settings.server.host,
        port=settings.server.port,
        database=settings.database.path,
        bot="active" if stack.bot else "disabled",
        chat_id_configured=settings.telegram.chat_id is not None,
        webhook_auth=bool(settings.server.webhook_secret.get_secret_value()),
        authorized_users=len(settings.telegram.authorized_users),
    )

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("service_shutting_down")

    if stack.bot is not None:
        try:
            await stack.bot.stop()
        except Exception:
            logger.exception("bot_stop_error")

    await runner.cleanup()
    await stack.dispatcher.close()
    await repository.close()

    logger.info("service_stopped")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the alert relay webhook service and Telegram bot.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
