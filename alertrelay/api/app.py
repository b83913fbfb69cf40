"""HTTP surface — webhook ingestion, health and statistics.

Exposes:
- ``POST /api/alert``  → ingest one alert (bearer token when configured)
- ``GET  /api/alert``  → usage description
- ``GET  /api/alerts`` → weekly summary (bearer token when configured)
- ``GET  /api/health`` → liveness, bot connection and config flags
"""

from __future__ import annotations

import asyncio
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import structlog
from aiohttp import web

from alertrelay.core.config import Settings
from alertrelay.ingest.exceptions import ValidationError
from alertrelay.ingest.normalizer import build_alert_input
from alertrelay.ingest.validation import EXAMPLE_PAYLOAD, SUPPORTED_FORMATS
from alertrelay.monitor.bot import TelegramBot
from alertrelay.monitor.dispatcher import AlertDispatcher
from alertrelay.monitor.formatters import format_uptime
from alertrelay.storage.exceptions import StorageError
from alertrelay.storage.repository import AlertRepository

logger = structlog.get_logger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

SETTINGS_KEY = web.AppKey("settings", Settings)
REPOSITORY_KEY = web.AppKey("repository", AlertRepository)
DISPATCHER_KEY = web.AppKey("dispatcher", AlertDispatcher)
BOT_KEY = web.AppKey("bot", TelegramBot | None)
STARTED_AT_KEY = web.AppKey("started_at", float)
PENDING_KEY = web.AppKey("pending", set)

AVAILABLE_ENDPOINTS = ["/api/health", "/api/alert", "/api/alerts"]

# (method, path) pairs that require the webhook bearer token.
_PROTECTED_ROUTES = frozenset({("POST", "/api/alert"), ("GET", "/api/alerts")})


def _bearer_token(request: web.Request) -> str | None:
    parts = request.headers.get("Authorization", "").split(" ")
    if len(parts) < 2 or not parts[1]:
        return None
    return parts[1]


# ── Middlewares ─────────────────────────────────────────────────


@web.middleware
async def _logging_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    started = time.monotonic()
    response = await handler(request)
    duration_ms = round((time.monotonic() - started) * 1000, 1)
    log = logger.warning if response.status >= 400 else logger.debug
    log(
        "http_request",
        method=request.method,
        path=request.path,
        status=response.status,
        duration_ms=duration_ms,
        remote=request.remote,
    )
    return response


@web.middleware
async def _error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return web.json_response(
            {
                "error": "Not found",
                "message": "Endpoint not found",
                "available_endpoints": AVAILABLE_ENDPOINTS,
            },
            status=404,
        )
    except web.HTTPException as exc:
        if exc.status < 400:
            raise
        return web.json_response({"error": exc.reason}, status=exc.status)
    except Exception as exc:
        logger.exception("unhandled_request_error", method=request.method, path=request.path)
        settings = request.app[SETTINGS_KEY]
        detail = str(exc) if settings.environment == "development" else "Something went wrong"
        return web.json_response(
            {"error": "Internal server error", "message": detail},
            status=500,
        )


def _log_detached_failure(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("request_handler_failed", error=str(exc), exc_info=exc)


@web.middleware
async def _timeout_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Answer 408 after the configured timeout; the handler keeps running."""
    timeout = request.app[SETTINGS_KEY].server.request_timeout_secs
    task = asyncio.ensure_future(handler(request))
    pending: set[asyncio.Future[Any]] = request.app[PENDING_KEY]
    pending.add(task)
    task.add_done_callback(pending.discard)
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout)
    except asyncio.TimeoutError:
        task.add_done_callback(_log_detached_failure)
        logger.warning(
            "request_timeout",
            method=request.method,
            path=request.path,
            timeout_secs=timeout,
        )
        return web.json_response(
            {
                "error": "Request timeout",
                "message": f"Request exceeded {int(timeout * 1000)}ms timeout",
            },
            status=408,
        )


@web.middleware
async def _auth_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Require the webhook bearer token on protected routes when one is configured."""
    if (request.method, request.path) not in _PROTECTED_ROUTES:
        return await handler(request)

    secret = request.app[SETTINGS_KEY].server.webhook_secret.get_secret_value()
    if not secret:
        return await handler(request)

    token = _bearer_token(request)
    if token is None:
        logger.info("auth_failed", reason="missing_token", remote=request.remote)
        return web.json_response(
            {
                "error": "Access token required",
                "hint": 'Include "Authorization: Bearer <token>" header',
            },
            status=401,
        )
    if not hmac.compare_digest(token.encode(), secret.encode()):
        logger.info("auth_failed", reason="invalid_token", remote=request.remote)
        return web.json_response({"error": "Invalid access token"}, status=403)
    return await handler(request)


# ── Handlers ────────────────────────────────────────────────────


def _invalid_payload(details: str) -> web.Response:
    return web.json_response(
        {
            "error": "Invalid payload",
            "details": details,
            "supported_formats": SUPPORTED_FORMATS,
            "example": EXAMPLE_PAYLOAD,
        },
        status=400,
    )


async def _handle_post_alert(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except ValueError:
        logger.info("webhook_rejected", reason="malformed_json")
        return _invalid_payload("Malformed JSON body")

    try:
        alert_input, kind = build_alert_input(payload)
    except ValidationError as exc:
        logger.info("webhook_rejected", reason=exc.reason)
        return _invalid_payload(exc.reason)

    repository = request.app[REPOSITORY_KEY]
    try:
        alert = await repository.create(alert_input)
    except StorageError:
        logger.exception("alert_create_failed", title=alert_input.title)
        return web.json_response(
            {"error": "Internal server error", "message": "Failed to process alert"},
            status=500,
        )

    logger.info(
        "alert_created",
        alert_id=alert.id,
        kind=kind.value,
        severity=alert.severity.value,
        source=alert.source,
        title=alert.title,
    )
    notified = request.app[DISPATCHER_KEY].schedule(alert)

    return web.json_response(
        {
            "success": True,
            "alert": {
                "id": alert.id,
                "title": alert.title,
                "source": alert.source,
                "severity": alert.severity.value,
                "timestamp": alert.timestamp,
            },
            "notified": notified,
        },
        status=201,
    )


async def _handle_alert_usage(request: web.Request) -> web.Response:
    auth_enabled = bool(request.app[SETTINGS_KEY].server.webhook_secret.get_secret_value())
    auth_header = ' -H "Authorization: Bearer YOUR_TOKEN"' if auth_enabled else ""
    sample = json.dumps(
        {"title": "Test", "source": "manual", "severity": "info", "message": "Test message"},
        separators=(",", ":"),
    )
    return web.json_response(
        {
            "message": "Alert webhook endpoint",
            "method": "POST",
            "authentication": (
                "Bearer token required"
                if auth_enabled
                else "No authentication (WEBHOOK_SECRET not set)"
            ),
            "supported_formats": {
                "canonical": {
                    "title": "Alert title",
                    "source": "system-name",
                    "severity": "critical|warning|info",
                    "message": "Alert description",
                    "timestamp": "optional epoch milliseconds",
                },
                "grafana": "Auto-detected Grafana webhook format",
                "prometheus": "Auto-detected Prometheus Alertmanager format",
                "zabbix": "Auto-detected Zabbix webhook format",
                "generic": "Auto-detected generic webhook with message field",
            },
            "endpoints": {
                "POST /api/alert": "Submit alert (multiple formats supported)",
                "GET /api/alerts": "Get alert statistics (auth required if configured)",
                "GET /api/health": "Health check and system status",
            },
            "example_curl": (
                f"curl -X POST {request.scheme}://{request.host}/api/alert{auth_header}"
                f" -H \"Content-Type: application/json\" -d '{sample}'"
            ),
        }
    )


async def _handle_alert_stats(request: web.Request) -> web.Response:
    try:
        summary = await request.app[REPOSITORY_KEY].weekly_summary()
    except StorageError:
        logger.exception("alert_stats_failed")
        return web.json_response({"error": "Failed to fetch alerts"}, status=500)
    return web.json_response({"success": True, "stats": summary.model_dump()})


async def _handle_health(request: web.Request) -> web.Response:
    settings = request.app[SETTINGS_KEY]
    bot = request.app[BOT_KEY]
    try:
        unacknowledged = await request.app[REPOSITORY_KEY].unacknowledged_count()
        if bot is not None:
            bot_status = await bot.describe()
        else:
            bot_status = {
                "connected": False,
                "reason": (
                    "Bot initialization failed"
                    if settings.telegram.enabled
                    else "BOT_TOKEN not configured"
                ),
            }
    except Exception:
        logger.exception("health_check_failed")
        return web.json_response(
            {"status": "error", "message": "Health check failed"},
            status=500,
        )

    return web.json_response(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": format_uptime(time.monotonic() - request.app[STARTED_AT_KEY]),
            "alerts": {"unacknowledged": unacknowledged},
            "bot": bot_status,
            "config": {
                "chat_id_configured": settings.telegram.chat_id is not None,
                "webhook_auth_enabled": bool(settings.server.webhook_secret.get_secret_value()),
                "authorized_users_count": len(settings.telegram.authorized_users),
            },
        }
    )


# ── Application ─────────────────────────────────────────────────


async def _drain_pending(app: web.Application) -> None:
    """Let handlers that outlived their 408 finish before the store closes."""
    pending = app[PENDING_KEY]
    if pending:
        logger.info("draining_pending_requests", count=len(pending))
        await asyncio.gather(*list(pending), return_exceptions=True)


def create_web_app(
    settings: Settings,
    repository: AlertRepository,
    dispatcher: AlertDispatcher,
    bot: TelegramBot | None = None,
) -> web.Application:
    """Create the aiohttp web application."""
    app = web.Application(
        middlewares=[
            _logging_middleware,
            _error_middleware,
            _timeout_middleware,
            _auth_middleware,
        ],
        client_max_size=settings.server.max_body_bytes,
    )
    app[SETTINGS_KEY] = settings
    app[REPOSITORY_KEY] = repository
    app[DISPATCHER_KEY] = dispatcher
    app[BOT_KEY] = bot
    app[STARTED_AT_KEY] = time.monotonic()
    app[PENDING_KEY] = set()

    if not settings.server.webhook_secret.get_secret_value():
        logger.warning("webhook_auth_disabled", reason="WEBHOOK_SECRET not set")

    app.on_shutdown.append(_drain_pending)

    app.router.add_post("/api/alert", _handle_post_alert)
    app.router.add_get("/api/alert", _handle_alert_usage)
    app.router.add_get("/api/alerts", _handle_alert_stats)
    app.router.add_get("/api/health", _handle_health)
    return app


async def start_web_server(
    app: web.Application,
    host: str = "0.0.0.0",
    port: int = 3000,
) -> web.AppRunner:
    """Start serving *app*. Returns the runner for cleanup."""
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("web_server_started", host=host, port=port)
    return runner
