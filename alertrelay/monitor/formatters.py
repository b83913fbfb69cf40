"""Pure functions that render alerts and reports as Telegram HTML text."""

from __future__ import annotations

import re
from datetime import datetime, timezone, tzinfo
from html import escape as html_escape
from typing import Any

from alertrelay.core.types import (
    Action,
    Alert,
    AlertInput,
    AlertMetadata,
    ContributorStat,
    WeeklySummary,
)
from alertrelay.monitor.types import Control

# ── Callback tokens ─────────────────────────────────────────────

_TOKEN_VERBS: dict[Action, str] = {
    Action.ACKNOWLEDGE: "ack",
    Action.RESOLVE: "resolve",
}

_TOKEN_PATTERN = re.compile(r"^(ack|resolve)_(\d+)$")

_URL_LABELS = (
    ("silence", "Silence"),
    ("dashboard", "Dashboard"),
    ("panel", "Panel"),
    ("generator", "Generator"),
    ("source", "Source URL"),
)


def callback_token(action: Action, alert_id: int) -> str:
    """Encode a button press as ``{verb}_{id}``."""
    return f"{_TOKEN_VERBS[action]}_{alert_id}"


def parse_callback_token(data: str | None) -> tuple[Action, int] | None:
    """Decode ``ack_<id>`` / ``resolve_<id>``; anything else is None."""
    if not data:
        return None
    match = _TOKEN_PATTERN.match(data)
    if match is None:
        return None
    verb, raw_id = match.groups()
    action = Action.ACKNOWLEDGE if verb == "ack" else Action.RESOLVE
    return action, int(raw_id)


def acknowledge_controls(alert_id: int) -> list[Control]:
    return [Control(label="Acknowledge", token=callback_token(Action.ACKNOWLEDGE, alert_id))]


def resolve_controls(alert_id: int) -> list[Control]:
    return [Control(label="Resolve", token=callback_token(Action.RESOLVE, alert_id))]


# ── Time helpers ────────────────────────────────────────────────


def format_timestamp(timestamp_ms: int, tz: tzinfo = timezone.utc) -> str:
    """Render epoch-millis as ``dd/mm/yy HH:MM`` in *tz*."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz).strftime("%d/%m/%y %H:%M")


def format_clock(epoch_secs: int | None, tz: tzinfo = timezone.utc) -> str:
    if not epoch_secs:
        return "Unknown"
    return datetime.fromtimestamp(epoch_secs, tz).strftime("%H:%M")


def format_duration(seconds: float) -> str:
    minutes = int(round(seconds / 60))
    if minutes < 60:
        return f"{minutes}m"
    if minutes < 1440:
        return f"{minutes // 60}h {minutes % 60}m"
    return f"{minutes // 1440}d {(minutes % 1440) // 60}h"


def calculate_mttr(acknowledged_at: int | None, resolved_at: int | None) -> str | None:
    """Time from acknowledgement to resolution, or None when either is missing."""
    if not acknowledged_at or not resolved_at:
        return None
    return format_duration(resolved_at - acknowledged_at)


def format_uptime(uptime_secs: float) -> str:
    total = int(uptime_secs)
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


# ── Alert messages ──────────────────────────────────────────────


def _pairs(title: str, mapping: dict[str, Any]) -> list[str]:
    if not mapping:
        return []
    lines = [f"{title}:"]
    lines.extend(
        f" - {html_escape(str(k))} = {html_escape(str(v))}" for k, v in mapping.items()
    )
    return lines


def _metadata_lines(metadata: AlertMetadata) -> list[str]:
    lines: list[str] = []
    if metadata.status:
        lines.append(html_escape(metadata.status))
    if metadata.values:
        values = ", ".join(f"{k}={v}" for k, v in metadata.values.items())
        lines.append(f"Value: {html_escape(values)}")
    lines.extend(_pairs("Labels", metadata.labels))
    lines.extend(_pairs("Annotations", metadata.annotations))
    return lines


def _url_lines(metadata: AlertMetadata) -> list[str]:
    return [
        f"{label}: {html_escape(metadata.urls[key])}"
        for key, label in _URL_LABELS
        if metadata.urls.get(key)
    ]


def format_alert_message(alert: Alert | AlertInput, tz: tzinfo = timezone.utc) -> str:
    """Full notification text; verbose when the alert carries metadata."""
    header = [
        f"<b>[{alert.severity.value.upper()}] {html_escape(alert.title)}</b>",
        f"Source: {html_escape(alert.source)}",
        f"Time: {format_timestamp(alert.timestamp or 0, tz)}",
    ]
    metadata = alert.metadata
    if metadata is None:
        return "\n".join([*header, "", html_escape(alert.message)])

    body = [*header, *_metadata_lines(metadata), "", html_escape(alert.message)]
    urls = _url_lines(metadata)
    if urls:
        body.extend(["", *urls])
    return "\n".join(body)


def format_acknowledged_message(alert: Alert, tz: tzinfo = timezone.utc) -> str:
    ack = (
        f"Acknowledged by <b>{html_escape(alert.acknowledger_display)}</b>"
        f" at {format_clock(alert.acknowledged_at, tz)}"
    )
    return f"{format_alert_message(alert, tz)}\n\n{ack}"


def format_resolved_message(alert: Alert, tz: tzinfo = timezone.utc) -> str:
    lines = [
        f"Acknowledged by <b>{html_escape(alert.acknowledger_display)}</b>"
        f" at {format_clock(alert.acknowledged_at, tz)}",
        f"Resolved by <b>{html_escape(alert.resolver_display)}</b>"
        f" at {format_clock(alert.resolved_at, tz)}",
    ]
    mttr = calculate_mttr(alert.acknowledged_at, alert.resolved_at)
    if mttr is not None:
        lines.append(f"Time to resolve: {mttr}")
    return f"{format_alert_message(alert, tz)}\n\n" + "\n".join(lines)


# ── Reports ─────────────────────────────────────────────────────


def format_status(unacknowledged: int) -> str:
    if unacknowledged == 0:
        return "<b>Status:</b> All alerts acknowledged - system healthy"
    plural = "s" if unacknowledged > 1 else ""
    return f"<b>Status:</b> {unacknowledged} unacknowledged alert{plural} requiring attention"


def format_weekly_report(
    summary: WeeklySummary,
    acknowledgers: list[ContributorStat],
    resolvers: list[ContributorStat],
) -> str:
    lines = [
        "<b>Weekly Report</b> (Last 7 days)",
        "",
        "<b>Alert Summary:</b>",
        f"• Total Alerts: {summary.total}",
        f"• Acknowledged: {summary.acknowledged}",
        f"• Resolved: {summary.resolved}",
        f"• Unacknowledged: {summary.unacknowledged}",
        "",
        "<b>By Severity:</b>",
        f"• Critical: {summary.critical}",
        f"• Warning: {summary.warning}",
        f"• Info: {summary.info}",
    ]

    if acknowledgers:
        lines.extend(["", "<b>Top Contributors:</b>"])
        for rank, stat in enumerate(acknowledgers, start=1):
            lines.append(
                f"{rank}. {html_escape(stat.display_name)}: "
                f"{stat.count} acked, {stat.resolved_count} resolved"
            )

    if resolvers:
        lines.extend(["", "<b>Top Resolvers:</b>"])
        for rank, stat in enumerate(resolvers, start=1):
            lines.append(f"{rank}. {html_escape(stat.display_name)}: {stat.count} resolved")

    return "\n".join(lines)
