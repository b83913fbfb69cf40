"""Webhook format detection and normalisation onto the canonical alert schema.

Detection is a fixed priority chain and the first structural match wins:

1. canonical  — already in our own format, passed through after trimming
2. grafana    — ``alerts`` list plus ``receiver``
3. prometheus — ``alerts`` list plus ``groupKey`` (Alertmanager)
4. zabbix     — ``trigger`` object plus an ``event`` or ``problem`` object
5. generic    — ``message`` plus one of ``status`` / ``level`` / ``priority``

A payload can satisfy several predicates (a Grafana body also carries
``status``), so the order must not change.
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import structlog
from pydantic import BaseModel

from alertrelay.core.types import (
    MESSAGE_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    AlertInput,
    AlertMetadata,
    Severity,
    SourceKind,
)
from alertrelay.ingest.exceptions import ValidationError
from alertrelay.ingest.severity import map_severity
from alertrelay.ingest.validation import canonical_error, is_canonical, timestamp_in_range

logger = structlog.get_logger(__name__)

# Top-level keys of a generic payload that are not copied into labels.
GENERIC_RESERVED_KEYS = frozenset(
    {"title", "source", "severity", "message", "timestamp", "status", "level", "priority"}
)

# encodeURIComponent leaves these unescaped in addition to quote()'s defaults.
_URI_COMPONENT_SAFE = "!~*'()"

_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")
_INTEGER = re.compile(r"-?[0-9]+")


class NormalizeResult(BaseModel):
    """Outcome of running a payload through the detection chain."""

    kind: SourceKind | None = None
    alert: AlertInput | None = None

    @property
    def recognized(self) -> bool:
        return self.kind is not None

    @property
    def transformed(self) -> bool:
        return self.kind is not None and self.kind != SourceKind.CANONICAL


# ── Helpers ─────────────────────────────────────────────────────


def _now_ms() -> int:
    return int(time.time() * 1000)


def _obj(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(*values: Any) -> Any:
    """Return the first truthy value, mirroring an ``a || b || c`` chain."""
    for value in values:
        if value:
            return value
    return None


def _text(value: Any, limit: int | None = None) -> str:
    if isinstance(value, str):
        text = value
    elif isinstance(value, (dict, list)):
        text = json.dumps(value, ensure_ascii=False)
    else:
        text = str(value)
    if limit is not None and len(text) > limit:
        text = text[:limit]
    return text


def parse_timestamp_ms(value: Any, default: int) -> int:
    """Parse epoch-millis numbers, numeric strings or ISO-8601 dates."""
    if value is None or isinstance(value, bool):
        return default
    if not timestamp_in_range(value):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str) or not value.strip():
        return default

    raw = value.strip()
    if _INTEGER.fullmatch(raw):
        return int(raw)

    raw = _EXCESS_FRACTION.sub(r"\1", raw)
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return default
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def _has_alerts(payload: dict[str, Any]) -> bool:
    alerts = payload.get("alerts")
    return isinstance(alerts, list) and len(alerts) > 0 and isinstance(alerts[0], dict)


def silence_url(external_url: str, labels: dict[str, Any]) -> str:
    """Build a Grafana "new silence" deep link matching every label."""
    matchers = "&".join(
        "matcher="
        + quote(str(key), safe=_URI_COMPONENT_SAFE)
        + "%3D"
        + quote(str(value), safe=_URI_COMPONENT_SAFE)
        for key, value in labels.items()
    )
    return f"{external_url.rstrip('/')}/alerting/silence/new?alertmanager=grafana&{matchers}"


# ── Structural predicates ───────────────────────────────────────


def _is_grafana(payload: dict[str, Any]) -> bool:
    return _has_alerts(payload) and bool(payload.get("receiver"))


def _is_prometheus(payload: dict[str, Any]) -> bool:
    return _has_alerts(payload) and bool(payload.get("groupKey"))


def _is_zabbix(payload: dict[str, Any]) -> bool:
    return isinstance(payload.get("trigger"), dict) and (
        isinstance(payload.get("event"), dict) or isinstance(payload.get("problem"), dict)
    )


def _is_generic(payload: dict[str, Any]) -> bool:
    return bool(payload.get("message")) and any(
        payload.get(key) for key in ("status", "level", "priority")
    )


# ── Transforms ──────────────────────────────────────────────────


def _canonical(payload: dict[str, Any], now_ms: int) -> AlertInput:
    timestamp = payload.get("timestamp")
    return AlertInput(
        title=payload["title"].strip(),
        source=payload["source"].strip(),
        severity=Severity(payload["severity"].strip().lower()),
        message=payload["message"].strip(),
        timestamp=parse_timestamp_ms(timestamp, now_ms) if timestamp else None,
    )


def _grafana(payload: dict[str, Any], now_ms: int) -> AlertInput:
    first = payload["alerts"][0]
    labels = _obj(first.get("labels"))
    annotations = _obj(first.get("annotations"))
    common_annotations = _obj(payload.get("commonAnnotations"))
    external_url = payload.get("externalURL")

    urls: dict[str, str] = {}
    if external_url:
        urls["source"] = str(external_url)
        if labels:
            urls["silence"] = silence_url(str(external_url), labels)
    if first.get("dashboardURL"):
        urls["dashboard"] = str(first["dashboardURL"])
    if first.get("panelURL"):
        urls["panel"] = str(first["panelURL"])

    alertname = labels.get("alertname")
    title = _first(annotations.get("summary"), common_annotations.get("summary"), alertname)
    source = _first(labels.get("instance"), labels.get("job"), payload.get("receiver"))
    message = _first(annotations.get("description"), annotations.get("summary"))

    return AlertInput(
        title=_text(title or "Grafana Alert", TITLE_MAX_LENGTH),
        source=_text(source or "Grafana"),
        severity=map_severity(labels.get("severity"), payload.get("status"), SourceKind.GRAFANA),
        message=_text(message or f"Alert: {alertname or 'unknown'}", MESSAGE_MAX_LENGTH),
        timestamp=parse_timestamp_ms(first.get("startsAt"), now_ms),
        metadata=AlertMetadata(
            status=_text(payload.get("status") or "firing"),
            labels=labels,
            annotations=annotations,
            values=_obj(first.get("values")),
            urls=urls,
        ),
    )


def _prometheus(payload: dict[str, Any], now_ms: int) -> AlertInput:
    first = payload["alerts"][0]
    labels = _obj(first.get("labels"))
    annotations = _obj(first.get("annotations"))
    status = payload.get("status") or first.get("status")

    urls: dict[str, str] = {}
    if payload.get("externalURL"):
        urls["source"] = str(payload["externalURL"])
    if first.get("generatorURL"):
        urls["generator"] = str(first["generatorURL"])

    title = _first(annotations.get("summary"), labels.get("alertname"))
    source = _first(labels.get("instance"), labels.get("job"))
    message = _first(annotations.get("description"), annotations.get("summary"))

    return AlertInput(
        title=_text(title or "Prometheus Alert", TITLE_MAX_LENGTH),
        source=_text(source or "Prometheus"),
        severity=map_severity(
            labels.get("severity"), payload.get("status"), SourceKind.PROMETHEUS
        ),
        message=_text(message or "Prometheus alert triggered", MESSAGE_MAX_LENGTH),
        timestamp=parse_timestamp_ms(first.get("startsAt"), now_ms),
        metadata=AlertMetadata(
            status=_text(status or "firing"),
            labels=labels,
            annotations=annotations,
            values=_obj(first.get("values")),
            urls=urls,
        ),
    )


def _zabbix(payload: dict[str, Any], now_ms: int) -> AlertInput:
    trigger = _obj(payload.get("trigger"))
    event = _obj(payload.get("event")) or _obj(payload.get("problem"))
    host = _obj(payload.get("host"))

    labels = {
        key: value
        for key, value in (
            ("trigger", trigger.get("name")),
            ("host", host.get("name")),
            ("priority", trigger.get("priority")),
        )
        if value is not None
    }
    annotations: dict[str, Any] = {}
    if trigger.get("description") is not None:
        annotations["description"] = trigger["description"]

    urls: dict[str, str] = {}
    if trigger.get("url"):
        urls["source"] = str(trigger["url"])

    timestamp = now_ms
    clock = event.get("clock")
    if clock:
        try:
            timestamp = int(float(clock)) * 1000
        except (TypeError, ValueError):
            timestamp = now_ms

    title = _first(trigger.get("name"), event.get("name"))
    source = _first(host.get("name"), trigger.get("host"))
    message = _first(trigger.get("description"), event.get("description"))

    return AlertInput(
        title=_text(title or "Zabbix Alert", TITLE_MAX_LENGTH),
        source=_text(source or "Zabbix"),
        severity=map_severity(trigger.get("priority"), event.get("value"), SourceKind.ZABBIX),
        message=_text(message or "Zabbix trigger activated", MESSAGE_MAX_LENGTH),
        timestamp=timestamp,
        metadata=AlertMetadata(
            status="Problem" if str(event.get("value")) == "1" else "OK",
            labels=labels,
            annotations=annotations,
            urls=urls,
        ),
    )


def _generic(payload: dict[str, Any], now_ms: int) -> AlertInput:
    labels = {k: v for k, v in payload.items() if k not in GENERIC_RESERVED_KEYS}
    status = _first(payload.get("status"), payload.get("level"))

    title = _first(payload.get("title"), payload.get("subject"), payload.get("alert"))
    source = _first(payload.get("source"), payload.get("service"), payload.get("host"))
    raw_severity = _first(payload.get("severity"), payload.get("level"), payload.get("priority"))

    return AlertInput(
        title=_text(title or "Generic Alert", TITLE_MAX_LENGTH),
        source=_text(source or "Webhook"),
        severity=map_severity(raw_severity, payload.get("status"), SourceKind.GENERIC),
        message=_text(payload["message"], MESSAGE_MAX_LENGTH),
        timestamp=parse_timestamp_ms(payload.get("timestamp"), now_ms),
        metadata=AlertMetadata(
            status=_text(status or "active"),
            labels=labels,
        ),
    )


Detector = tuple[
    SourceKind,
    Callable[[dict[str, Any]], bool],
    Callable[[dict[str, Any], int], AlertInput],
]

_DETECTORS: list[Detector] = [
    (SourceKind.CANONICAL, is_canonical, _canonical),
    (SourceKind.GRAFANA, _is_grafana, _grafana),
    (SourceKind.PROMETHEUS, _is_prometheus, _prometheus),
    (SourceKind.ZABBIX, _is_zabbix, _zabbix),
    (SourceKind.GENERIC, _is_generic, _generic),
]


# ── Public API ──────────────────────────────────────────────────


def detect_format(payload: dict[str, Any]) -> SourceKind | None:
    """Return the first source kind whose structural predicate matches."""
    for kind, predicate, _ in _DETECTORS:
        if predicate(payload):
            return kind
    return None


def normalize(payload: dict[str, Any], now_ms: int | None = None) -> NormalizeResult:
    """Classify *payload* and map it onto an AlertInput.

    Canonical payloads come back with ``kind=CANONICAL`` and only trimming /
    severity lower-casing applied.  Unrecognised payloads come back with
    ``kind=None`` and no alert.
    """
    now = _now_ms() if now_ms is None else now_ms
    for kind, predicate, transform in _DETECTORS:
        if predicate(payload):
            logger.debug("webhook_format_detected", kind=kind.value)
            return NormalizeResult(kind=kind, alert=transform(payload, now))
    return NormalizeResult()


def build_alert_input(
    payload: Any,
    now_ms: int | None = None,
) -> tuple[AlertInput, SourceKind]:
    """Ingestion entry point: normalise *payload* or reject it.

    Raises:
        ValidationError: payload is not an object, or no format matches and
            canonical validation fails.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Payload must be a JSON object")

    now = _now_ms() if now_ms is None else now_ms
    result = normalize(payload, now)
    if result.kind is None or result.alert is None:
        raise ValidationError(canonical_error(payload) or "Unrecognized payload format")

    alert = result.alert
    if alert.timestamp is None:
        alert = alert.model_copy(update={"timestamp": now})
    return alert, result.kind
