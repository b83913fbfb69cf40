"""Validation of payloads submitted in the canonical alert format."""

from __future__ import annotations

import math
import re
from typing import Any

from alertrelay.core.types import MESSAGE_MAX_LENGTH, TITLE_MAX_LENGTH, Severity
from alertrelay.ingest.exceptions import ValidationError

REQUIRED_FIELDS = ("title", "source", "severity", "message")

# Stored as a SQLite INTEGER, a signed 64-bit value.
TIMESTAMP_MIN_MS = -(2**63)
TIMESTAMP_MAX_MS = 2**63 - 1

_INTEGER = re.compile(r"-?[0-9]+")

SUPPORTED_FORMATS = [
    "Canonical format: {title, source, severity, message}",
    "Grafana webhook format (auto-detected)",
    "Prometheus Alertmanager format (auto-detected)",
    "Zabbix webhook format (auto-detected)",
    "Generic webhook format (auto-detected)",
]

EXAMPLE_PAYLOAD = {
    "title": "Database Connection Lost",
    "source": "payment-service",
    "severity": "critical",
    "message": "PostgreSQL connection timeout after 30s",
}


def canonical_error(payload: dict[str, Any]) -> str | None:
    """Return the first reason *payload* is not canonical, or None if it is."""
    for field in REQUIRED_FIELDS:
        value = payload.get(field)
        if not isinstance(value, str) or not value.strip():
            return f"Missing or invalid field: {field}"

    if payload["severity"].strip().lower() not in {s.value for s in Severity}:
        allowed = ", ".join(s.value for s in Severity)
        return f"Invalid severity. Must be one of: {allowed}"

    if len(payload["title"]) > TITLE_MAX_LENGTH:
        return f"Title too long (max {TITLE_MAX_LENGTH} characters)"

    if len(payload["message"]) > MESSAGE_MAX_LENGTH:
        return f"Message too long (max {MESSAGE_MAX_LENGTH} characters)"

    if not timestamp_in_range(payload.get("timestamp")):
        return "Invalid timestamp"

    return None


def is_canonical(payload: dict[str, Any]) -> bool:
    return canonical_error(payload) is None


def validate_canonical(payload: dict[str, Any]) -> None:
    """Raise ValidationError if *payload* does not satisfy the canonical format."""
    error = canonical_error(payload)
    if error is not None:
        raise ValidationError(error)


def timestamp_in_range(value: Any) -> bool:
    """False for numeric timestamps that are non-finite or do not fit in storage.

    Non-numeric values are not judged here; they fall back to the receive time.
    """
    if isinstance(value, bool):
        return True
    if isinstance(value, str):
        raw = value.strip()
        if not _INTEGER.fullmatch(raw):
            return True
        value = int(raw)
    if isinstance(value, float) and not math.isfinite(value):
        return False
    if isinstance(value, (int, float)):
        return TIMESTAMP_MIN_MS <= value <= TIMESTAMP_MAX_MS
    return True
