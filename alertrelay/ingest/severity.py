"""Source-aware mapping of raw severity/status tokens onto canonical severities."""

from __future__ import annotations

from typing import Any

from alertrelay.core.types import Severity, SourceKind

# ── Severity mappings ───────────────────────────────────────────

_ALERTMANAGER_SEVERITY: dict[str, Severity] = {
    "firing": Severity.WARNING,
    "resolved": Severity.INFO,
    "pending": Severity.INFO,
}

_ZABBIX_SEVERITY: dict[str, Severity] = {
    "5": Severity.CRITICAL,
    "disaster": Severity.CRITICAL,
    "4": Severity.CRITICAL,
    "high": Severity.CRITICAL,
    "3": Severity.WARNING,
    "average": Severity.WARNING,
    "2": Severity.WARNING,
    "warning": Severity.WARNING,
    "1": Severity.INFO,
    "information": Severity.INFO,
    "0": Severity.INFO,
    "not_classified": Severity.INFO,
}

_GENERIC_SEVERITY: dict[str, Severity] = {
    **dict.fromkeys(
        ("error", "fatal", "emergency", "alert", "high", "urgent"), Severity.CRITICAL
    ),
    **dict.fromkeys(("warn", "warning", "medium", "moderate"), Severity.WARNING),
    **dict.fromkeys(
        ("info", "information", "notice", "low", "debug", "trace"), Severity.INFO
    ),
}

# Table and fallback per source kind; anything not listed uses the generic table.
_SOURCE_TABLES: dict[SourceKind, tuple[dict[str, Severity], Severity]] = {
    SourceKind.GRAFANA: (_ALERTMANAGER_SEVERITY, Severity.WARNING),
    SourceKind.PROMETHEUS: (_ALERTMANAGER_SEVERITY, Severity.WARNING),
    SourceKind.ZABBIX: (_ZABBIX_SEVERITY, Severity.WARNING),
}

_CANONICAL = {s.value: s for s in Severity}


def _present(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def map_severity(
    raw_severity: Any,
    raw_status: Any,
    source_kind: SourceKind | str | None = None,
) -> Severity:
    """Map a source-specific severity or status token to a canonical Severity.

    ``raw_severity`` wins over ``raw_status`` when both are present.  The
    function is total: unknown tokens resolve to the source's fallback.
    """
    if not _present(raw_severity) and not _present(raw_status):
        return Severity.INFO

    chosen = raw_severity if _present(raw_severity) else raw_status
    token = str(chosen).strip().lower()

    if token in _CANONICAL:
        return _CANONICAL[token]

    try:
        kind = SourceKind(source_kind) if source_kind is not None else None
    except ValueError:
        kind = None

    table, fallback = _SOURCE_TABLES.get(kind, (_GENERIC_SEVERITY, Severity.INFO))  # type: ignore[arg-type]
    return table.get(token, fallback)
