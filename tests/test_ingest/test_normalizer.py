"""Tests for format detection and per-source normalisation."""

from __future__ import annotations

import pytest

from alertrelay.core.types import Severity, SourceKind
from alertrelay.ingest.exceptions import ValidationError
from alertrelay.ingest.normalizer import (
    build_alert_input,
    detect_format,
    normalize,
    parse_timestamp_ms,
    silence_url,
)

NOW_MS = 1_700_000_000_000


# ── Helpers ─────────────────────────────────────────────────────


def _grafana(**kw: object) -> dict[str, object]:
    defaults: dict[str, object] = {
        "receiver": "ops-telegram",
        "status": "firing",
        "externalURL": "https://grafana.example.com/",
        "alerts": [
            {
                "status": "firing",
                "labels": {"alertname": "HighCPU", "instance": "web-1", "severity": "critical"},
                "annotations": {"summary": "CPU above 90%", "description": "CPU 97% for 5m"},
                "values": {"B": 97.2},
                "startsAt": "2024-01-15T10:30:00.123456789Z",
                "dashboardURL": "https://grafana.example.com/d/abc",
            }
        ],
    }
    defaults.update(kw)
    return defaults


def _prometheus(**kw: object) -> dict[str, object]:
    defaults: dict[str, object] = {
        "groupKey": "{}:{alertname=\"NodeDown\"}",
        "status": "firing",
        "externalURL": "http://alertmanager:9093",
        "alerts": [
            {
                "labels": {"alertname": "NodeDown", "job": "node"},
                "annotations": {"description": "node exporter unreachable"},
                "startsAt": "2024-01-15T10:30:00Z",
                "generatorURL": "http://prometheus:9090/graph",
            }
        ],
    }
    defaults.update(kw)
    return defaults


def _zabbix(**kw: object) -> dict[str, object]:
    defaults: dict[str, object] = {
        "trigger": {
            "name": "Disk space low",
            "priority": "4",
            "description": "Free space below 5%",
            "url": "https://zabbix.example.com/tr/1",
        },
        "event": {"value": "1", "clock": 1705314600},
        "host": {"name": "db-01"},
    }
    defaults.update(kw)
    return defaults


# ── Detection ───────────────────────────────────────────────────


class TestDetectFormat:
    def test_canonical(self) -> None:
        payload = {"title": "t", "source": "s", "severity": "info", "message": "m"}
        assert detect_format(payload) == SourceKind.CANONICAL

    def test_grafana_before_generic(self) -> None:
        # Grafana bodies also carry message/status-like keys.
        assert detect_format(_grafana(message="x")) == SourceKind.GRAFANA

    def test_prometheus(self) -> None:
        assert detect_format(_prometheus()) == SourceKind.PROMETHEUS

    def test_zabbix_with_problem(self) -> None:
        payload = _zabbix()
        payload["problem"] = payload.pop("event")
        assert detect_format(payload) == SourceKind.ZABBIX

    def test_generic(self) -> None:
        assert detect_format({"message": "boom", "level": "error"}) == SourceKind.GENERIC

    def test_unrecognized(self) -> None:
        assert detect_format({"foo": "bar"}) is None
        assert detect_format({"alerts": [], "receiver": "x"}) is None

    def test_oversize_canonical_title_falls_through(self) -> None:
        payload = {
            "title": "x" * 201,
            "source": "s",
            "severity": "info",
            "message": "m",
            "status": "open",
        }
        assert detect_format(payload) == SourceKind.GENERIC


# ── Canonical ───────────────────────────────────────────────────


class TestCanonical:
    def test_trimmed_and_lowered(self) -> None:
        result = normalize(
            {"title": " T ", "source": " s ", "severity": "WARNING", "message": " m "},
            now_ms=NOW_MS,
        )
        assert result.kind == SourceKind.CANONICAL
        assert not result.transformed
        assert result.alert is not None
        assert result.alert.title == "T"
        assert result.alert.source == "s"
        assert result.alert.severity == Severity.WARNING
        assert result.alert.message == "m"
        assert result.alert.metadata is None

    def test_timestamp_defaults_to_now(self) -> None:
        alert, kind = build_alert_input(
            {"title": "t", "source": "s", "severity": "info", "message": "m"},
            now_ms=NOW_MS,
        )
        assert kind == SourceKind.CANONICAL
        assert alert.timestamp == NOW_MS

    def test_explicit_timestamp_kept(self) -> None:
        alert, _ = build_alert_input(
            {"title": "t", "source": "s", "severity": "info", "message": "m", "timestamp": 123},
            now_ms=NOW_MS,
        )
        assert alert.timestamp == 123


# ── Grafana ─────────────────────────────────────────────────────


class TestGrafana:
    def test_fields(self) -> None:
        alert, kind = build_alert_input(_grafana(), now_ms=NOW_MS)
        assert kind == SourceKind.GRAFANA
        assert alert.title == "CPU above 90%"
        assert alert.source == "web-1"
        assert alert.severity == Severity.CRITICAL
        assert alert.message == "CPU 97% for 5m"
        assert alert.timestamp == 1705314600123

    def test_metadata_and_urls(self) -> None:
        alert, _ = build_alert_input(_grafana(), now_ms=NOW_MS)
        meta = alert.metadata
        assert meta is not None
        assert meta.status == "firing"
        assert meta.values == {"B": 97.2}
        assert meta.urls["source"] == "https://grafana.example.com/"
        assert meta.urls["dashboard"] == "https://grafana.example.com/d/abc"
        assert meta.urls["silence"].startswith(
            "https://grafana.example.com/alerting/silence/new?alertmanager=grafana&"
        )
        assert "matcher=alertname%3DHighCPU" in meta.urls["silence"]

    def test_minimal_payload_never_raises(self) -> None:
        alert, _ = build_alert_input({"receiver": "r", "alerts": [{}]}, now_ms=NOW_MS)
        assert alert.title == "Grafana Alert"
        assert alert.source == "r"
        assert alert.message == "Alert: unknown"
        assert alert.severity == Severity.INFO
        assert alert.timestamp == NOW_MS

    def test_status_only_maps_firing_to_warning(self) -> None:
        payload = _grafana()
        payload["alerts"][0]["labels"].pop("severity")  # type: ignore[index]
        alert, _ = build_alert_input(payload, now_ms=NOW_MS)
        assert alert.severity == Severity.WARNING

    def test_long_summary_truncated(self) -> None:
        payload = _grafana()
        payload["alerts"][0]["annotations"]["summary"] = "s" * 500  # type: ignore[index]
        alert, _ = build_alert_input(payload, now_ms=NOW_MS)
        assert len(alert.title) == 200


# ── Prometheus ──────────────────────────────────────────────────


class TestPrometheus:
    def test_fields(self) -> None:
        alert, kind = build_alert_input(_prometheus(), now_ms=NOW_MS)
        assert kind == SourceKind.PROMETHEUS
        assert alert.title == "NodeDown"
        assert alert.source == "node"
        assert alert.severity == Severity.WARNING
        assert alert.message == "node exporter unreachable"
        assert alert.timestamp == 1705314600000
        assert alert.metadata is not None
        assert alert.metadata.urls == {
            "source": "http://alertmanager:9093",
            "generator": "http://prometheus:9090/graph",
        }

    def test_defaults(self) -> None:
        alert, _ = build_alert_input({"groupKey": "g", "alerts": [{}]}, now_ms=NOW_MS)
        assert alert.title == "Prometheus Alert"
        assert alert.source == "Prometheus"
        assert alert.message == "Prometheus alert triggered"

    def test_alert_status_only_feeds_metadata(self) -> None:
        payload = _prometheus(status=None)
        payload["alerts"][0]["status"] = "firing"  # type: ignore[index]
        alert, _ = build_alert_input(payload, now_ms=NOW_MS)
        assert alert.severity == Severity.INFO
        assert alert.metadata is not None
        assert alert.metadata.status == "firing"


# ── Zabbix ──────────────────────────────────────────────────────


class TestZabbix:
    def test_fields(self) -> None:
        alert, kind = build_alert_input(_zabbix(), now_ms=NOW_MS)
        assert kind == SourceKind.ZABBIX
        assert alert.title == "Disk space low"
        assert alert.source == "db-01"
        assert alert.severity == Severity.CRITICAL
        assert alert.timestamp == 1705314600000
        assert alert.metadata is not None
        assert alert.metadata.status == "Problem"
        assert alert.metadata.labels == {
            "trigger": "Disk space low",
            "host": "db-01",
            "priority": "4",
        }
        assert alert.metadata.urls == {"source": "https://zabbix.example.com/tr/1"}

    def test_recovery_event(self) -> None:
        alert, _ = build_alert_input(_zabbix(event={"value": "0"}), now_ms=NOW_MS)
        assert alert.metadata is not None
        assert alert.metadata.status == "OK"
        assert alert.timestamp == NOW_MS


# ── Generic ─────────────────────────────────────────────────────


class TestGeneric:
    def test_fields_and_labels(self) -> None:
        payload = {
            "message": "queue backlog",
            "level": "warn",
            "service": "billing",
            "subject": "Backlog",
            "region": "eu-west",
        }
        alert, kind = build_alert_input(payload, now_ms=NOW_MS)
        assert kind == SourceKind.GENERIC
        assert alert.title == "Backlog"
        assert alert.source == "billing"
        assert alert.severity == Severity.WARNING
        assert alert.metadata is not None
        assert alert.metadata.status == "warn"
        assert alert.metadata.labels == {
            "service": "billing",
            "subject": "Backlog",
            "region": "eu-west",
        }

    def test_defaults(self) -> None:
        alert, _ = build_alert_input({"message": "m", "priority": "p"}, now_ms=NOW_MS)
        assert alert.title == "Generic Alert"
        assert alert.source == "Webhook"
        assert alert.metadata is not None
        assert alert.metadata.status == "active"


# ── Rejection ───────────────────────────────────────────────────


class TestBuildAlertInputErrors:
    def test_non_object(self) -> None:
        with pytest.raises(ValidationError, match="JSON object"):
            build_alert_input(["not", "a", "dict"])

    def test_canonical_reason_reported(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            build_alert_input({"title": "t", "source": "s", "message": "m"})
        assert exc_info.value.reason == "Missing or invalid field: severity"

    def test_oversize_title_rejected_when_nothing_else_matches(self) -> None:
        payload = {"title": "x" * 201, "source": "s", "severity": "info", "message": "m"}
        with pytest.raises(ValidationError) as exc_info:
            build_alert_input(payload)
        assert exc_info.value.reason == "Title too long (max 200 characters)"

    def test_unstorable_canonical_timestamp_rejected(self) -> None:
        payload = {"title": "t", "source": "s", "severity": "info", "message": "m", "timestamp": 10**20}
        with pytest.raises(ValidationError) as exc_info:
            build_alert_input(payload)
        assert exc_info.value.reason == "Invalid timestamp"

    def test_unstorable_transformed_timestamp_uses_now(self) -> None:
        payload = {"message": "disk full", "status": "firing", "timestamp": float("inf")}
        alert, kind = build_alert_input(payload, now_ms=NOW_MS)
        assert kind == SourceKind.GENERIC
        assert alert.timestamp == NOW_MS


# ── Helpers ─────────────────────────────────────────────────────


class TestParseTimestamp:
    def test_number_and_digit_string(self) -> None:
        assert parse_timestamp_ms(1234, 0) == 1234
        assert parse_timestamp_ms("1234", 0) == 1234

    def test_iso_without_zone_is_utc(self) -> None:
        assert parse_timestamp_ms("2024-01-15T10:30:00", 0) == 1705314600000

    def test_garbage_uses_default(self) -> None:
        assert parse_timestamp_ms("soon", 7) == 7
        assert parse_timestamp_ms(None, 7) == 7
        assert parse_timestamp_ms("--5", 7) == 7

    def test_unstorable_numbers_use_default(self) -> None:
        assert parse_timestamp_ms(10**20, 7) == 7
        assert parse_timestamp_ms(float("nan"), 7) == 7
        assert parse_timestamp_ms(float("-inf"), 7) == 7
        assert parse_timestamp_ms("99999999999999999999", 7) == 7


class TestSilenceUrl:
    def test_encodes_labels(self) -> None:
        url = silence_url("https://g.example/", {"alert name": "a/b"})
        assert url == (
            "https://g.example/alerting/silence/new?alertmanager=grafana"
            "&matcher=alert%20name%3Da%2Fb"
        )
