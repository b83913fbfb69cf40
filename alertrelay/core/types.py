"""Domain types for alerts, actors and aggregate statistics."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

TITLE_MAX_LENGTH = 200
MESSAGE_MAX_LENGTH = 2000


class Severity(StrEnum):
    """Canonical alert severity."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class SourceKind(StrEnum):
    """Payload shape a webhook was recognised as."""

    CANONICAL = "canonical"
    GRAFANA = "grafana"
    PROMETHEUS = "prometheus"
    ZABBIX = "zabbix"
    GENERIC = "generic"


class Action(StrEnum):
    """Lifecycle transition requested by an actor."""

    ACKNOWLEDGE = "acknowledge"
    RESOLVE = "resolve"


class AlertMetadata(BaseModel):
    """Source-specific context kept alongside an alert (formatting use only)."""

    model_config = ConfigDict(extra="allow")

    status: str | None = None
    labels: dict[str, Any] = Field(default_factory=dict)
    annotations: dict[str, Any] = Field(default_factory=dict)
    values: dict[str, Any] = Field(default_factory=dict)
    urls: dict[str, str] = Field(default_factory=dict)


class AlertInput(BaseModel):
    """Canonical alert record produced by ingestion, before persistence."""

    title: str
    source: str
    severity: Severity
    message: str
    timestamp: int | None = None
    metadata: AlertMetadata | None = None


class Alert(BaseModel):
    """A persisted alert with delivery and lifecycle state."""

    id: int
    title: str
    source: str
    severity: Severity
    message: str
    timestamp: int
    created_at: int
    metadata: AlertMetadata | None = None

    notification_message_id: int | None = None
    notification_channel_id: int | None = None

    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_by_id: int | None = None
    acknowledged_by_name: str | None = None
    acknowledged_at: int | None = None

    resolved: bool = False
    resolved_by: str | None = None
    resolved_by_id: int | None = None
    resolved_by_name: str | None = None
    resolved_at: int | None = None

    @property
    def acknowledger_display(self) -> str:
        return _attribution(self.acknowledged_by_name, self.acknowledged_by)

    @property
    def resolver_display(self) -> str:
        return _attribution(self.resolved_by_name, self.resolved_by)


class Actor(BaseModel):
    """The chat user performing a lifecycle transition."""

    id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @property
    def full_name(self) -> str | None:
        parts = [p.strip() for p in (self.first_name, self.last_name) if p and p.strip()]
        return " ".join(parts) if parts else None

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        if self.username:
            return f"@{self.username}"
        return f"User {self.id}"


class WeeklySummary(BaseModel):
    """Alert counts over the trailing seven days."""

    total: int = 0
    acknowledged: int = 0
    resolved: int = 0
    unacknowledged: int = 0
    critical: int = 0
    warning: int = 0
    info: int = 0


class ContributorStat(BaseModel):
    """One row of the top acknowledgers / resolvers ranking."""

    actor_id: int | None = None
    handle: str | None = None
    name: str | None = None
    count: int = 0
    resolved_count: int = 0

    @property
    def display_name(self) -> str:
        return self.name or (f"@{self.handle}" if self.handle else "Unknown")


def _attribution(name: str | None, handle: str | None) -> str:
    if name and name.strip():
        return name.strip()
    if handle and handle.strip():
        return f"@{handle.strip()}"
    return "Unknown user"
