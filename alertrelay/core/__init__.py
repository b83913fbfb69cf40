"""Core module — config, types, logging."""

from alertrelay.core.config import (
    Settings,
    get_settings,
    load_settings,
    reset_settings,
    validate_settings,
)
from alertrelay.core.logging import setup_logging
from alertrelay.core.types import (
    Action,
    Actor,
    Alert,
    AlertInput,
    AlertMetadata,
    ContributorStat,
    Severity,
    SourceKind,
    WeeklySummary,
)

__all__ = [
    "Action",
    "Actor",
    "Alert",
    "AlertInput",
    "AlertMetadata",
    "ContributorStat",
    "Settings",
    "Severity",
    "SourceKind",
    "WeeklySummary",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
    "validate_settings",
]
