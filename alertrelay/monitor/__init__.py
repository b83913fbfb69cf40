"""Chat notification subsystem: formatting, delivery and the update poller."""

from alertrelay.monitor.channels import Notifier, TelegramNotifier
from alertrelay.monitor.dispatcher import AlertDispatcher
from alertrelay.monitor.exceptions import DeliveryError, MonitorError
from alertrelay.monitor.formatters import (
    format_acknowledged_message,
    format_alert_message,
    format_resolved_message,
    format_weekly_report,
)
from alertrelay.monitor.types import Control, MessageHandle

__all__ = [
    "AlertDispatcher",
    "Control",
    "DeliveryError",
    "MessageHandle",
    "MonitorError",
    "Notifier",
    "TelegramNotifier",
    "format_acknowledged_message",
    "format_alert_message",
    "format_resolved_message",
    "format_weekly_report",
]
