"""Monitor module exceptions."""

from __future__ import annotations


class MonitorError(Exception):
    """Base exception for the notification surface."""


class DeliveryError(MonitorError):
    """A chat API call failed; ``description`` carries the API's reason."""

    def __init__(self, method: str, description: str, status: int | None = None) -> None:
        self.method = method
        self.description = description
        self.status = status
        super().__init__(f"{method} failed: {description}")
