"""Exception hierarchy for webhook ingestion."""

from __future__ import annotations


class IngestError(Exception):
    """Base exception for all ingestion errors."""


class ValidationError(IngestError):
    """Payload is not a recognised format and fails canonical validation."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
