"""Outcome types for lifecycle transitions."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from alertrelay.core.types import Action, Alert
from alertrelay.monitor.types import Control


class OutcomeStatus(StrEnum):
    APPLIED = "applied"
    ALREADY_DONE = "already_done"
    PRECONDITION = "precondition"
    NOT_FOUND = "not_found"


class TransitionOutcome(BaseModel):
    """Result of one acknowledge / resolve attempt.

    ``text`` and ``controls`` are only set when the transition was applied and
    the chat message should be redrawn.
    """

    status: OutcomeStatus
    action: Action
    alert_id: int
    alert: Alert | None = None
    by: str | None = None
    notice: str = ""
    text: str | None = None
    controls: list[Control] = Field(default_factory=list)

    @property
    def applied(self) -> bool:
        return self.status == OutcomeStatus.APPLIED
