"""Lifecycle module — acknowledge / resolve state machine."""

from alertrelay.lifecycle.controller import LifecycleController
from alertrelay.lifecycle.types import OutcomeStatus, TransitionOutcome
from alertrelay.monitor.formatters import callback_token, parse_callback_token

__all__ = [
    "LifecycleController",
    "OutcomeStatus",
    "TransitionOutcome",
    "callback_token",
    "parse_callback_token",
]
