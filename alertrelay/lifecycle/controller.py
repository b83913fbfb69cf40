"""LifecycleController — decides and applies acknowledge / resolve requests.

The controller never touches the network.  It checks the current state for
a friendly answer, lets the repository's conditional update decide the race,
and re-reads the alert afterwards so the redrawn message shows what was
actually stored.
"""

from __future__ import annotations

from datetime import timezone, tzinfo

import structlog

from alertrelay.core.types import Action, Actor, Alert
from alertrelay.lifecycle.types import OutcomeStatus, TransitionOutcome
from alertrelay.monitor.formatters import (
    format_acknowledged_message,
    format_resolved_message,
    resolve_controls,
)
from alertrelay.storage.repository import AlertRepository

logger = structlog.get_logger(__name__)

NOT_FOUND_NOTICE = "Alert not found"
NOT_ACKNOWLEDGED_NOTICE = "Alert must be acknowledged before resolving"


class LifecycleController:
    def __init__(self, repository: AlertRepository, tz: tzinfo = timezone.utc) -> None:
        self._repository = repository
        self._tz = tz

    async def handle(self, alert_id: int, action: Action, actor: Actor) -> TransitionOutcome:
        if action == Action.ACKNOWLEDGE:
            return await self.acknowledge(alert_id, actor)
        return await self.resolve(alert_id, actor)

    async def acknowledge(self, alert_id: int, actor: Actor) -> TransitionOutcome:
        action = Action.ACKNOWLEDGE
        alert = await self._repository.get(alert_id)
        if alert is None:
            return _not_found(action, alert_id)
        if alert.acknowledged:
            return _already_done(action, alert)

        logger.info("alert_acknowledging", alert_id=alert_id, actor=actor.display_name)
        if not await self._repository.acknowledge(alert_id, actor):
            current = await self._repository.get(alert_id)
            if current is None:
                return _not_found(action, alert_id)
            return _already_done(action, current)

        updated = await self._repository.get(alert_id)
        if updated is None:
            return _not_found(action, alert_id)
        logger.info("alert_acknowledged", alert_id=alert_id, actor=actor.display_name)
        return TransitionOutcome(
            status=OutcomeStatus.APPLIED,
            action=action,
            alert_id=alert_id,
            alert=updated,
            by=updated.acknowledger_display,
            notice="Alert acknowledged successfully",
            text=format_acknowledged_message(updated, self._tz),
            controls=resolve_controls(alert_id),
        )

    async def resolve(self, alert_id: int, actor: Actor) -> TransitionOutcome:
        action = Action.RESOLVE
        alert = await self._repository.get(alert_id)
        if alert is None:
            return _not_found(action, alert_id)
        refusal = self._resolve_refusal(alert)
        if refusal is not None:
            return refusal

        logger.info("alert_resolving", alert_id=alert_id, actor=actor.display_name)
        if not await self._repository.resolve(alert_id, actor):
            current = await self._repository.get(alert_id)
            if current is None:
                return _not_found(action, alert_id)
            # Lost a race: re-derive the reason from what is stored now.
            return self._resolve_refusal(current) or _already_done(action, current)

        updated = await self._repository.get(alert_id)
        if updated is None:
            return _not_found(action, alert_id)
        logger.info("alert_resolved", alert_id=alert_id, actor=actor.display_name)
        return TransitionOutcome(
            status=OutcomeStatus.APPLIED,
            action=action,
            alert_id=alert_id,
            alert=updated,
            by=updated.resolver_display,
            notice="Alert resolved successfully",
            text=format_resolved_message(updated, self._tz),
        )

    @staticmethod
    def _resolve_refusal(alert: Alert) -> TransitionOutcome | None:
        if not alert.acknowledged:
            return TransitionOutcome(
                status=OutcomeStatus.PRECONDITION,
                action=Action.RESOLVE,
                alert_id=alert.id,
                alert=alert,
                notice=NOT_ACKNOWLEDGED_NOTICE,
            )
        if alert.resolved:
            return _already_done(Action.RESOLVE, alert)
        return None


def _not_found(action: Action, alert_id: int) -> TransitionOutcome:
    return TransitionOutcome(
        status=OutcomeStatus.NOT_FOUND,
        action=action,
        alert_id=alert_id,
        notice=NOT_FOUND_NOTICE,
    )


def _already_done(action: Action, alert: Alert) -> TransitionOutcome:
    if action == Action.ACKNOWLEDGE:
        by = alert.acknowledger_display
        notice = f"Already acknowledged by {by}"
    else:
        by = alert.resolver_display
        notice = f"Already resolved by {by}"
    return TransitionOutcome(
        status=OutcomeStatus.ALREADY_DONE,
        action=action,
        alert_id=alert.id,
        alert=alert,
        by=by,
        notice=notice,
    )
