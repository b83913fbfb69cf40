"""AlertRepository — the single owner of persisted alert rows.

Lifecycle transitions are expressed as one conditional ``UPDATE`` each
(``WHERE id = ? AND <current state>``) and success is read from the
affected row count.  Two actors tapping the same button concurrently both
reach the database, exactly one statement matches, and the other sees a
row count of zero.  Never split a transition into a read followed by a
write.

Usage::

    repo = AlertRepository.from_config(settings.database)
    await repo.open()
    alert = await repo.create(alert_input)
    ok = await repo.acknowledge(alert.id, actor)
    await repo.close()
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import case, event, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql import ColumnElement, Update

from alertrelay.core.config import DatabaseConfig
from alertrelay.core.types import (
    Actor,
    Alert,
    AlertInput,
    AlertMetadata,
    ContributorStat,
    WeeklySummary,
)
from alertrelay.storage.exceptions import StorageError
from alertrelay.storage.schema import alerts, metadata

logger = structlog.get_logger(__name__)

WEEK_SECS = 7 * 24 * 60 * 60


def _count_where(condition: ColumnElement[bool]) -> ColumnElement[int]:
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


class AlertRepository:
    """Async SQLite-backed alert store with an explicit open/ready/close lifecycle."""

    def __init__(
        self,
        url: str,
        busy_timeout_ms: int = 10000,
        clock: Callable[[], float] = time.time,
        db_path: str | Path | None = None,
    ) -> None:
        self._url = url
        self._db_path = Path(db_path) if db_path else None
        self._busy_timeout_ms = busy_timeout_ms
        self._clock = clock
        self._engine: AsyncEngine | None = None
        self._ready = asyncio.Event()
        self._closed = False

    @classmethod
    def from_config(
        cls,
        config: DatabaseConfig,
        clock: Callable[[], float] = time.time,
    ) -> AlertRepository:
        return cls(
            f"sqlite+aiosqlite:///{config.path}",
            busy_timeout_ms=config.busy_timeout_ms,
            clock=clock,
            db_path=config.path,
        )

    # ── Lifecycle ───────────────────────────────────────────────

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    async def open(self) -> None:
        """Create the engine and schema, then signal readiness once."""
        if self._ready.is_set():
            return
        if self._db_path is not None and str(self._db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        engine = create_async_engine(self._url)
        event.listen(engine.sync_engine, "connect", self._configure_connection)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except SQLAlchemyError as exc:
            await engine.dispose()
            raise StorageError(f"failed to initialise alert store: {exc}") from exc

        self._engine = engine
        self._closed = False
        self._ready.set()
        logger.info("alert_store_ready", url=self._url)

    async def wait_ready(self) -> None:
        """Block until ``open()`` has completed."""
        await self._ready.wait()

    async def close(self) -> None:
        self._closed = True
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info("alert_store_closed")

    def _configure_connection(self, dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
            cursor.execute("PRAGMA journal_mode = WAL")
        except Exception:
            logger.warning("sqlite_pragma_failed", exc_info=True)
        finally:
            cursor.close()

    async def _get_engine(self) -> AsyncEngine:
        if self._closed:
            raise StorageError("alert store is closed")
        await self.wait_ready()
        assert self._engine is not None
        return self._engine

    def _now(self) -> int:
        return int(self._clock())

    # ── Writes ──────────────────────────────────────────────────

    async def create(self, alert_input: AlertInput) -> Alert:
        """Insert a new alert and return it with its assigned id."""
        engine = await self._get_engine()
        created_at = self._now()
        timestamp = (
            alert_input.timestamp
            if alert_input.timestamp is not None
            else int(self._clock() * 1000)
        )
        metadata_json = (
            json.dumps(alert_input.metadata.model_dump(mode="json"))
            if alert_input.metadata is not None
            else None
        )

        stmt = insert(alerts).values(
            title=alert_input.title,
            source=alert_input.source,
            severity=alert_input.severity.value,
            message=alert_input.message,
            timestamp=timestamp,
            created_at=created_at,
            metadata=metadata_json,
        )
        try:
            async with engine.begin() as conn:
                result = await conn.execute(stmt)
                alert_id = result.inserted_primary_key[0]
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to create alert: {exc}") from exc

        return Alert(
            id=alert_id,
            title=alert_input.title,
            source=alert_input.source,
            severity=alert_input.severity,
            message=alert_input.message,
            timestamp=timestamp,
            created_at=created_at,
            metadata=alert_input.metadata,
        )

    async def record_delivery(
        self,
        alert_id: int,
        message_id: int,
        channel_id: int,
    ) -> int:
        """Store where the alert was delivered. Best-effort: never raises."""
        stmt = (
            update(alerts)
            .where(alerts.c.id == alert_id)
            .values(notification_message_id=message_id, notification_channel_id=channel_id)
        )
        try:
            engine = await self._get_engine()
            async with engine.begin() as conn:
                result = await conn.execute(stmt)
                return result.rowcount
        except (SQLAlchemyError, StorageError):
            logger.exception("record_delivery_failed", alert_id=alert_id)
            return 0

    async def acknowledge(self, alert_id: int, actor: Actor) -> bool:
        """Acknowledge if not yet acknowledged. Returns False when nothing changed."""
        stmt = (
            update(alerts)
            .where(alerts.c.id == alert_id, alerts.c.acknowledged.is_(False))
            .values(
                acknowledged=True,
                acknowledged_by=actor.username,
                acknowledged_by_id=actor.id,
                acknowledged_by_name=actor.full_name,
                acknowledged_at=self._now(),
            )
        )
        return await self._transition(stmt, "acknowledge", alert_id)

    async def resolve(self, alert_id: int, actor: Actor) -> bool:
        """Resolve if acknowledged and not yet resolved, in one statement."""
        stmt = (
            update(alerts)
            .where(
                alerts.c.id == alert_id,
                alerts.c.acknowledged.is_(True),
                alerts.c.resolved.is_(False),
            )
            .values(
                resolved=True,
                resolved_by=actor.username,
                resolved_by_id=actor.id,
                resolved_by_name=actor.full_name,
                resolved_at=self._now(),
            )
        )
        return await self._transition(stmt, "resolve", alert_id)

    async def _transition(self, stmt: Update, action: str, alert_id: int) -> bool:
        engine = await self._get_engine()
        try:
            async with engine.begin() as conn:
                result = await conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to {action} alert {alert_id}: {exc}") from exc
        return result.rowcount > 0

    # ── Reads ───────────────────────────────────────────────────

    async def get(self, alert_id: int) -> Alert | None:
        rows = await self._fetch(select(alerts).where(alerts.c.id == alert_id))
        return _row_to_alert(rows[0]) if rows else None

    async def unacknowledged_count(self) -> int:
        stmt = (
            select(func.count().label("count"))
            .select_from(alerts)
            .where(alerts.c.acknowledged.is_(False))
        )
        rows = await self._fetch(stmt)
        return int(rows[0]["count"])

    async def weekly_summary(self) -> WeeklySummary:
        """Counts for alerts created in the trailing seven days."""
        cutoff = self._now() - WEEK_SECS
        stmt = select(
            func.count().label("total"),
            _count_where(alerts.c.acknowledged.is_(True)).label("acknowledged"),
            _count_where(alerts.c.resolved.is_(True)).label("resolved"),
            _count_where(alerts.c.acknowledged.is_(False)).label("unacknowledged"),
            _count_where(alerts.c.severity == "critical").label("critical"),
            _count_where(alerts.c.severity == "warning").label("warning"),
            _count_where(alerts.c.severity == "info").label("info"),
        ).where(alerts.c.created_at >= cutoff)
        rows = await self._fetch(stmt)
        return WeeklySummary(**{k: int(v or 0) for k, v in rows[0].items()})

    async def top_acknowledgers(self, limit: int = 5) -> list[ContributorStat]:
        cutoff = self._now() - WEEK_SECS
        stmt = (
            select(
                alerts.c.acknowledged_by_id.label("actor_id"),
                func.max(alerts.c.acknowledged_by).label("handle"),
                func.max(alerts.c.acknowledged_by_name).label("name"),
                func.count().label("count"),
                _count_where(alerts.c.resolved.is_(True)).label("resolved_count"),
            )
            .where(
                alerts.c.acknowledged.is_(True),
                alerts.c.acknowledged_at >= cutoff,
                alerts.c.acknowledged_by_id.is_not(None),
            )
            .group_by(alerts.c.acknowledged_by_id)
            .order_by(func.count().desc(), func.min(alerts.c.id))
            .limit(limit)
        )
        return [ContributorStat(**row) for row in await self._fetch(stmt)]

    async def top_resolvers(self, limit: int = 5) -> list[ContributorStat]:
        cutoff = self._now() - WEEK_SECS
        stmt = (
            select(
                alerts.c.resolved_by_id.label("actor_id"),
                func.max(alerts.c.resolved_by).label("handle"),
                func.max(alerts.c.resolved_by_name).label("name"),
                func.count().label("count"),
                func.count().label("resolved_count"),
            )
            .where(
                alerts.c.resolved.is_(True),
                alerts.c.resolved_at >= cutoff,
                alerts.c.resolved_by_id.is_not(None),
            )
            .group_by(alerts.c.resolved_by_id)
            .order_by(func.count().desc(), func.min(alerts.c.id))
            .limit(limit)
        )
        return [ContributorStat(**row) for row in await self._fetch(stmt)]

    async def _fetch(self, stmt: Any) -> list[dict[str, Any]]:
        engine = await self._get_engine()
        try:
            async with engine.connect() as conn:
                result = await conn.execute(stmt)
                return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as exc:
            raise StorageError(f"alert store query failed: {exc}") from exc


def _load_metadata(raw: str | None, alert_id: int) -> AlertMetadata | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
        if not isinstance(parsed, dict):
            raise ValueError("metadata is not an object")
        return AlertMetadata.model_validate(parsed)
    except ValueError as exc:
        logger.warning("alert_metadata_corrupt", alert_id=alert_id, error=str(exc))
        return None


def _row_to_alert(row: dict[str, Any]) -> Alert:
    data = dict(row)
    raw_metadata = data.pop("metadata", None)
    return Alert(**data, metadata=_load_metadata(raw_metadata, data["id"]))
