"""Table definition for the alert store."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    text,
)

metadata = MetaData()

alerts = Table(
    "alerts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", Text, nullable=False),
    Column("source", Text, nullable=False),
    Column("severity", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("timestamp", Integer, nullable=False),
    Column(
        "created_at",
        Integer,
        nullable=False,
        server_default=text("(CAST(strftime('%s', 'now') AS INTEGER))"),
    ),
    Column("metadata", Text, nullable=True),
    Column("notification_message_id", Integer, nullable=True),
    Column("notification_channel_id", Integer, nullable=True),
    Column("acknowledged", Boolean, nullable=False, server_default=text("0")),
    Column("acknowledged_by", Text, nullable=True),
    Column("acknowledged_by_id", Integer, nullable=True),
    Column("acknowledged_by_name", Text, nullable=True),
    Column("acknowledged_at", Integer, nullable=True),
    Column("resolved", Boolean, nullable=False, server_default=text("0")),
    Column("resolved_by", Text, nullable=True),
    Column("resolved_by_id", Integer, nullable=True),
    Column("resolved_by_name", Text, nullable=True),
    Column("resolved_at", Integer, nullable=True),
    CheckConstraint(
        "severity IN ('critical', 'warning', 'info')",
        name="ck_alerts_severity",
    ),
    # AUTOINCREMENT so ids are never reused after a row disappears.
    sqlite_autoincrement=True,
)

Index("idx_alerts_acknowledged", alerts.c.acknowledged)
Index("idx_alerts_created_at", alerts.c.created_at)
Index("idx_alerts_resolved", alerts.c.resolved)
Index("idx_alerts_severity", alerts.c.severity)
