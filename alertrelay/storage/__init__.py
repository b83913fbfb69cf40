"""Storage module — SQLite alert repository."""

from alertrelay.storage.exceptions import StorageError
from alertrelay.storage.repository import AlertRepository

__all__ = [
    "AlertRepository",
    "StorageError",
]
