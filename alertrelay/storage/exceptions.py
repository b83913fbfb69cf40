"""Exceptions raised by the alert store."""

from __future__ import annotations


class StorageError(Exception):
    """The underlying database failed to complete an operation."""
