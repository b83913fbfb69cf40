"""Domain types for the chat notification surface."""

from __future__ import annotations

from pydantic import BaseModel


class MessageHandle(BaseModel):
    """Where a notification landed, so it can be edited later."""

    chat_id: int
    message_id: int


class Control(BaseModel):
    """One interactive button attached to a notification."""

    label: str
    token: str
