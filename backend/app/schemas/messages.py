"""Schemas related to chat messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.models.enums import MessageType


class MessageAuthor(BaseModel):
    """Public author fields rendered with every message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    tag: str
    avatar: str | None = None
    badges: int = 0
    bot: bool = False


class MessageAttachmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    path: str
    width: int | None = None
    height: int | None = None


class MessageRead(BaseModel):
    """Serialized representation of a chat message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    channel_id: int
    server_id: int | None = None
    created_by_id: int
    created_by: MessageAuthor
    content: str | None = None
    type: MessageType
    created_at: datetime
    attachment: MessageAttachmentRead | None = None
