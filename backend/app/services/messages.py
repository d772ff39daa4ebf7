"""Message creation: input invariants, persistence and realtime fan-out."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import ErrorKind, ServiceError
from app.core.storage import UploadedImage
from app.models import (
    TEXT_CHANNEL_TYPES,
    Channel,
    ChannelType,
    Inbox,
    Message,
    MessageAttachment,
    MessageType,
    ServerChannelLastSeen,
)
from app.monitoring.metrics import messages_created_total
from app.schemas import MessageRead
from hearth.realtime import RealtimeBroadcaster, channel_room, get_broadcaster, server_room, user_room

logger = logging.getLogger(__name__)

MESSAGE_CREATED = "message:created"
INBOX_OPENED = "inbox:opened"


def _length_error(value: Any, *, field: str, label: str, maximum: int) -> ServiceError | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return ServiceError(f"{label} must be a string!", ErrorKind.VALIDATION, path=field)
    if not 1 <= len(value) <= maximum:
        return ServiceError(
            f"{label} length must be between 1 and {maximum} characters.",
            ErrorKind.VALIDATION,
            path=field,
        )
    return None


def validate_message_input(
    *,
    content: Any,
    socket_id: Any,
    channel: Channel,
    has_attachment: bool,
) -> ServiceError | None:
    """Check a send-message request before any side effect runs."""

    settings = get_settings()
    error = _length_error(
        content, field="content", label="Content", maximum=settings.message_max_length
    ) or _length_error(
        socket_id, field="socketId", label="SocketId", maximum=settings.socket_id_max_length
    )
    if error is not None:
        return error

    if channel.type not in TEXT_CHANNEL_TYPES:
        return ServiceError("You cannot send messages in this channel.", ErrorKind.BUSINESS_RULE)

    if not (content or "").strip() and not has_attachment:
        return ServiceError("content or attachment is required.", ErrorKind.BUSINESS_RULE)
    return None


def _mark_channel_seen(db: Session, *, user_id: int, channel: Channel, seen_at: datetime) -> None:
    last_seen = db.execute(
        select(ServerChannelLastSeen).where(
            ServerChannelLastSeen.user_id == user_id,
            ServerChannelLastSeen.channel_id == channel.id,
        )
    ).scalar_one_or_none()
    if last_seen is None:
        db.add(
            ServerChannelLastSeen(
                user_id=user_id,
                server_id=channel.server_id,
                channel_id=channel.id,
                last_seen=seen_at,
            )
        )
    else:
        last_seen.last_seen = seen_at


def _reopen_recipient_inbox(db: Session, *, channel: Channel, sender_id: int) -> Inbox | None:
    """Re-open the other participant's inbox if they closed it."""

    inbox = db.execute(
        select(Inbox).where(
            Inbox.channel_id == channel.id,
            Inbox.created_by_id != sender_id,
            Inbox.closed.is_(True),
        )
    ).scalar_one_or_none()
    if inbox is not None:
        inbox.closed = False
    return inbox


def message_room(channel: Channel) -> str:
    """Server channels fan out to the whole server, the rest to the channel."""

    if channel.server_id is not None:
        return server_room(channel.server_id)
    return channel_room(channel.id)


async def create_message(
    db: Session,
    *,
    channel: Channel,
    user_id: int,
    content: str | None = None,
    socket_id: str | None = None,
    attachment: UploadedImage | None = None,
    type: MessageType = MessageType.CONTENT,
    broadcaster: RealtimeBroadcaster | None = None,
) -> Message:
    """Persist a message and announce it to everyone but the sending connection.

    Callers validate the input first. Database errors propagate after the
    session is rolled back; broadcast errors are only logged.
    """

    now = datetime.now(timezone.utc)
    message = Message(
        channel_id=channel.id,
        server_id=channel.server_id,
        created_by_id=user_id,
        content=(content or "").strip() or None,
        type=type,
        created_at=now,
    )
    if attachment is not None:
        message.attachment = MessageAttachment(
            channel_id=channel.id,
            server_id=channel.server_id,
            path=attachment.path,
            width=attachment.width,
            height=attachment.height,
        )
    db.add(message)

    channel.last_messaged_at = now
    reopened: Inbox | None = None
    if channel.server_id is not None:
        _mark_channel_seen(db, user_id=user_id, channel=channel, seen_at=now)
    elif channel.type == ChannelType.DM_TEXT:
        reopened = _reopen_recipient_inbox(db, channel=channel, sender_id=user_id)

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(message)

    messages_created_total.labels(channel.type.value, str(attachment is not None).lower()).inc()
    logger.info(
        "Message created",
        extra={"message_id": message.id, "channel_id": channel.id, "user_id": user_id},
    )

    broadcaster = broadcaster or get_broadcaster()
    payload = MessageRead.model_validate(message).model_dump(mode="json")
    try:
        if reopened is not None:
            await broadcaster.emit(
                user_room(reopened.created_by_id),
                INBOX_OPENED,
                {"id": reopened.id, "channel_id": channel.id, "recipient_id": reopened.recipient_id},
            )
        await broadcaster.emit(
            message_room(channel),
            MESSAGE_CREATED,
            {"message": payload, "socketId": socket_id},
            exclude=socket_id,
        )
    except Exception:
        logger.exception("Failed to broadcast message", extra={"message_id": message.id})
    return message
