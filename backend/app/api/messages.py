"""HTTP endpoint for posting chat messages."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from app.api.deps import enforce_rate_limit, get_channel_context, get_current_account
from app.config import get_settings
from app.core.errors import ApiError
from app.core.storage import UploadedImage, get_image_store, ingest_attachment
from app.database import get_db
from app.models import Message
from app.schemas import MessageRead
from app.services.cache import AccountCache
from app.services.channel_cache import ChannelContext
from app.services.messages import create_message, validate_message_input
from app.services.permissions import evaluate_send_permission

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])

settings = get_settings()


async def _read_message_body(request: Request) -> tuple[Any, Any, UploadFile | None]:
    """Return ``(content, socketId, file)`` from a multipart or JSON body."""

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, UploadFile) or not upload.filename:
            upload = None
        return form.get("content"), form.get("socketId"), upload

    raw = await request.body()
    if not raw:
        return None, None, None
    try:
        body = await request.json()
    except ValueError:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid JSON body.") from None
    if not isinstance(body, dict):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid JSON body.")
    return body.get("content"), body.get("socketId"), None


@router.post("/channels/{channel_id}/messages", response_model=MessageRead)
async def create_channel_message(
    request: Request,
    context: ChannelContext = Depends(get_channel_context),
    account: AccountCache = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> Message:
    """Post a message with optional image attachment to a channel."""

    channel = context.channel
    permission_error = evaluate_send_permission(context.member, channel, inbox=context.inbox)
    if permission_error is not None:
        raise ApiError.from_service_error(permission_error)

    content, socket_id, upload = await _read_message_body(request)
    input_error = validate_message_input(
        content=content,
        socket_id=socket_id,
        channel=channel,
        has_attachment=upload is not None,
    )
    if input_error is not None:
        raise ApiError.from_service_error(input_error)

    await enforce_rate_limit(
        "create_message",
        str(account.user_id),
        window_ms=settings.create_message_rate_window_ms,
        limit=settings.create_message_rate_limit,
    )

    attachment: UploadedImage | None = None
    if upload is not None:
        attachment, ingest_error = await ingest_attachment(upload, upload.filename, channel.id)
        if ingest_error is not None:
            raise ApiError.from_service_error(ingest_error)

    try:
        return await create_message(
            db,
            channel=channel,
            user_id=account.user_id,
            content=content,
            socket_id=socket_id,
            attachment=attachment,
        )
    except Exception:
        if attachment is not None:
            await get_image_store().discard(attachment.path)
        raise
