"""Centralized permission calculation service."""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.errors import ErrorKind, ServiceError
from app.models import Channel, ChannelPermission, ChannelType, RolePermission, ServerMember

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from app.services.channel_cache import InboxCache

CANNOT_MESSAGE_USER = "You cannot message this user."


def has_bit(permissions: int | None, bit: int) -> bool:
    return bool((permissions or 0) & bit)


def effective_role_permissions(member: ServerMember) -> int:
    """OR of the server's default role and every role held by ``member``."""

    server = member.server
    bits = server.default_role.permissions if server.default_role is not None else 0
    for role in member.roles:
        bits |= role.permissions
    return bits


def is_server_owner(member: ServerMember) -> bool:
    return member.server.owner_id == member.user_id


def member_has_role_permission(member: ServerMember, bit: int) -> bool:
    """Role check; the server owner always passes."""

    return is_server_owner(member) or has_bit(effective_role_permissions(member), bit)


def _role_label(bit: int) -> str:
    try:
        return RolePermission(bit).name
    except ValueError:
        return str(bit)


def evaluate_send_permission(
    member: ServerMember | None,
    channel: Channel,
    required_channel_bit: int = ChannelPermission.SEND_MESSAGE,
    required_role_bit: int = RolePermission.SEND_MESSAGE,
    *,
    inbox: "InboxCache | None" = None,
    channel_message: str = "You are not allowed to send messages in this channel.",
) -> ServiceError | None:
    """Return the reason ``member`` may not act in ``channel``, or ``None``.

    Inbox channels are governed only by the inbox ``can_message`` flag. Server
    channels need both the channel bit and the role bit.
    """

    if channel.type == ChannelType.DM_TEXT:
        if inbox is None or not inbox.can_message:
            return ServiceError(CANNOT_MESSAGE_USER, ErrorKind.PERMISSION)
        return None

    # Ticket channels belong to no server; access was settled when resolving the channel.
    if channel.server_id is None:
        return None

    if not has_bit(channel.permissions, required_channel_bit):
        return ServiceError(channel_message, ErrorKind.PERMISSION)

    if member is None or not member_has_role_permission(member, required_role_bit):
        return ServiceError(
            f"You don't have permission to perform this action ({_role_label(required_role_bit)}).",
            ErrorKind.PERMISSION,
        )
    return None


def can_send_message(
    member: ServerMember | None,
    channel: Channel,
    required_channel_bit: int = ChannelPermission.SEND_MESSAGE,
    required_role_bit: int = RolePermission.SEND_MESSAGE,
    *,
    inbox: "InboxCache | None" = None,
) -> bool:
    return (
        evaluate_send_permission(
            member, channel, required_channel_bit, required_role_bit, inbox=inbox
        )
        is None
    )
