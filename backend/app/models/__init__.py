"""Database models package."""

from .base import Base
from .chat import (
    Channel,
    Inbox,
    Message,
    MessageAttachment,
    Server,
    ServerChannelLastSeen,
    ServerMember,
    ServerRole,
    server_member_roles,
)
from .enums import (
    MODERATOR_BADGES,
    TEXT_CHANNEL_TYPES,
    ChannelPermission,
    ChannelType,
    DmStatus,
    FriendStatus,
    MessageType,
    RolePermission,
    TicketCategory,
    TicketStatus,
    UserBadge,
)
from .moderation import Ticket
from .users import (
    Account,
    Application,
    ChatNotice,
    Follower,
    Friend,
    User,
    UserConnection,
    UserDevice,
    UserNotice,
    UserProfile,
)

__all__ = [
    "Base",
    "User",
    "Account",
    "Application",
    "UserProfile",
    "Follower",
    "Friend",
    "UserDevice",
    "UserConnection",
    "ChatNotice",
    "UserNotice",
    "Server",
    "ServerRole",
    "ServerMember",
    "server_member_roles",
    "Channel",
    "Inbox",
    "ServerChannelLastSeen",
    "Message",
    "MessageAttachment",
    "Ticket",
    "ChannelType",
    "TEXT_CHANNEL_TYPES",
    "MessageType",
    "ChannelPermission",
    "RolePermission",
    "UserBadge",
    "MODERATOR_BADGES",
    "DmStatus",
    "FriendStatus",
    "TicketStatus",
    "TicketCategory",
]
