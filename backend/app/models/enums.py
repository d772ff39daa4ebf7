from __future__ import annotations

from enum import Enum, IntEnum


class ChannelType(str, Enum):
    """Possible communication channel types."""

    DM_TEXT = "dm_text"
    SERVER_TEXT = "server_text"
    CATEGORY = "category"
    TICKET = "ticket"


TEXT_CHANNEL_TYPES: frozenset[ChannelType] = frozenset(
    {ChannelType.DM_TEXT, ChannelType.SERVER_TEXT, ChannelType.TICKET}
)


class MessageType(str, Enum):
    """Content messages are user authored; the rest are generated by the system."""

    CONTENT = "content"
    JOIN_SERVER = "join_server"
    LEAVE_SERVER = "leave_server"
    KICK_USER = "kick_user"
    BAN_USER = "ban_user"
    CALL_STARTED = "call_started"


class ChannelPermission(IntEnum):
    """Bits stored in ``Channel.permissions``."""

    PRIVATE_CHANNEL = 1 << 0
    SEND_MESSAGE = 1 << 1
    JOIN_VOICE = 1 << 2


class RolePermission(IntEnum):
    """Bits stored in ``ServerRole.permissions``."""

    ADMIN = 1 << 0
    SEND_MESSAGE = 1 << 1
    MANAGE_ROLES = 1 << 2
    MANAGE_CHANNELS = 1 << 3
    KICK = 1 << 4
    BAN = 1 << 5
    MENTION_EVERYONE = 1 << 6


class UserBadge(IntEnum):
    """Bits stored in ``User.badges``."""

    FOUNDER = 1 << 0
    ADMIN = 1 << 1
    MOD = 1 << 2
    CONTRIBUTOR = 1 << 3
    SUPPORTER = 1 << 4


MODERATOR_BADGES: int = UserBadge.FOUNDER | UserBadge.ADMIN | UserBadge.MOD


class DmStatus(str, Enum):
    """Who is allowed to open a direct message with a user."""

    OPEN = "open"
    FRIENDS_AND_SERVERS = "friends_and_servers"
    FRIENDS_ONLY = "friends_only"


class FriendStatus(str, Enum):
    """Lifecycle states for friend relationships."""

    PENDING = "pending"
    SENT = "sent"
    FRIENDS = "friends"
    BLOCKED = "blocked"


class TicketStatus(str, Enum):
    CLOSED_AS_DONE = "closed_as_done"
    WAITING_FOR_MODERATOR_RESPONSE = "waiting_for_moderator_response"
    WAITING_FOR_USER_RESPONSE = "waiting_for_user_response"
    CLOSED_AS_INVALID = "closed_as_invalid"


class TicketCategory(str, Enum):
    QUESTION = "question"
    ACCOUNT = "account"
    ABUSE = "abuse"
    OTHER = "other"
