"""Resolution of the channel a request targets, with the caller's access to it."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload

from app.core.errors import ErrorKind, Result, fail, ok
from app.models import (
    MODERATOR_BADGES,
    Channel,
    ChannelType,
    DmStatus,
    Friend,
    FriendStatus,
    Inbox,
    Server,
    ServerMember,
    Ticket,
    User,
)

CHANNEL_NOT_FOUND = "Channel does not exist."
NOT_A_MEMBER = "You are not a member of this server."


@dataclass(slots=True)
class InboxCache:
    """The caller's inbox row for a direct-message channel."""

    id: int
    recipient_id: int
    closed: bool
    can_message: bool


@dataclass(slots=True)
class ChannelContext:
    channel: Channel
    server: Server | None = None
    member: ServerMember | None = None
    inbox: InboxCache | None = None


def _relationship_statuses(db: Session, user_id: int, other_id: int) -> set[FriendStatus]:
    rows = db.execute(
        select(Friend.status).where(
            or_(
                and_(Friend.user_id == user_id, Friend.recipient_id == other_id),
                and_(Friend.user_id == other_id, Friend.recipient_id == user_id),
            )
        )
    ).scalars()
    return set(rows)


def _share_server(db: Session, user_id: int, other_id: int) -> bool:
    mine = select(ServerMember.server_id).where(ServerMember.user_id == user_id)
    shared = db.execute(
        select(ServerMember.id)
        .where(ServerMember.user_id == other_id, ServerMember.server_id.in_(mine))
        .limit(1)
    ).first()
    return shared is not None


def can_message(db: Session, sender_id: int, recipient_id: int) -> bool:
    """Whether ``sender_id`` may send direct messages to ``recipient_id``.

    A block in either direction always wins; otherwise the recipient's
    ``dm_status`` decides.
    """

    statuses = _relationship_statuses(db, sender_id, recipient_id)
    if FriendStatus.BLOCKED in statuses:
        return False

    recipient = db.get(User, recipient_id)
    if recipient is None:
        return False

    are_friends = FriendStatus.FRIENDS in statuses
    if recipient.dm_status == DmStatus.FRIENDS_ONLY:
        return are_friends
    if recipient.dm_status == DmStatus.FRIENDS_AND_SERVERS:
        return are_friends or _share_server(db, sender_id, recipient_id)
    return True


def get_server_member(db: Session, server_id: int, user_id: int) -> ServerMember | None:
    return db.execute(
        select(ServerMember)
        .options(selectinload(ServerMember.roles), selectinload(ServerMember.server))
        .where(ServerMember.server_id == server_id, ServerMember.user_id == user_id)
    ).scalar_one_or_none()


def resolve_channel(db: Session, channel_id: int, user_id: int, badges: int = 0) -> Result[ChannelContext]:
    """Load ``channel_id`` as seen by ``user_id``.

    Server channels require membership, inbox channels require the caller's own
    inbox row, ticket channels are open to their opener and to moderators.
    """

    channel = db.get(Channel, channel_id)
    if channel is None:
        return fail(CHANNEL_NOT_FOUND, ErrorKind.NOT_FOUND)

    if channel.server_id is not None:
        member = get_server_member(db, channel.server_id, user_id)
        if member is None:
            return fail(NOT_A_MEMBER, ErrorKind.PERMISSION)
        return ok(ChannelContext(channel=channel, server=member.server, member=member))

    if channel.type == ChannelType.DM_TEXT:
        inbox = db.execute(
            select(Inbox).where(Inbox.channel_id == channel.id, Inbox.created_by_id == user_id)
        ).scalar_one_or_none()
        if inbox is None:
            return fail(CHANNEL_NOT_FOUND, ErrorKind.NOT_FOUND)
        return ok(
            ChannelContext(
                channel=channel,
                inbox=InboxCache(
                    id=inbox.id,
                    recipient_id=inbox.recipient_id,
                    closed=inbox.closed,
                    can_message=can_message(db, user_id, inbox.recipient_id),
                ),
            )
        )

    if channel.type == ChannelType.TICKET:
        opened_by_id = db.execute(
            select(Ticket.opened_by_id).where(Ticket.channel_id == channel.id)
        ).scalar_one_or_none()
        if opened_by_id == user_id or badges & MODERATOR_BADGES:
            return ok(ChannelContext(channel=channel))

    return fail(CHANNEL_NOT_FOUND, ErrorKind.NOT_FOUND)
