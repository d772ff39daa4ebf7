from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import ChannelType, MessageType
from app.models.users import User


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


server_member_roles = Table(
    "server_member_roles",
    Base.metadata,
    Column("member_id", ForeignKey("server_members.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", ForeignKey("server_roles.id", ondelete="CASCADE"), primary_key=True),
)


class Server(Base):
    """Community owning a set of channels, roles and members."""

    __tablename__ = "servers"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    default_role_id: Mapped[int | None] = mapped_column(
        ForeignKey("server_roles.id", ondelete="SET NULL", use_alter=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    roles: Mapped[list["ServerRole"]] = relationship(
        back_populates="server",
        cascade="all, delete-orphan",
        foreign_keys="ServerRole.server_id",
        order_by="ServerRole.order",
    )
    default_role: Mapped["ServerRole | None"] = relationship(
        foreign_keys=[default_role_id], post_update=True
    )
    members: Mapped[list["ServerMember"]] = relationship(
        back_populates="server", cascade="all, delete-orphan"
    )
    channels: Mapped[list["Channel"]] = relationship(
        back_populates="server", cascade="all, delete-orphan"
    )


class ServerRole(Base):
    """Named permission bitmask inside a server."""

    __tablename__ = "server_roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    permissions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    server: Mapped[Server] = relationship(back_populates="roles", foreign_keys=[server_id])


class ServerMember(Base):
    __tablename__ = "server_members"
    __table_args__ = (UniqueConstraint("server_id", "user_id", name="uq_server_member"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    server: Mapped[Server] = relationship(back_populates="members")
    user: Mapped[User] = relationship(back_populates="server_memberships")
    roles: Mapped[list[ServerRole]] = relationship(secondary=server_member_roles)


class Channel(Base):
    """Text channel inside a server, or a direct-message channel between two users."""

    __tablename__ = "channels"

    id: Mapped[int] = mapped_column(primary_key=True)
    server_id: Mapped[int | None] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), nullable=True
    )
    name: Mapped[str | None] = mapped_column(String(100))
    type: Mapped[ChannelType] = mapped_column(
        SAEnum(ChannelType, name="channel_type", values_callable=_values), nullable=False
    )
    permissions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    last_messaged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    server: Mapped[Server | None] = relationship(back_populates="channels")
    inboxes: Mapped[list["Inbox"]] = relationship(
        back_populates="channel", cascade="all, delete-orphan"
    )


class Inbox(Base):
    """A participant's view of a direct-message channel."""

    __tablename__ = "inboxes"
    __table_args__ = (UniqueConstraint("channel_id", "created_by_id", name="uq_inbox_owner"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[int] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    created_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    channel: Mapped[Channel] = relationship(back_populates="inboxes")


class ServerChannelLastSeen(Base):
    """Per-user read state of a server channel."""

    __tablename__ = "server_channel_last_seen"
    __table_args__ = (UniqueConstraint("user_id", "channel_id", name="uq_last_seen_user_channel"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), nullable=False
    )
    channel_id: Mapped[int] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Message(Base):
    """Message posted within a channel. Immutable once created."""

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_channel_created_at", "channel_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[int] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    server_id: Mapped[int | None] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), nullable=True
    )
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[MessageType] = mapped_column(
        SAEnum(MessageType, name="message_type", values_callable=_values),
        default=MessageType.CONTENT,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    created_by: Mapped[User] = relationship(foreign_keys=[created_by_id])
    attachment: Mapped["MessageAttachment | None"] = relationship(
        back_populates="message", cascade="all, delete-orphan", uselist=False
    )


class MessageAttachment(Base):
    """Image stored by the attachment store and referenced by exactly one message."""

    __tablename__ = "message_attachments"

    id: Mapped[int] = mapped_column(primary_key=True)
    message_id: Mapped[int] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    channel_id: Mapped[int] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    server_id: Mapped[int | None] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), nullable=True
    )
    path: Mapped[str] = mapped_column(String(512), nullable=False)
    width: Mapped[int | None] = mapped_column(Integer)
    height: Mapped[int | None] = mapped_column(Integer)

    message: Mapped[Message] = relationship(back_populates="attachment")
