from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import DmStatus, FriendStatus


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class User(Base):
    """Public identity of a person or bot.

    Rows are never deleted: account deletion anonymizes the user so messages
    and relations that reference it stay valid.
    """

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("username", "tag", name="uq_user_username_tag"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    tag: Mapped[str] = mapped_column(String(4), nullable=False)
    avatar: Mapped[str | None] = mapped_column(String(512))
    banner: Mapped[str | None] = mapped_column(String(512))
    badges: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    custom_status: Mapped[str | None] = mapped_column(String(128))
    dm_status: Mapped[DmStatus] = mapped_column(
        SAEnum(DmStatus, name="dm_status", values_callable=_values),
        default=DmStatus.OPEN,
        nullable=False,
    )
    bot: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    account: Mapped["Account | None"] = relationship(back_populates="user", uselist=False)
    server_memberships: Mapped[list["ServerMember"]] = relationship(  # noqa: F821
        back_populates="user", cascade="all, delete-orphan"
    )


class Account(Base):
    """Credentials and security state owned 1:1 by a user."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    password_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_confirm_code: Mapped[str | None] = mapped_column(String(16))
    reset_password_code: Mapped[str | None] = mapped_column(String(128))
    reset_password_code_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    user: Mapped[User] = relationship(back_populates="account")
    applications: Mapped[list["Application"]] = relationship(back_populates="creator_account")


class Application(Base):
    """Bot application registered by an account."""

    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    creator_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL")
    )
    bot_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    creator_account: Mapped[Account | None] = relationship(back_populates="applications")


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    bio: Mapped[str | None] = mapped_column(Text)


class Follower(Base):
    __tablename__ = "followers"
    __table_args__ = (UniqueConstraint("followed_by_id", "followed_to_id", name="uq_follower"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    followed_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    followed_to_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )


class Friend(Base):
    """Directed relationship row; each side of a friendship has its own row."""

    __tablename__ = "friends"
    __table_args__ = (UniqueConstraint("user_id", "recipient_id", name="uq_friend_pair"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[FriendStatus] = mapped_column(
        SAEnum(FriendStatus, name="friend_status", values_callable=_values), nullable=False
    )


class UserDevice(Base):
    """Push notification registration."""

    __tablename__ = "user_devices"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token: Mapped[str] = mapped_column(String(512), nullable=False)


class UserConnection(Base):
    """Linked external account (e.g. Google)."""

    __tablename__ = "user_connections"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    connected_account_id: Mapped[str] = mapped_column(String(255), nullable=False)


class ChatNotice(Base):
    __tablename__ = "chat_notices"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)


class UserNotice(Base):
    __tablename__ = "user_notices"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
