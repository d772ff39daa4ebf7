"""Account security: email confirmation, password reset and account deletion.

Every operation returns a ``(value, error)`` pair. Mutations of security
relevant fields invalidate the user read cache; credential changes also end
the user's live realtime sessions.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core import mailer
from app.core.codes import deleted_username, generate_email_confirm_code, generate_secure_code, unique_tag
from app.core.errors import ErrorKind, Result, fail, ok
from app.core.security import generate_token, get_password_hash
from app.models import (
    Account,
    Application,
    ChatNotice,
    Follower,
    ServerChannelLastSeen,
    ServerMember,
    User,
    UserConnection,
    UserDevice,
    UserNotice,
    UserProfile,
)
from app.monitoring.metrics import account_security_events_total
from app.services.cache import remove_user_cache_by_user_ids
from hearth.realtime import get_broadcaster

logger = logging.getLogger(__name__)

settings = get_settings()

INVALID_USER_ID = "Invalid userId."
EMAIL_ALREADY_VERIFIED = "Email already verified."
# user ids are signed BIGINT columns
MAX_USER_ID = 2**63 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _record(action: str, outcome: str) -> None:
    account_security_events_total.labels(action, outcome).inc()


def _account_for_user(db: Session, user_id: int) -> Account | None:
    return db.execute(select(Account).where(Account.user_id == user_id)).scalar_one_or_none()


async def disconnect_sockets(user_id: int, exclude_socket_id: str | None = None) -> None:
    """Tell every live connection of ``user_id`` its token is gone, then close it."""

    try:
        await get_broadcaster().disconnect_user(user_id, exclude=exclude_socket_id)
    except Exception:
        logger.exception("Failed to disconnect realtime sessions", extra={"user_id": user_id})


async def send_email_confirm_code(db: Session, user_id: int) -> Result[dict[str, str]]:
    account = _account_for_user(db, user_id)
    if account is None:
        return fail(INVALID_USER_ID, ErrorKind.NOT_FOUND)
    if account.email_confirmed:
        return fail(EMAIL_ALREADY_VERIFIED)

    code = generate_email_confirm_code()
    account.email_confirm_code = code
    db.commit()
    _record("email_confirm_send", "ok")

    if settings.dev_mode:
        return ok({"message": f"DEV MODE: Email verify code: {code}"})

    mailer.dispatch(mailer.send_confirm_code_mail(code, account.email), name="confirm-code-mail")
    return ok({"message": "Email confirmation code sent."})


async def verify_email_confirm_code(db: Session, user_id: int, code: str) -> Result[bool]:
    account = _account_for_user(db, user_id)
    if account is None:
        return fail(INVALID_USER_ID, ErrorKind.NOT_FOUND)
    if account.email_confirmed:
        return fail(EMAIL_ALREADY_VERIFIED)
    if not account.email_confirm_code:
        return fail("You must request email verification first.")
    if account.email_confirm_code != code:
        _record("email_confirm_verify", "invalid_code")
        return fail("Invalid code.", ErrorKind.VALIDATION)

    account.email_confirmed = True
    account.email_confirm_code = None
    db.commit()
    remove_user_cache_by_user_ids([user_id])
    _record("email_confirm_verify", "ok")
    return ok(True)


def build_reset_password_url(code: str, user_id: int) -> str:
    query = urlencode({"code": code, "userId": user_id})
    return f"{settings.client_url.rstrip('/')}/reset-password?{query}"


async def send_reset_password_code(db: Session, email: str) -> Result[dict[str, str]]:
    account = db.execute(
        select(Account).where(func.lower(Account.email) == email.strip().lower())
    ).scalar_one_or_none()
    if account is None:
        return fail("Invalid email.", ErrorKind.NOT_FOUND)

    code = generate_secure_code()
    account.reset_password_code = code
    account.reset_password_code_expires_at = utcnow() + timedelta(
        seconds=settings.reset_password_code_ttl_seconds
    )
    db.commit()
    _record("reset_password_send", "ok")

    url = build_reset_password_url(code, account.user_id)
    if settings.dev_mode:
        return ok({"message": f"DEV MODE: Password reset link: {url}"})

    mailer.dispatch(mailer.send_reset_password_mail(url, account.email), name="reset-password-mail")
    return ok({"message": "Password reset link sent to your email."})


async def reset_password(
    db: Session,
    user_id: int | str | None,
    code: str | None,
    new_password: str | None,
) -> Result[str]:
    """Replace the password and return a token bound to the new password version."""

    if not code:
        return fail("Invalid code.", ErrorKind.VALIDATION)
    if not new_password or not new_password.strip():
        return fail("Invalid password.", ErrorKind.VALIDATION)
    try:
        resolved_user_id = int(user_id) if user_id not in (None, "") else None
    except (TypeError, ValueError):
        resolved_user_id = None
    if resolved_user_id is None or not 0 < resolved_user_id <= MAX_USER_ID:
        return fail(INVALID_USER_ID, ErrorKind.VALIDATION)

    account = db.execute(
        select(Account).where(
            Account.user_id == resolved_user_id,
            Account.reset_password_code == code,
            Account.reset_password_code_expires_at.is_not(None),
        )
    ).scalar_one_or_none()
    if account is None or _as_aware(account.reset_password_code_expires_at) < utcnow():
        _record("reset_password", "invalid_or_expired")
        return fail("Invalid or expired code.", ErrorKind.EXPIRED)

    account.hashed_password = get_password_hash(new_password.strip())
    account.password_version += 1
    account.reset_password_code = None
    account.reset_password_code_expires_at = None
    db.commit()

    remove_user_cache_by_user_ids([resolved_user_id])
    token = generate_token(resolved_user_id, account.password_version)
    await disconnect_sockets(resolved_user_id)
    _record("reset_password", "ok")
    logger.info("Password reset", extra={"user_id": resolved_user_id})
    return ok(token)


def _blocking_reason(db: Session, user_id: int, account: Account | None) -> str | None:
    in_server = db.execute(
        select(ServerMember.id).where(ServerMember.user_id == user_id).limit(1)
    ).first()
    if in_server is not None:
        return "You must leave all servers before deleting your account."

    if account is not None:
        has_application = db.execute(
            select(Application.id).where(Application.creator_account_id == account.id).limit(1)
        ).first()
        if has_application is not None:
            return "You must delete all applications before deleting your account."
    return None


async def delete_account(db: Session, user_id: int, bot: bool = False) -> Result[bool]:
    """Anonymize the user and drop its account and personal rows.

    The user row survives so authored messages keep a valid author. Bot
    deletion skips the server and application preconditions.
    """

    user = db.get(User, user_id)
    if user is None:
        return fail(INVALID_USER_ID, ErrorKind.NOT_FOUND)
    account = _account_for_user(db, user_id)

    if not bot:
        reason = _blocking_reason(db, user_id, account)
        if reason is not None:
            _record("delete_account", "blocked")
            return fail(reason)

    try:
        db.execute(
            delete(Follower).where(
                or_(Follower.followed_by_id == user_id, Follower.followed_to_id == user_id)
            )
        )
        for model in (
            UserProfile,
            ServerChannelLastSeen,
            UserDevice,
            UserConnection,
            ChatNotice,
            UserNotice,
        ):
            db.execute(delete(model).where(model.user_id == user_id))

        user.username = deleted_username(bot)
        user.tag = unique_tag(
            lambda tag: db.execute(
                select(User.id).where(User.username == user.username, User.tag == tag)
            ).first()
            is not None
        )
        user.avatar = None
        user.banner = None
        user.custom_status = None
        user.badges = 0
        if account is not None:
            db.delete(account)
        db.commit()
    except Exception:
        db.rollback()
        raise

    remove_user_cache_by_user_ids([user_id])
    await disconnect_sockets(user_id)
    _record("delete_account", "ok")
    logger.info("Account deleted", extra={"user_id": user_id, "bot": bot})
    return ok(True)
