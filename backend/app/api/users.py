"""Account security endpoints: email confirmation, password reset, deletion."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_account, rate_limit
from app.config import get_settings
from app.core.errors import ApiError, unwrap
from app.core.security import verify_password
from app.database import get_db
from app.models import Account
from app.schemas import (
    DeleteAccountRequest,
    EmailConfirmRequest,
    ResetPasswordPayload,
    ResetPasswordRequest,
    StatusMessage,
    StatusResponse,
    Token,
)
from app.services import accounts
from app.services.cache import AccountCache

router = APIRouter(prefix="/users", tags=["users"])
settings = get_settings()


@router.post("/emails/confirm/send", response_model=StatusMessage)
async def send_email_confirm_code(
    account: AccountCache = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> dict[str, str]:
    return unwrap(await accounts.send_email_confirm_code(db, account.user_id))


@router.post("/emails/confirm", response_model=StatusResponse)
async def verify_email_confirm_code(
    payload: EmailConfirmRequest,
    account: AccountCache = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> StatusResponse:
    confirmed = unwrap(await accounts.verify_email_confirm_code(db, account.user_id, payload.code))
    return StatusResponse(status=confirmed)


@router.post(
    "/reset-password/request",
    response_model=StatusMessage,
    dependencies=[
        Depends(
            rate_limit(
                "reset_password_request",
                window_ms=settings.reset_password_rate_window_ms,
                limit=settings.reset_password_rate_limit,
                use_ip=True,
            )
        )
    ],
)
async def request_password_reset(
    payload: ResetPasswordRequest,
    db: Session = Depends(get_db),
) -> dict[str, str]:
    return unwrap(await accounts.send_reset_password_code(db, payload.email))


@router.post("/reset-password", response_model=Token)
async def reset_password(payload: ResetPasswordPayload, db: Session = Depends(get_db)) -> Token:
    token = unwrap(
        await accounts.reset_password(db, payload.user_id, payload.code, payload.new_password)
    )
    return Token(token=token)


@router.delete("/me", response_model=StatusResponse)
async def delete_own_account(
    payload: DeleteAccountRequest,
    account: AccountCache = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> StatusResponse:
    """Delete the caller's account after re-checking the password."""

    db_account = db.execute(
        select(Account).where(Account.user_id == account.user_id)
    ).scalar_one_or_none()
    if db_account is None or not verify_password(payload.password, db_account.hashed_password):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid password.", path="password")

    deleted = unwrap(await accounts.delete_account(db, account.user_id))
    return StatusResponse(status=deleted)
