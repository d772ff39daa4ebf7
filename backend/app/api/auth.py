"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.codes import unique_tag
from app.core.errors import ApiError
from app.core.security import generate_token, get_password_hash, verify_password
from app.database import get_db
from app.models import Account, User
from app.schemas import LoginRequest, RegisterRequest, Token

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register_user(payload: RegisterRequest, db: Session = Depends(get_db)) -> Token:
    """Create a user with its account and sign it in."""

    existing = db.execute(select(Account.id).where(Account.email == payload.email)).first()
    if existing is not None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Email already exists.", path="email")

    tag = unique_tag(
        lambda candidate: db.execute(
            select(User.id).where(User.username == payload.username, User.tag == candidate)
        ).first()
        is not None
    )
    user = User(username=payload.username, tag=tag)
    user.account = Account(email=payload.email, hashed_password=get_password_hash(payload.password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User registered", extra={"user_id": user.id})
    return Token(token=generate_token(user.id, user.account.password_version))


@router.post("/login", response_model=Token)
def login_user(credentials: LoginRequest, db: Session = Depends(get_db)) -> Token:
    """Authenticate with email and password."""

    account = db.execute(select(Account).where(Account.email == credentials.email)).scalar_one_or_none()
    if account is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid email address.", path="email")
    if not verify_password(credentials.password, account.hashed_password):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid password.", path="password")
    return Token(token=generate_token(account.user_id, account.password_version))
