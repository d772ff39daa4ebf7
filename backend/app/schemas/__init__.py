"""Pydantic schemas for API payloads."""

from .auth import LoginRequest, RegisterRequest, Token
from .messages import MessageAttachmentRead, MessageAuthor, MessageRead
from .moderation import TicketRead
from .users import (
    DeleteAccountRequest,
    EmailConfirmRequest,
    ResetPasswordPayload,
    ResetPasswordRequest,
    StatusMessage,
    StatusResponse,
)

__all__ = [
    "LoginRequest",
    "RegisterRequest",
    "Token",
    "MessageAuthor",
    "MessageAttachmentRead",
    "MessageRead",
    "TicketRead",
    "DeleteAccountRequest",
    "EmailConfirmRequest",
    "StatusResponse",
    "ResetPasswordPayload",
    "ResetPasswordRequest",
    "StatusMessage",
]
