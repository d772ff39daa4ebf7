"""Schemas for authentication endpoints."""

from pydantic import BaseModel, Field, constr

Email = constr(
    strip_whitespace=True, to_lower=True, max_length=320, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
)


class RegisterRequest(BaseModel):
    """Payload for creating a new account."""

    email: Email = Field(..., description="Email address used to sign in")
    username: constr(strip_whitespace=True, min_length=3, max_length=35) = Field(
        ..., description="Display username; a random tag makes it unique"
    )
    password: constr(min_length=4, max_length=255) = Field(
        ..., description="Plain text password that will be hashed before storing"
    )


class LoginRequest(BaseModel):
    """Payload for user login."""

    email: Email = Field(..., description="Account email")
    password: constr(min_length=1, max_length=255) = Field(..., description="Account password")


class Token(BaseModel):
    """Token bound to the account's current password version."""

    token: str = Field(..., description="JWT access token")
