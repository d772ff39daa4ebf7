"""Schemas for account security endpoints."""

from pydantic import BaseModel, ConfigDict, Field, constr


class StatusMessage(BaseModel):
    message: str


class EmailConfirmRequest(BaseModel):
    code: constr(strip_whitespace=True, min_length=1, max_length=16)


class StatusResponse(BaseModel):
    status: bool


class ResetPasswordRequest(BaseModel):
    """Unauthenticated recovery: the account is looked up by email."""

    email: constr(strip_whitespace=True, min_length=1, max_length=320)


class ResetPasswordPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    user_id: constr(strip_whitespace=True, max_length=32) = Field(default="", alias="userId")
    code: constr(max_length=255) = ""
    new_password: constr(max_length=255) = Field(default="", alias="newPassword")


class DeleteAccountRequest(BaseModel):
    password: constr(min_length=1, max_length=255)
