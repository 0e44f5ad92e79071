# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the auth endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from models.enums import Role


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys; snake_case is accepted on input too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- Requests --------------------------------------------------------------
# Required-field checks happen in the flows so that missing values produce
# the same messages whether a key is absent or empty.


class RegisterRequest(CamelModel):
    name: str = ""
    email: str = ""
    password: str = ""


class LoginRequest(CamelModel):
    name: str = ""
    password: str = ""


class RefreshTokenRequest(CamelModel):
    refresh_token: str = ""


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = ""
    new_password: str = ""


class ForgotPasswordRequest(CamelModel):
    email: str = ""


class ResetPasswordRequest(CamelModel):
    token: str = ""
    new_password: str = ""


class VerifyEmailRequest(CamelModel):
    token: str = ""


class DeleteAccountRequest(CamelModel):
    password: str = ""
    confirm_delete: str = ""


class Address(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    ward: Optional[str] = None
    zip_code: Optional[str] = None


class UpdateProfileRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    address: Optional[Address] = None
    preferences: Optional[dict[str, Any]] = None


# -- Responses -------------------------------------------------------------


class UserResponse(CamelModel):
    """Public view of an account.  No password hash, tokens or sessions."""

    id: str
    name: str
    email: str
    role: Role
    is_active: bool
    is_email_verified: bool
    phone: Optional[str] = None
    avatar: Optional[str] = None
    address: Optional[dict[str, Any]] = None
    preferences: Optional[dict[str, Any]] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
    )


def user_payload(user) -> dict:
    return UserResponse.model_validate(user).model_dump(by_alias=True, mode="json")


def ok(message: str, data: Optional[dict] = None) -> dict:
    """Success envelope shared by every auth and admin endpoint."""
    body: dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body
