"""Models for auth-related requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from cmms.common import AccountStatus, Role, User
from cmms.common.models import MessageResponse, RequestModel

from .permissions import effective_permissions, grid_to_dict


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        msg = "Invalid email address"
        raise ValueError(msg)
    return value


Email = Annotated[str, AfterValidator(_normalize_email)]

__all__ = [
    "ChangePasswordRequest",
    "Email",
    "ForgotPasswordRequest",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "RegistrationRequest",
    "RequestModel",
    "ResetPasswordRequest",
    "UserResponse",
]


class RegistrationRequest(RequestModel):
    """Self-service registration payload. The account starts as pending."""

    email: Email
    password: str
    first_name: str = Field(min_length=2)
    last_name: str = Field(min_length=2)
    department: str | None = None
    phone: str | None = None


class LoginRequest(RequestModel):
    """Credentials for a login."""

    email: Email
    password: str = Field(min_length=1)


class ChangePasswordRequest(RequestModel):
    """Payload for changing the caller's own password."""

    current_password: str = Field(min_length=1)
    new_password: str


class ForgotPasswordRequest(RequestModel):
    """Payload requesting a password reset token."""

    email: Email


class ResetPasswordRequest(RequestModel):
    """Payload setting a new password with a reset token."""

    token: str = Field(min_length=1)
    password: str


class UserResponse(BaseModel):
    """Data structure representing a user in responses.

    :param permissions: The effective grid as resource -> {action: bool}
    """

    id: str
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: Role | None
    status: AccountStatus
    permissions: dict[str, dict[str, bool]]
    department: str | None = None
    phone: str | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        """Create UserResponse from a User.

        :param user: User instance
        :return: UserResponse instance
        """
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            role=user.role,
            status=user.status,
            permissions=grid_to_dict(effective_permissions(user)),
            department=user.department,
            phone=user.phone,
            last_login=user.last_login,
            created_at=user.created_at,
        )


class LoginResponse(BaseModel):
    """Response model for login requests.

    :param access_token: The JWT access token
    :param user: The authenticated user information
    """

    access_token: str
    token_type: str = "bearer"
    user: UserResponse