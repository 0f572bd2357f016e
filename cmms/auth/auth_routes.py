"""Authentication routes for the FastAPI application.

Provides endpoints for registration, login, the caller's own account,
password changes and password resets.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from cmms.common import User
from cmms.notifications import NotificationDispatcher, NotificationEvent

from .models import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegistrationRequest,
    ResetPasswordRequest,
    UserResponse,
)
from .queries import UserQueries
from .validation import Validate

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


async def _register(
    user_queries: UserQueries,
    notifications: NotificationDispatcher,
    registration: RegistrationRequest,
) -> UserResponse:
    user = await user_queries.register(registration)
    notifications.notify(NotificationEvent.ACCOUNT_REGISTERED, user)
    return UserResponse.from_user(user)


async def _login(user_queries: UserQueries, credentials: LoginRequest) -> LoginResponse:
    user = await user_queries.authenticate(credentials.email, credentials.password)
    access_token = user_queries.security_manager.create_access_token(user)
    LOGGER.debug("User %s logged in successfully", user.email)
    return LoginResponse(access_token=access_token, user=UserResponse.from_user(user))


def configure_auth_router(
    router: APIRouter,
    validate: Validate,
    notifications: NotificationDispatcher,
) -> APIRouter:
    """Configure the authentication router.

    :param router: The APIRouter to configure
    :param validate: Validator dependencies, also holding the account repository
    :param notifications: Dispatcher for registration and reset notifications
    :return: The configured APIRouter
    """
    user_queries = validate.user_queries

    @router.post(
        "/register",
        response_model=UserResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def register(registration: RegistrationRequest) -> UserResponse:
        return await _register(user_queries, notifications, registration)

    @router.post("/login", response_model=LoginResponse)
    async def login(credentials: LoginRequest) -> LoginResponse:
        return await _login(user_queries, credentials)

    @router.get("/me", response_model=UserResponse)
    def get_account_info(
        user: Annotated[User, Depends(validate.current_user)],
    ) -> UserResponse:
        return UserResponse.from_user(user)

    @router.post("/change-password", response_model=MessageResponse)
    async def change_password(
        request: ChangePasswordRequest,
        user: Annotated[User, Depends(validate.current_user)],
    ) -> MessageResponse:
        await user_queries.change_password(
            user,
            request.current_password,
            request.new_password,
        )
        return MessageResponse(message="Password changed successfully")

    @router.post("/forgot-password", response_model=MessageResponse)
    async def forgot_password(request: ForgotPasswordRequest) -> MessageResponse:
        user, token = await user_queries.request_password_reset(request.email)
        notifications.notify(NotificationEvent.PASSWORD_RESET, user, token=token)
        return MessageResponse(message="Password reset token has been sent")

    @router.post("/reset-password", response_model=MessageResponse)
    async def reset_password(request: ResetPasswordRequest) -> MessageResponse:
        await user_queries.reset_password(request.token, request.password)
        return MessageResponse(message="Password has been reset")

    return router
