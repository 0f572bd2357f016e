"""FastAPI dependency validators for authentication and authorization."""

import logging
from collections.abc import Callable, Coroutine
from typing import Annotated, Any

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from cmms.common import Action, Resource, UnauthenticatedError, User

from .guard import authorize
from .queries import UserQueries, inactive_error

bearer_scheme = HTTPBearer(auto_error=False)

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


class Validate:
    """Holds validator dependencies for FastAPI authentication/authorization."""

    def __init__(self, user_queries: UserQueries) -> None:
        """Create a new validator instance.

        :param user_queries: Account repository, also holding the security manager
        """
        self.user_queries = user_queries
        self.security_manager = user_queries.security_manager

    async def current_user(
        self,
        credentials: Annotated[
            HTTPAuthorizationCredentials | None,
            Security(bearer_scheme),
        ] = None,
    ) -> User:
        """Resolve the caller from a bearer token.

        The account is reloaded on every request so that suspensions and role
        changes apply immediately.
        """
        if credentials is None:
            msg = "Missing authorization token"
            raise UnauthenticatedError(msg)

        user_id = self.security_manager.verify_token(credentials.credentials)
        if user_id is None:
            msg = "Invalid or expired token"
            raise UnauthenticatedError(msg)

        user = await self.user_queries.get_user(user_id)
        if user is None:
            LOGGER.debug("Token for unknown user id: %s", user_id)
            msg = "User does not exist"
            raise UnauthenticatedError(msg)

        if not user.is_active:
            LOGGER.debug("Token for %s account %s", user.status, user.email)
            raise inactive_error(user)

        return user

    def permission(
        self,
        resource: Resource,
        action: Action,
    ) -> Callable[..., Coroutine[Any, Any, User]]:
        """Return a grid-based dependency validator."""

        async def validator(
            user: Annotated[User, Depends(self.current_user)],
        ) -> User:
            authorize(user, resource, action)
            LOGGER.debug("Permission %s.%s validated for %s", resource, action, user.email)
            return user

        return validator
