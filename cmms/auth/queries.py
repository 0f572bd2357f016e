"""Account storage and credential checks.

Using the UserQueries class as a repository for account-related queries.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import aiosqlite

from cmms.common import (
    AccountInactiveError,
    AccountStatus,
    NotFoundError,
    Role,
    UnauthenticatedError,
    User,
    ValidationFailedError,
)
from cmms.query.plan import Condition, QueryPlan

from .permissions import overrides_to_dict, parse_overrides

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cmms.store import RecordStore

    from .models import RegistrationRequest
    from .security_manager import SecurityManager

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

_INACTIVE_MESSAGES = {
    AccountStatus.PENDING: "Account is awaiting administrator approval",
    AccountStatus.SUSPENDED: "Account has been suspended",
    AccountStatus.REJECTED: "Account has been rejected",
}


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def inactive_error(user: User) -> AccountInactiveError:
    """Build the error reported for an account that may not act."""
    return AccountInactiveError(
        _INACTIVE_MESSAGES.get(user.status, "Account is not active"),
    )


class UserQueries:
    """Repository for account-related queries."""

    def __init__(
        self,
        store: RecordStore,
        security_manager: SecurityManager,
    ) -> None:
        """Create a UserQueries instance.

        :param store: Record store of the users collection
        :param security_manager: Security configuration manager
        """
        self.store = store
        self.security_manager = security_manager

    @staticmethod
    def to_user(record: dict[str, Any]) -> User:
        """Convert a stored record to a User."""
        return User(
            id=record["id"],
            email=record["email"],
            role=Role(record["role"]) if record.get("role") else None,
            status=AccountStatus(record["status"]),
            first_name=record["first_name"],
            last_name=record["last_name"],
            overrides=parse_overrides(record.get("overrides")),
            department=record.get("department"),
            phone=record.get("phone"),
            last_login=_parse_datetime(record.get("last_login")),
            created_at=_parse_datetime(record.get("created_at")),
        )

    async def count_users(self) -> int:
        """Return the number of stored accounts."""
        return await self.store.count()

    async def _insert(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: Role | None,
        status: AccountStatus,
        department: str | None = None,
        phone: str | None = None,
    ) -> User:
        error = self.security_manager.validate_password(password)
        if error:
            raise ValidationFailedError.single("password", error)

        now = datetime.now(UTC)
        try:
            user_id = await self.store.insert(
                {
                    "email": email,
                    "hashed_password": self.security_manager.hash_password(password),
                    "first_name": first_name,
                    "last_name": last_name,
                    "role": role,
                    "status": status,
                    "overrides": {},
                    "department": department,
                    "phone": phone,
                    "created_at": now,
                    "updated_at": now,
                },
            )
        except aiosqlite.IntegrityError as e:
            LOGGER.debug("Duplicate registration for %s", email)
            msg = "An account with this email already exists"
            raise ValidationFailedError.single("email", msg) from e

        return await self.require_user(user_id)

    async def seed_admin(self, credentials: tuple[str, str] | None) -> User | None:
        """Create the first administrator when the database has no accounts.

        :param credentials: Optional (email, password) tuple
        :return: The created admin, or None if nothing was created
        """
        if await self.count_users() != 0:
            return None

        if credentials is None:
            LOGGER.warning(
                "No users found in database and no admin credentials "
                "provided. The server will start without an admin account.",
            )
            return None

        email, password = credentials
        admin = await self._insert(
            email=email.strip().lower(),
            password=password,
            first_name="System",
            last_name="Administrator",
            role=Role.ADMIN,
            status=AccountStatus.ACTIVE,
        )
        LOGGER.info(
            "No users found in database; created default admin account '%s'",
            admin.email,
        )
        return admin

    async def register(self, registration: RegistrationRequest) -> User:
        """Create a pending account with no role.

        :raises ValidationFailedError: On a weak password or duplicate email
        """
        user = await self._insert(
            email=registration.email,
            password=registration.password,
            first_name=registration.first_name,
            last_name=registration.last_name,
            role=None,
            status=AccountStatus.PENDING,
            department=registration.department,
            phone=registration.phone,
        )
        LOGGER.info("Registered pending account %s", user.email)
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """Check credentials and record the login.

        :raises UnauthenticatedError: On unknown email or wrong password
        :raises AccountInactiveError: If the account is not active
        """
        records, _ = await self._find_by_email(email)
        if not records or not self.security_manager.check_password(
            password,
            records[0]["hashed_password"],
        ):
            LOGGER.debug("Failed login attempt for email: %s", email)
            msg = "Invalid email or password"
            raise UnauthenticatedError(msg)

        user = self.to_user(records[0])
        if not user.is_active:
            LOGGER.debug("Login refused for %s account %s", user.status, email)
            raise inactive_error(user)

        updated = await self.store.conditional_update(
            user.id,
            {},
            {"last_login": datetime.now(UTC)},
        )
        return self.to_user(updated)

    async def _find_by_email(self, email: str) -> tuple[list[dict[str, Any]], int]:
        return await self.store.find(
            QueryPlan(conditions=(Condition.eq("email", email.strip().lower()),)),
        )

    async def get_user(self, user_id: str) -> User | None:
        """Return a user by id, or None."""
        record = await self.store.find_by_id(user_id)
        return self.to_user(record) if record is not None else None

    async def get_users(self, user_ids: Iterable[str]) -> dict[str, User]:
        """Return the existing users among the given ids, keyed by id."""
        records = await self.store.find_by_ids(user_ids)
        return {user_id: self.to_user(record) for user_id, record in records.items()}

    async def require_user(self, user_id: str) -> User:
        """Return a user by id.

        :raises NotFoundError: If the user does not exist
        """
        user = await self.get_user(user_id)
        if user is None:
            msg = "User does not exist"
            raise NotFoundError(msg)
        return user

    async def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
    ) -> None:
        """Change a user's password after checking the current one.

        :raises ValidationFailedError: On a wrong current or weak new password
        """
        record = await self.store.find_by_id(user.id)
        if record is None:
            msg = "User does not exist"
            raise NotFoundError(msg)

        if not self.security_manager.check_password(
            current_password,
            record["hashed_password"],
        ):
            msg = "Current password is incorrect"
            raise ValidationFailedError.single("current_password", msg)

        error = self.security_manager.validate_password(new_password)
        if error:
            raise ValidationFailedError.single("new_password", error)

        await self.store.conditional_update(
            user.id,
            {"hashed_password": record["hashed_password"]},
            {
                "hashed_password": self.security_manager.hash_password(new_password),
                "updated_at": datetime.now(UTC),
            },
        )
        LOGGER.debug("Password changed successfully for user: %s", user.email)

    async def request_password_reset(self, email: str) -> tuple[User, str]:
        """Issue a single-use password reset token for an account.

        Only a hash of the token is stored. Issuing a new token replaces the
        previous one.

        :param email: Email of the account
        :return: Tuple of (the account, the token to deliver to it)
        :raises NotFoundError: If no account has this email
        """
        records, _ = await self._find_by_email(email)
        if not records:
            msg = "User does not exist"
            raise NotFoundError(msg)

        token, token_hash = self.security_manager.create_reset_token()
        expires = datetime.now(UTC) + timedelta(
            minutes=self.security_manager.reset_expire_minutes,
        )
        updated = await self.store.conditional_update(
            records[0]["id"],
            {},
            {"password_reset_token": token_hash, "password_reset_expires": expires},
        )
        user = self.to_user(updated)
        LOGGER.info("Password reset requested for %s", user.email)
        return user, token

    async def reset_password(self, token: str, new_password: str) -> User:
        """Set a new password with a reset token and invalidate the token.

        :raises ValidationFailedError: On an unknown or expired token or a
            weak password
        :raises ConflictError: If the token was used concurrently
        """
        token_hash = self.security_manager.hash_reset_token(token)
        records, _ = await self.store.find(
            QueryPlan(conditions=(Condition.eq("password_reset_token", token_hash),)),
        )
        expires = (
            _parse_datetime(records[0]["password_reset_expires"]) if records else None
        )
        if expires is None or expires <= datetime.now(UTC):
            LOGGER.debug("Refused an unknown or expired password reset token")
            msg = "Reset token is invalid or has expired"
            raise ValidationFailedError.single("token", msg)

        error = self.security_manager.validate_password(new_password)
        if error:
            raise ValidationFailedError.single("password", error)

        updated = await self.store.conditional_update(
            records[0]["id"],
            {"password_reset_token": token_hash},
            {
                "hashed_password": self.security_manager.hash_password(new_password),
                "password_reset_token": None,
                "password_reset_expires": None,
                "updated_at": datetime.now(UTC),
            },
        )
        user = self.to_user(updated)
        LOGGER.info("Password reset for %s", user.email)
        return user

    async def list_users(self, plan: QueryPlan) -> tuple[list[User], int]:
        """List users matching a resolved plan."""
        records, total = await self.store.find(plan)
        return [self.to_user(record) for record in records], total

    async def save(
        self,
        user: User,
        precondition: dict[str, Any] | None = None,
    ) -> User:
        """Persist the mutable account fields of a user.

        :param user: The user with updated fields
        :param precondition: Stored values that must still hold
        :raises ConflictError: If the precondition no longer holds
        """
        updated = await self.store.conditional_update(
            user.id,
            precondition or {},
            {
                "role": user.role,
                "status": user.status,
                "overrides": overrides_to_dict(user.overrides),
                "department": user.department,
                "phone": user.phone,
                "updated_at": datetime.now(UTC),
            },
        )
        return self.to_user(updated)

    async def delete(self, user_id: str) -> int:
        """Delete an account.

        :return: Number of rows deleted
        """
        return await self.store.delete(user_id)
