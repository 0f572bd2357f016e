"""Tests for the security manager and account queries."""

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from cmms.auth import SecurityManager
from cmms.auth.models import RegistrationRequest
from cmms.common import (
    AccountInactiveError,
    AccountStatus,
    NotFoundError,
    Role,
    UnauthenticatedError,
    ValidationFailedError,
)
from cmms.container import Services
from conftest import TEST_PASSWORD, TEST_SECRET_KEY, make_user


def registration(
    email: str = "jan.kowalski@cmms.test",
    password: str = TEST_PASSWORD,
) -> RegistrationRequest:
    """Build a registration payload."""
    return RegistrationRequest(
        email=email,
        password=password,
        first_name="Jan",
        last_name="Kowalski",
        department="Utrzymanie ruchu",
    )


class TestSecurityManager:
    """Test suite for password and token handling."""

    def test_short_secret_is_replaced(self) -> None:
        """Test that a short secret key is replaced with a random one."""
        manager = SecurityManager(secret_key="short")
        assert manager.secret_key != "short"
        assert len(manager.secret_key) >= SecurityManager.MINIMUM_JWT_SECRET_KEY_LENGTH

    def test_password_length(self, security_manager: SecurityManager) -> None:
        """Test the minimum password length."""
        assert security_manager.validate_password("abc") is not None
        assert security_manager.validate_password(TEST_PASSWORD) is None

    def test_hash_and_check(self, security_manager: SecurityManager) -> None:
        """Test bcrypt hashing."""
        hashed = security_manager.hash_password(TEST_PASSWORD)
        assert hashed != TEST_PASSWORD
        assert security_manager.check_password(TEST_PASSWORD, hashed)
        assert not security_manager.check_password("wrong-password", hashed)

    def test_token_carries_only_user_id(self, security_manager: SecurityManager) -> None:
        """Test that tokens identify the user and nothing else."""
        token = security_manager.create_access_token(make_user("anna", Role.ADMIN))
        payload = jwt.decode(token, TEST_SECRET_KEY, algorithms=["HS512"])

        assert payload["sub"] == "anna"
        assert "role" not in payload
        assert security_manager.verify_token(token) == "anna"

    def test_expired_token(self, security_manager: SecurityManager) -> None:
        """Test that expired tokens are refused."""
        token = jwt.encode(
            {
                "sub": "anna",
                "type": "access_token",
                "exp": datetime.now(UTC) - timedelta(minutes=1),
            },
            TEST_SECRET_KEY,
            algorithm="HS512",
        )
        assert security_manager.verify_token(token) is None

    def test_foreign_token(self, security_manager: SecurityManager) -> None:
        """Test that tokens signed with another key are refused."""
        other = SecurityManager(secret_key="another-secret-key-" * 4)
        token = other.create_access_token(make_user("anna", Role.ADMIN))
        assert security_manager.verify_token(token) is None
        assert security_manager.verify_token("not-a-token") is None


@pytest.mark.asyncio
class TestUserQueries:
    """Test suite for registration and login."""

    async def test_registration_is_pending_without_role(self, services: Services) -> None:
        """Test that new accounts wait for approval."""
        user = await services.user_queries.register(registration())

        assert user.status == AccountStatus.PENDING
        assert user.role is None
        assert user.department == "Utrzymanie ruchu"

    async def test_email_is_normalized_and_unique(self, services: Services) -> None:
        """Test duplicate detection after lower-casing."""
        await services.user_queries.register(registration())
        with pytest.raises(ValidationFailedError) as exc_info:
            await services.user_queries.register(registration("  JAN.Kowalski@CMMS.test "))
        assert exc_info.value.errors[0].field == "email"

    async def test_weak_password_rejected(self, services: Services) -> None:
        """Test the password length rule at registration."""
        with pytest.raises(ValidationFailedError) as exc_info:
            await services.user_queries.register(registration(password="abc"))
        assert exc_info.value.errors[0].field == "password"

    async def test_pending_account_cannot_log_in(self, services: Services) -> None:
        """Test that correct credentials of a pending account are refused."""
        await services.user_queries.register(registration())
        with pytest.raises(AccountInactiveError):
            await services.user_queries.authenticate("jan.kowalski@cmms.test", TEST_PASSWORD)

    async def test_wrong_password(self, services: Services) -> None:
        """Test a failed login."""
        with pytest.raises(UnauthenticatedError):
            await services.user_queries.authenticate("nobody@cmms.test", TEST_PASSWORD)

    async def test_login_records_time(
        self,
        services: Services,
        staff: dict,
    ) -> None:
        """Test that a login stamps last_login."""
        user = await services.user_queries.authenticate(staff["manager"].email, TEST_PASSWORD)
        assert user.role == Role.MANAGER
        assert user.last_login is not None

    async def test_seed_admin_only_into_empty_database(self, services: Services) -> None:
        """Test that the first admin is created once."""
        admin = await services.user_queries.seed_admin(("Admin@CMMS.test", TEST_PASSWORD))
        assert admin is not None
        assert admin.email == "admin@cmms.test"
        assert admin.role == Role.ADMIN
        assert admin.is_active

        assert await services.user_queries.seed_admin(("other@cmms.test", TEST_PASSWORD)) is None
        assert await services.user_queries.count_users() == 1

    async def test_change_password(self, services: Services, staff: dict) -> None:
        """Test changing a password after checking the current one."""
        user = staff["technician"]
        with pytest.raises(ValidationFailedError):
            await services.user_queries.change_password(user, "wrong-one", "Nowe-haslo-1")

        await services.user_queries.change_password(user, TEST_PASSWORD, "Nowe-haslo-1")
        await services.user_queries.authenticate(user.email, "Nowe-haslo-1")


@pytest.mark.asyncio
class TestPasswordReset:
    """Test suite for resetting a forgotten password."""

    async def test_reset_with_token(self, services: Services, staff: dict) -> None:
        """Test that a reset token sets a new password once."""
        user = staff["technician"]
        account, token = await services.user_queries.request_password_reset(
            user.email.upper(),
        )
        assert account.id == user.id

        record = await services.user_queries.store.find_by_id(user.id)
        assert record is not None
        assert record["password_reset_token"] != token
        assert record["password_reset_token"] == SecurityManager.hash_reset_token(token)

        await services.user_queries.reset_password(token, "Nowe-haslo-1")
        await services.user_queries.authenticate(user.email, "Nowe-haslo-1")
        with pytest.raises(UnauthenticatedError):
            await services.user_queries.authenticate(user.email, TEST_PASSWORD)

        with pytest.raises(ValidationFailedError) as exc_info:
            await services.user_queries.reset_password(token, "Inne-haslo-2")
        assert exc_info.value.errors[0].field == "token"

    async def test_new_request_replaces_token(
        self,
        services: Services,
        staff: dict,
    ) -> None:
        """Test that only the latest token is accepted."""
        email = staff["operator"].email
        _, first = await services.user_queries.request_password_reset(email)
        _, second = await services.user_queries.request_password_reset(email)

        with pytest.raises(ValidationFailedError):
            await services.user_queries.reset_password(first, "Nowe-haslo-1")
        await services.user_queries.reset_password(second, "Nowe-haslo-1")

    async def test_expired_token(self, services: Services, staff: dict) -> None:
        """Test that a token past its lifetime is refused."""
        user = staff["operator"]
        _, token = await services.user_queries.request_password_reset(user.email)
        await services.user_queries.store.conditional_update(
            user.id,
            {},
            {"password_reset_expires": datetime.now(UTC) - timedelta(minutes=1)},
        )

        with pytest.raises(ValidationFailedError) as exc_info:
            await services.user_queries.reset_password(token, "Nowe-haslo-1")
        assert exc_info.value.errors[0].field == "token"

    async def test_weak_password_keeps_token(
        self,
        services: Services,
        staff: dict,
    ) -> None:
        """Test that a refused password does not use up the token."""
        _, token = await services.user_queries.request_password_reset(
            staff["operator"].email,
        )
        with pytest.raises(ValidationFailedError) as exc_info:
            await services.user_queries.reset_password(token, "abc")
        assert exc_info.value.errors[0].field == "password"

        await services.user_queries.reset_password(token, "Nowe-haslo-1")

    async def test_unknown_email(self, services: Services) -> None:
        """Test requesting a reset for an account that does not exist."""
        with pytest.raises(NotFoundError):
            await services.user_queries.request_password_reset("nobody@cmms.test")
