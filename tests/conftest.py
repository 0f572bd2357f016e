"""Shared fixtures: an in-memory database, wired services and test accounts."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from aiosqlite import Connection

from cmms.admin.models import ApprovalRequest
from cmms.auth import SecurityManager
from cmms.auth.models import RegistrationRequest
from cmms.common import AccountStatus, Role, User
from cmms.container import Services, build_services
from cmms.notifications import Notification, NotificationDispatcher
from cmms.store import open_database

TEST_SECRET_KEY = "test-secret-key-" * 4
TEST_PASSWORD = "Haslo123!"  # noqa: S105
ADMIN_EMAIL = "admin@cmms.test"


class RecordingNotifier:
    """Notifier that keeps every notification it receives."""

    def __init__(self) -> None:
        """Start with no notifications."""
        self.sent: list[Notification] = []

    async def notify(self, notification: Notification) -> None:
        """Record the notification."""
        self.sent.append(notification)


def make_user(
    user_id: str,
    role: Role | None,
    status: AccountStatus = AccountStatus.ACTIVE,
) -> User:
    """Build an in-memory user without touching the database."""
    return User(
        id=user_id,
        email=f"{user_id}@cmms.test",
        role=role,
        status=status,
        first_name=user_id.capitalize(),
        last_name="Testowy",
        created_at=datetime.now(UTC),
    )


@pytest.fixture
def security_manager() -> SecurityManager:
    """Security manager with cheap hashing."""
    return SecurityManager(secret_key=TEST_SECRET_KEY, bcrypt_rounds=4)


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Notifier recording deliveries."""
    return RecordingNotifier()


@pytest_asyncio.fixture
async def connection() -> AsyncGenerator[Connection, None]:
    """Fresh in-memory database with the schema installed."""
    async with open_database(":memory:") as db_connection:
        yield db_connection


@pytest_asyncio.fixture
async def services(
    connection: Connection,
    security_manager: SecurityManager,
    notifier: RecordingNotifier,
) -> AsyncGenerator[Services, None]:
    """Services wired over the in-memory database."""
    async with NotificationDispatcher(notifier) as notifications:
        yield build_services(connection, security_manager, notifications)


async def create_active_user(
    services: Services,
    name: str,
    role: Role,
) -> User:
    """Register an account and approve it with the given role."""
    pending = await services.user_queries.register(
        RegistrationRequest(
            email=f"{name}@cmms.test",
            password=TEST_PASSWORD,
            first_name=name.capitalize(),
            last_name="Testowy",
        ),
    )
    admin = make_user("system", Role.ADMIN)
    return await services.admin.approve(admin, pending.id, ApprovalRequest(role=role))


@pytest_asyncio.fixture
async def staff(services: Services) -> dict[str, User]:
    """One active account per role."""
    return {
        role.value: await create_active_user(services, role.value, role)
        for role in Role
    }
