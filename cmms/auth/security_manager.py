"""Password hashing and JWT utility functions.

Includes password requirement checks, bcrypt hashing, and access token
creation and verification.
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import jwt
from bcrypt import checkpw, gensalt, hashpw

if TYPE_CHECKING:
    from cmms.common import User

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


@dataclass
class SecurityManager:
    """Manager for security configurations and validations.

    :param str secret_key: Secret key for JWT signing (generated if not provided)
    :param str algorithm: JWT signing algorithm
    :param int expire_minutes: Token expiration time in minutes
    :param int password_min_length: Minimum length for passwords
    :param int bcrypt_rounds: bcrypt cost factor
    :param int reset_expire_minutes: Lifetime of a password reset token
    """

    DEFAULT_JWT_ALGORITHM = "HS512"
    DEFAULT_TOKEN_EXPIRE_MINUTES = 60 * 24
    DEFAULT_PASSWORD_MIN_LENGTH = 6
    DEFAULT_BCRYPT_ROUNDS = 12
    DEFAULT_RESET_EXPIRE_MINUTES = 10
    MINIMUM_JWT_SECRET_KEY_LENGTH = 32

    secret_key: str | None = None
    algorithm: str = DEFAULT_JWT_ALGORITHM
    expire_minutes: int = DEFAULT_TOKEN_EXPIRE_MINUTES
    password_min_length: int = DEFAULT_PASSWORD_MIN_LENGTH
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS
    reset_expire_minutes: int = DEFAULT_RESET_EXPIRE_MINUTES

    def __post_init__(self) -> None:
        """Generate secret key if not provided."""
        if (
            self.secret_key is None
            or len(self.secret_key) < self.MINIMUM_JWT_SECRET_KEY_LENGTH
        ):
            self.secret_key = os.urandom(64).hex()

    def validate_password(self, password: str) -> str | None:
        """Validate password against configured requirements (just length for now).

        :param str password: The password to validate
        :return: An error message if the password does not meet requirements,
        None otherwise
        """
        if len(password) >= self.password_min_length:
            return None

        return f"Password must be at least {self.password_min_length} characters long"

    def hash_password(self, password: str) -> str:
        """Hash a password with a fresh salt.

        :param password: Plaintext password
        :return: The bcrypt hash as text
        """
        return hashpw(password.encode(), gensalt(rounds=self.bcrypt_rounds)).decode()

    @staticmethod
    def check_password(password: str, hashed_password: str) -> bool:
        """Check a plaintext password against a stored bcrypt hash."""
        return checkpw(password.encode(), hashed_password.encode())

    def create_access_token(self, user: User) -> str:
        """Create a new JWT access token for the user.

        Only the user id is embedded; role and status are reloaded on every
        request.

        :param User user: The User object for whom to create the token
        :return: A JWT access token as a string
        """
        now = datetime.now(UTC)
        payload = {
            "sub": user.id,
            "exp": now + timedelta(minutes=self.expire_minutes),
            "iat": now,
            "type": "access_token",
        }

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> str | None:
        """Verify and decode a JWT token, returning the user id.

        :param token: The JWT token string to verify
        :return: The user id if the token is valid, None otherwise
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
            )
        except jwt.ExpiredSignatureError:
            LOGGER.debug("Expired access token")
            return None
        except jwt.InvalidTokenError:
            LOGGER.debug("Invalid access token")
            return None

        if payload.get("type") != "access_token":
            return None

        user_id = payload.get("sub")
        if not isinstance(user_id, str) or not user_id:
            return None
        return user_id

    @staticmethod
    def hash_reset_token(token: str) -> str:
        """Return the stored form of a password reset token."""
        return hashlib.sha256(token.encode()).hexdigest()

    def create_reset_token(self) -> tuple[str, str]:
        """Create a random password reset token.

        :return: Tuple of (token for the user, hash to store)
        """
        token = os.urandom(32).hex()
        return token, self.hash_reset_token(token)
