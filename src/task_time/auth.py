"""
Signup, login and bearer-token verification.

Passwords are hashed with bcrypt; tokens are HS256 JWTs carrying the user
id and an expiry (30 days unless configured otherwise).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import bcrypt
import jwt

from .errors import AuthError, ValidationError
from .schema import User
from .store import UserStore

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
BCRYPT_ROUNDS = 10
JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


def create_token(
    user_id: int,
    secret: str,
    *,
    expires_days: int = 30,
    now: Optional[datetime] = None,
) -> str:
    """Sign a token whose payload carries the user id and an expiry."""
    issued = now or datetime.now(timezone.utc)
    payload = {
        "id": str(user_id),
        "iat": issued,
        "exp": issued + timedelta(days=expires_days),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str) -> int:
    """
    Return the user id encoded in `token`.

    Raises AuthError for expired, tampered or malformed tokens.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token expired") from e
    except jwt.PyJWTError as e:
        raise AuthError("Not authorized") from e

    try:
        return int(payload["id"])
    except (KeyError, TypeError, ValueError) as e:
        raise AuthError("Not authorized") from e


class AuthService:
    """Account operations on top of a UserStore."""

    def __init__(self, users: UserStore, secret: str, expires_days: int = 30) -> None:
        self.users = users
        self._secret = secret
        self._expires_days = expires_days

    def _issue(self, user: User) -> str:
        return create_token(user.id, self._secret, expires_days=self._expires_days)

    def signup(self, email: str, password: str) -> Tuple[str, User]:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )
        if self.users.get_by_email(email) is not None:
            raise ValidationError("User already exists")

        user = self.users.create_user(email, hash_password(password))
        return self._issue(user), user

    def login(self, email: str, password: str) -> Tuple[str, User]:
        user = self.users.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            raise AuthError("Invalid credentials")
        return self._issue(user), user

    def authenticate(self, token: Optional[str]) -> User:
        """Resolve a bearer token to its user, or raise AuthError."""
        if not token:
            raise AuthError("Not authorized")
        user_id = decode_token(token, self._secret)
        user = self.users.get_by_id(user_id)
        if user is None:
            raise AuthError("User not found")
        return user
