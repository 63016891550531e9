"""Bearer credential issuing and resolution.

Credentials are HS256 JWTs carrying a ``userId`` claim. Resolution follows
the same three failure cases on every surface:

1. No token                          -> "Authentication error: No token provided"
2. Bad signature / expired / garbled -> "Authentication error: Invalid token"
3. Valid token, unknown user id      -> "Authentication error: User not found"

The identity returned by ``resolve`` is a snapshot. WebSocket connections
keep it for their whole lifetime; a revoked user is only rejected on the next
connection attempt.
"""
import logging
from datetime import timedelta
from typing import Optional

import duckdb
import jwt

from threadline.chat.schemas import User
from threadline.config import AppSettings, get_config
from threadline.database import Database, utcnow
from threadline.errors import AuthError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

NO_TOKEN = "Authentication error: No token provided"
INVALID_TOKEN = "Authentication error: Invalid token"
USER_NOT_FOUND = "Authentication error: User not found"


class UserDirectory:
    """Read access to the users table, plus creation for provisioning.

    Registration and password handling live outside this service; the
    directory only stores the public identity fields.
    """

    def __init__(self, db: Optional[Database] = None) -> None:
        self._db = db

    @property
    def db(self) -> Database:
        return self._db if self._db is not None else Database.get_instance()

    def get_user(self, user_id: int) -> Optional[User]:
        row = self.db.fetchone(
            "SELECT id, username, email FROM users WHERE id = ?", [user_id]
        )
        if row is None:
            return None
        return User(id=row[0], username=row[1], email=row[2])

    def create_user(self, username: str, email: str) -> User:
        """Insert a user row.

        Raises:
            ValidationError: Username or email already taken.
        """
        try:
            with self.db.transaction() as conn:
                row = conn.execute(
                    """
                    INSERT INTO users (username, email, created_at)
                    VALUES (?, ?, ?)
                    RETURNING id, username, email
                    """,
                    [username, email.lower().strip(), utcnow()],
                ).fetchone()
        except duckdb.ConstraintException as exc:
            raise ValidationError("Username or email already exists") from exc
        except duckdb.Error as exc:
            raise PersistenceError("Failed to create user") from exc
        logger.info("Created user %s (%s)", row[0], username)
        return User(id=row[0], username=row[1], email=row[2])


def issue_token(
    user_id: int,
    expires_in: Optional[timedelta] = None,
    settings: Optional[AppSettings] = None,
) -> str:
    """Mint a bearer credential for ``user_id``."""
    settings = settings or get_config()
    if expires_in is None:
        expires_in = timedelta(minutes=settings.auth.token_expire_minutes)
    now = utcnow()
    payload = {
        "userId": user_id,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(
        payload,
        settings.secrets.jwt.secret_key,
        algorithm=settings.auth.algorithm,
    )


class IdentityResolver:
    """Turns a presented credential into a User or raises AuthError."""

    def __init__(
        self,
        users: Optional[UserDirectory] = None,
        settings: Optional[AppSettings] = None,
    ) -> None:
        self.users = users or UserDirectory()
        self._settings = settings

    @property
    def settings(self) -> AppSettings:
        return self._settings or get_config()

    def resolve(self, credential: Optional[str]) -> User:
        """Validate a bearer credential.

        Args:
            credential: Raw JWT string, or None/empty when absent.

        Returns:
            The identity snapshot of the token's user.

        Raises:
            AuthError: With one of the three fixed messages.
        """
        if not credential:
            raise AuthError(NO_TOKEN)

        try:
            claims = jwt.decode(
                credential,
                self.settings.secrets.jwt.secret_key,
                algorithms=[self.settings.auth.algorithm],
                options={"require": ["exp", "userId"]},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.info("Rejected expired token")
            raise AuthError(INVALID_TOKEN) from exc
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected invalid token: %s", exc)
            raise AuthError(INVALID_TOKEN) from exc

        user_id = claims.get("userId")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise AuthError(INVALID_TOKEN)

        user = self.users.get_user(user_id)
        if user is None:
            raise AuthError(USER_NOT_FOUND)
        return user


# Global instances shared by the WebSocket endpoint and the REST dependency
users = UserDirectory()
identity_resolver = IdentityResolver(users)
