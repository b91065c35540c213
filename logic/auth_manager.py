"""
Auth Manager for the ruburu image-board.

Manages administrator and moderator accounts and their login sessions.
Passwords are stored as scrypt hashes; sessions expire after a configured
lifetime.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.crypto_manager import CryptoManager
from core.db_manager import DBManager
from core.error_handler import (
    AuthenticationError,
    PermissionDenied,
    StorageFailure,
    ValidationError,
)
from models.database import User, LoginSession


logger = logging.getLogger(__name__)


# Higher rank includes the privileges of lower ranks
PRIVILEGE_RANK = {"mod": 1, "admin": 2}


@dataclass
class AdminSession:
    """An authenticated administrative session."""
    session_id: str
    user_id: str
    name: str
    level: str
    logged_in_at: datetime


class AuthManager:
    """
    Manages administrative authentication.

    Responsibilities:
    - Create users with hashed passwords
    - Verify credentials and open sessions
    - Resolve and expire sessions
    - Check privilege levels for administrative actions
    """

    def __init__(
        self,
        crypto_manager: CryptoManager,
        db_manager: DBManager,
        session_ttl: int = 86400,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Initialize AuthManager.

        Args:
            crypto_manager: CryptoManager instance for password hashing
            db_manager: DBManager instance for database operations
            session_ttl: Session lifetime in seconds
            clock: Returns the current UTC time
        """
        self.crypto = crypto_manager
        self.db = db_manager
        self.session_ttl = timedelta(seconds=session_ttl)
        self.clock = clock

    def create_user(self, name: str, password: str, level: str = "mod") -> User:
        """
        Create an administrative account.

        Args:
            name: Unique account name
            password: Plaintext password (at least 8 characters)
            level: 'admin' or 'mod'

        Returns:
            User: Created user

        Raises:
            ValidationError: If a field is invalid or the name is taken
        """
        if not name or len(name) > 255:
            raise ValidationError("User name must be 1-255 characters")
        if not password or len(password) < 8:
            raise ValidationError("Password must be at least 8 characters")
        if level not in PRIVILEGE_RANK:
            raise ValidationError(f"Unknown privilege level: {level}")

        password_hash, salt = self.crypto.hash_password(password)
        user = User(
            id=self.crypto.new_token(),
            name=name,
            password_hash=password_hash,
            salt=salt,
            level=level,
        )

        try:
            self.db.save_user(user)
        except IntegrityError:
            raise ValidationError(f"User {name} already exists")
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to create user: {e}")

        logger.info(f"Created {level} account {name}")
        return user

    def login(self, name: str, password: str) -> AdminSession:
        """
        Verify credentials and open a session.

        Unknown names and wrong passwords fail with the same error.

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        try:
            user = self.db.get_user_by_name(name)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to look up user: {e}")

        if user is None or not self.crypto.verify_password(password, user.password_hash, user.salt):
            logger.warning(f"Failed login for {name!r}")
            raise AuthenticationError()

        login_session = LoginSession(
            id=self.crypto.new_token(),
            uid=user.id,
            logged_in_at=self.clock(),
        )
        try:
            self.db.save_login_session(login_session)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to open session: {e}")

        logger.info(f"{user.name} logged in")
        return AdminSession(
            session_id=login_session.id,
            user_id=user.id,
            name=user.name,
            level=user.level,
            logged_in_at=login_session.logged_in_at,
        )

    def get_session(self, session_id: Optional[str]) -> Optional[AdminSession]:
        """
        Resolve a session id.

        Expired sessions are deleted and resolve to None.
        """
        if not session_id:
            return None

        try:
            login_session = self.db.get_login_session(session_id)
            if login_session is None:
                return None

            if login_session.logged_in_at + self.session_ttl <= self.clock():
                self.db.delete_login_session(session_id)
                return None

            user = self.db.get_user(login_session.uid)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to resolve session: {e}")

        if user is None:
            return None

        return AdminSession(
            session_id=login_session.id,
            user_id=user.id,
            name=user.name,
            level=user.level,
            logged_in_at=login_session.logged_in_at,
        )

    def require_privilege(self, session_id: Optional[str], level: str = "admin") -> AdminSession:
        """
        Resolve a session and check it holds at least ``level``.

        Raises:
            AuthenticationError: If there is no valid session
            PermissionDenied: If the session's level is too low
        """
        admin = self.get_session(session_id)
        if admin is None:
            raise AuthenticationError("Login required")
        if PRIVILEGE_RANK[admin.level] < PRIVILEGE_RANK[level]:
            raise PermissionDenied(f"{level} privilege required")
        return admin

    def logout(self, session_id: str) -> None:
        try:
            self.db.delete_login_session(session_id)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to close session: {e}")
