"""
Board Manager for the ruburu image-board.

Manages board listing, lookup, and administrative board creation.
"""

import logging
import re
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.db_manager import DBManager
from core.error_handler import NotFound, StorageFailure, ValidationError
from logic.auth_manager import AuthManager
from models.database import Board


logger = logging.getLogger(__name__)


# Board names appear in URLs
BOARD_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,32}$")


class BoardManager:
    """
    Manages board operations.

    Responsibilities:
    - List boards and look them up by name
    - Create boards on behalf of an administrator
    """

    def __init__(self, db_manager: DBManager, auth_manager: AuthManager):
        """
        Initialize BoardManager.

        Args:
            db_manager: DBManager instance for database operations
            auth_manager: AuthManager instance for privilege checks
        """
        self.db = db_manager
        self.auth = auth_manager

    def create_board(self, name: str, title: str, session_id: Optional[str]) -> Board:
        """
        Create a new board with an empty post counter.

        Args:
            name: Board name (1-32 letters, digits, '_' or '-')
            title: Human-readable title
            session_id: Administrative session creating the board

        Returns:
            Board: Created board object

        Raises:
            AuthenticationError: If the session is missing or expired
            PermissionDenied: If the session is not an admin
            ValidationError: If a field is invalid or the name is taken
        """
        admin = self.auth.require_privilege(session_id, "admin")

        if not name or not BOARD_NAME_RE.match(name):
            raise ValidationError("Board name must be 1-32 letters, digits, '_' or '-'")
        if not title or not title.strip():
            raise ValidationError("Board title must not be empty")

        board = Board(name=name, title=title.strip(), next_post_id=0)

        try:
            self.db.save_board(board)
        except IntegrityError:
            raise ValidationError(f"Board /{name}/ already exists")
        except SQLAlchemyError as e:
            raise StorageFailure(f"Board creation failed: {e}")

        logger.info(f"{admin.name} created board /{name}/ ({board.title})")
        return board

    def get_all_boards(self) -> List[Board]:
        """
        Retrieve all boards ordered by name.

        Raises:
            StorageFailure: If retrieval fails
        """
        try:
            return self.db.get_all_boards()
        except SQLAlchemyError as e:
            raise StorageFailure(f"Get boards failed: {e}")

    def get_board(self, name: str) -> Board:
        """
        Retrieve a board by name.

        Raises:
            NotFound: If the board does not exist
            StorageFailure: If retrieval fails
        """
        try:
            board = self.db.get_board(name)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Get board failed: {e}")

        if board is None:
            raise NotFound(f"Board /{name}/ not found")
        return board
