"""
Tests for administrative accounts, sessions and the board manager.
"""

import pytest

from core.error_handler import (
    AuthenticationError,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from logic.board_manager import BoardManager


@pytest.fixture
def board_manager(db_manager, auth_manager):
    """Create a BoardManager instance."""
    return BoardManager(db_manager, auth_manager)


class TestCryptoManager:
    """Tests for password hashing."""

    def test_hash_and_verify(self, crypto_manager):
        key, salt = crypto_manager.hash_password("hunter22")

        assert crypto_manager.verify_password("hunter22", key, salt)
        assert not crypto_manager.verify_password("hunter23", key, salt)

    def test_salts_differ(self, crypto_manager):
        first, _ = crypto_manager.hash_password("same password")
        second, _ = crypto_manager.hash_password("same password")

        assert first != second


class TestAuthManager:
    """Tests for AuthManager."""

    def test_create_and_login(self, auth_manager):
        user = auth_manager.create_user("alice", "password1", level="admin")
        session = auth_manager.login("alice", "password1")

        assert session.user_id == user.id
        assert session.level == "admin"
        assert auth_manager.get_session(session.session_id).name == "alice"

    def test_password_not_stored_in_clear(self, auth_manager, db_manager):
        auth_manager.create_user("alice", "password1")

        user = db_manager.get_user_by_name("alice")
        assert b"password1" not in user.password_hash

    def test_wrong_password_and_unknown_user_look_alike(self, auth_manager):
        auth_manager.create_user("alice", "password1")

        with pytest.raises(AuthenticationError) as wrong:
            auth_manager.login("alice", "password2")
        with pytest.raises(AuthenticationError) as unknown:
            auth_manager.login("bob", "password1")

        assert str(wrong.value) == str(unknown.value)

    def test_duplicate_user(self, auth_manager):
        auth_manager.create_user("alice", "password1")

        with pytest.raises(ValidationError):
            auth_manager.create_user("alice", "password2")

    @pytest.mark.parametrize("name,password,level", [
        ("", "password1", "mod"),
        ("alice", "short", "mod"),
        ("alice", "password1", "janitor"),
    ])
    def test_create_user_validation(self, auth_manager, name, password, level):
        with pytest.raises(ValidationError):
            auth_manager.create_user(name, password, level)

    def test_session_expires(self, auth_manager, admin_session, clock):
        clock.advance(minutes=59)
        assert auth_manager.get_session(admin_session) is not None

        clock.advance(minutes=1)
        assert auth_manager.get_session(admin_session) is None

    def test_logout(self, auth_manager, admin_session):
        auth_manager.logout(admin_session)

        assert auth_manager.get_session(admin_session) is None

    def test_require_privilege(self, auth_manager, admin_session, mod_session):
        assert auth_manager.require_privilege(admin_session, "mod").name == "root"
        assert auth_manager.require_privilege(mod_session, "mod").name == "janitor"

        with pytest.raises(PermissionDenied):
            auth_manager.require_privilege(mod_session, "admin")
        with pytest.raises(AuthenticationError):
            auth_manager.require_privilege("no-such-session", "mod")


class TestBoardManager:
    """Tests for BoardManager."""

    def test_create_board(self, board_manager, admin_session):
        board = board_manager.create_board("tech", " Technology ", admin_session)

        assert board.name == "tech"
        assert board.title == "Technology"
        assert board_manager.get_board("tech").next_post_id == 0

    def test_create_board_requires_admin(self, board_manager, mod_session):
        with pytest.raises(PermissionDenied):
            board_manager.create_board("tech", "Technology", mod_session)

    def test_create_board_requires_login(self, board_manager):
        with pytest.raises(AuthenticationError):
            board_manager.create_board("tech", "Technology", None)

    @pytest.mark.parametrize("name,title", [
        ("", "Title"),
        ("has space", "Title"),
        ("x" * 33, "Title"),
        ("ok", "  "),
    ])
    def test_create_board_validation(self, board_manager, admin_session, name, title):
        with pytest.raises(ValidationError):
            board_manager.create_board(name, title, admin_session)

    def test_duplicate_board(self, board_manager, admin_session):
        board_manager.create_board("tech", "Technology", admin_session)

        with pytest.raises(ValidationError):
            board_manager.create_board("tech", "Again", admin_session)

    def test_list_and_get(self, board_manager, admin_session):
        board_manager.create_board("v", "Games", admin_session)
        board_manager.create_board("a", "Anime", admin_session)

        assert [b.name for b in board_manager.get_all_boards()] == ["a", "v"]
        with pytest.raises(NotFound):
            board_manager.get_board("nope")
