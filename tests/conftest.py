"""Shared fixtures for the ruburu test suite."""

import io
from datetime import datetime, timedelta

import pytest
from PIL import Image

from core.crypto_manager import CryptoManager
from core.db_manager import DBManager
from logic.auth_manager import AuthManager
from models.database import Board


class FakeClock:
    """A controllable replacement for ``datetime.utcnow``."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_png(width: int = 64, height: int = 48, color=(200, 30, 30)) -> bytes:
    """Encode a solid-colour PNG in memory."""
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def clock():
    """A fake clock starting at a fixed moment."""
    return FakeClock()


@pytest.fixture
def db_manager(tmp_path):
    """Create and initialize a DBManager on a temporary database."""
    manager = DBManager(tmp_path / "test.db")
    manager.initialize_database()
    return manager


@pytest.fixture
def board(db_manager):
    """A board named 'b' with an empty post counter."""
    db_manager.save_board(Board(name="b", title="Random", next_post_id=0))
    return "b"


@pytest.fixture
def image_hash(db_manager):
    """An ``images`` row that posts can reference."""
    digest = "0" * 32
    db_manager.save_image(digest)
    return digest


@pytest.fixture
def crypto_manager():
    """A CryptoManager with a cheap scrypt cost for tests."""
    return CryptoManager(n=2**4, r=8, p=1)


@pytest.fixture
def auth_manager(crypto_manager, db_manager, clock):
    """Create an AuthManager driven by the fake clock."""
    return AuthManager(crypto_manager, db_manager, session_ttl=3600, clock=clock)


@pytest.fixture
def admin_session(auth_manager):
    """Session id of a logged-in administrator."""
    auth_manager.create_user("root", "correct horse", level="admin")
    return auth_manager.login("root", "correct horse").session_id


@pytest.fixture
def mod_session(auth_manager):
    """Session id of a logged-in moderator."""
    auth_manager.create_user("janitor", "battery staple", level="mod")
    return auth_manager.login("janitor", "battery staple").session_id


@pytest.fixture
def png_factory():
    """Return ``make_png`` so tests can build distinct images."""
    return make_png
