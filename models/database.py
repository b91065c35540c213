"""
SQLAlchemy database models for the ruburu image-board.

This module defines all database models including Board, Post, Reply,
Image, Ban, Captcha, and the administrative User and Session tables.
"""

from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Boolean,
    Text,
    Interval,
    LargeBinary,
    ForeignKey,
    ForeignKeyConstraint,
    PrimaryKeyConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Board(Base):
    """
    Represents a board.

    ``next_post_id`` is the per-board post counter. It is only ever advanced
    by the thread manager, inside the transaction that inserts the post.
    """
    __tablename__ = 'boards'

    name = Column(String(255), primary_key=True)
    title = Column(Text, nullable=False)
    next_post_id = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<Board(name={self.name}, title={self.title})>"


class Image(Base):
    """
    Canonical record of a stored original and its thumbnail.

    Keyed by the 128-bit content digest of the original bytes, so identical
    uploads share one row.
    """
    __tablename__ = 'images'

    hash = Column(String(32), primary_key=True)  # md5 hex
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<Image(hash={self.hash})>"


class Post(Base):
    """
    Represents a single post.

    Identity is ``(board, id)``. A thread-opening post has ``thread == id``;
    every reply carries the id of its thread's opening post.
    """
    __tablename__ = 'posts'
    __table_args__ = (
        PrimaryKeyConstraint('id', 'board'),
        ForeignKeyConstraint(['thread', 'board'], ['posts.id', 'posts.board']),
        Index('ix_posts_board_thread', 'board', 'thread'),
    )

    id = Column(Integer, nullable=False)
    board = Column(String(255), ForeignKey('boards.name'), nullable=False)
    thread = Column(Integer, nullable=False)
    title = Column(String(255), nullable=True)
    author = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    sage = Column(Boolean, nullable=False, default=False)
    plaintext_content = Column(Text, nullable=True)
    html_content = Column(Text, nullable=False)
    posted_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    ip = Column(String(45), nullable=False)
    image = Column(String(32), ForeignKey('images.hash'), nullable=True)

    @property
    def is_thread_root(self) -> bool:
        return self.thread == self.id

    def __repr__(self):
        return f"<Post(board={self.board}, id={self.id}, thread={self.thread})>"


class Reply(Base):
    """
    Directed reply edge: post ``message`` was referenced by post ``reply``.

    ``reply_thread`` is the thread of the referencing post, kept so back-links
    can be rendered without another lookup.
    """
    __tablename__ = 'replies'
    __table_args__ = (
        PrimaryKeyConstraint(
            'message_id', 'message_board', 'reply_id', 'reply_board', 'reply_thread'
        ),
        ForeignKeyConstraint(['message_id', 'message_board'], ['posts.id', 'posts.board']),
        ForeignKeyConstraint(['reply_id', 'reply_board'], ['posts.id', 'posts.board']),
        ForeignKeyConstraint(['reply_thread', 'reply_board'], ['posts.id', 'posts.board']),
    )

    message_id = Column(Integer, nullable=False)
    message_board = Column(String(255), ForeignKey('boards.name'), nullable=False)
    reply_id = Column(Integer, nullable=False)
    reply_board = Column(String(255), ForeignKey('boards.name'), nullable=False)
    reply_thread = Column(Integer, nullable=False)

    def __repr__(self):
        return (
            f"<Reply({self.message_board}/{self.message_id} <- "
            f"{self.reply_board}/{self.reply_id})>"
        )


class Ban(Base):
    """
    An address or subnet ban.

    A ban is active while ``expires_at`` lies in the future. ``expires_at`` is
    stored so lookups can skip expired bans in SQL; it is derived from
    ``created_at + duration`` when not given.
    """
    __tablename__ = 'bans'

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip = Column(String(49), nullable=False)  # CIDR notation
    reason = Column(String(256), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    duration = Column(Interval, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.created_at is None:
            self.created_at = datetime.utcnow()
        if self.expires_at is None and self.duration is not None:
            self.expires_at = self.created_at + self.duration

    def __repr__(self):
        return f"<Ban(ip={self.ip}, expires_at={self.expires_at})>"


class Captcha(Base):
    """A single-use captcha challenge; the row is deleted when verified."""
    __tablename__ = 'captchas'

    id = Column(String(36), primary_key=True)  # UUID
    solution = Column(String(32), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<Captcha(id={self.id})>"


class User(Base):
    """An administrator or moderator account."""
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False, unique=True)
    password_hash = Column(LargeBinary, nullable=False)
    salt = Column(LargeBinary, nullable=False)
    level = Column(String(16), nullable=False)  # 'admin' or 'mod'

    def __repr__(self):
        return f"<User(name={self.name}, level={self.level})>"


class LoginSession(Base):
    """A logged-in administrative session."""
    __tablename__ = 'sessions'

    id = Column(String(36), primary_key=True)  # UUID
    uid = Column(String(36), ForeignKey('users.id'), nullable=False)
    logged_in_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<LoginSession(id={self.id}, uid={self.uid})>"
