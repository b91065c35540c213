"""
Database manager for the ruburu image-board.

This module provides the DBManager class which handles all database operations
including initialization, queries, and transaction management.
"""

from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, event, update, delete, select, func, or_
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import IntegrityError

from models.database import (
    Base,
    Board,
    Post,
    Reply,
    Image,
    Ban,
    Captcha,
    User,
    LoginSession,
)


class DBManager:
    """
    Manages database operations for the image-board.

    Read helpers open their own session and return detached objects.
    Helpers that take a ``session`` argument run inside the caller's
    transaction; the post sequencer relies on that to keep the counter
    increment and the post insert in one commit.
    """

    def __init__(self, db_path: Path, busy_timeout: float = 30.0):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the SQLite database file
            busy_timeout: Seconds a writer waits for a competing writer's lock
        """
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self.engine = None
        self.SessionLocal = None

    def initialize_database(self):
        """
        Initialize the database by creating the schema if it doesn't exist.

        Creates all tables defined in the models and sets up the session factory.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        db_url = f"sqlite:///{self.db_path}"
        self.engine = create_engine(
            db_url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": self.busy_timeout}
        )

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

        Base.metadata.create_all(self.engine)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def get_session(self) -> Session:
        """
        Context manager for database sessions with automatic rollback on error.

        Yields:
            Session: SQLAlchemy session object

        Example:
            with db_manager.get_session() as session:
                session.add(board)
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Board operations

    def save_board(self, board: Board) -> None:
        """
        Save a board to the database.

        Args:
            board: Board object to save

        Raises:
            IntegrityError: If a board with the same name already exists
        """
        with self.get_session() as session:
            session.add(board)

    def get_all_boards(self) -> List[Board]:
        """
        Retrieve all boards ordered by name.

        Returns:
            List of Board objects
        """
        with self.get_session() as session:
            boards = session.query(Board).order_by(Board.name.asc()).all()
            session.expunge_all()
            return boards

    def get_board(self, name: str) -> Optional[Board]:
        """
        Retrieve a board by its name.

        Args:
            name: Unique board name

        Returns:
            Board object if found, None otherwise
        """
        with self.get_session() as session:
            board = session.get(Board, name)
            if board:
                session.expunge(board)
            return board

    # Post sequencing (caller's transaction)

    def allocate_post_id(self, session: Session, board: str) -> Optional[int]:
        """
        Advance the board's post counter and return the new value.

        This is a single ``UPDATE ... RETURNING`` statement, so it takes the
        write lock and must be the first write of the transaction.

        Args:
            session: Open session owning the transaction
            board: Board name

        Returns:
            The allocated post id, or None if the board does not exist
        """
        stmt = (
            update(Board)
            .where(Board.name == board)
            .values(next_post_id=Board.next_post_id + 1)
            .returning(Board.next_post_id)
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).scalar_one_or_none()

    def get_thread_root(self, session: Session, board: str, thread_id: int) -> Optional[Post]:
        """Return the opening post of a thread, or None."""
        return session.query(Post).filter(
            Post.board == board,
            Post.id == thread_id,
            Post.thread == thread_id,
        ).first()

    def find_post_threads(self, session: Session, board: str, post_ids: Iterable[int]) -> Dict[int, int]:
        """
        Look up which of the given post ids exist on a board.

        Args:
            session: Open session
            board: Board name
            post_ids: Candidate post ids

        Returns:
            Mapping of existing post id to the id of its thread
        """
        post_ids = list(post_ids)
        if not post_ids:
            return {}
        rows = session.execute(
            select(Post.id, Post.thread).where(Post.board == board, Post.id.in_(post_ids))
        ).all()
        return {row.id: row.thread for row in rows}

    def add_post_with_replies(self, session: Session, post: Post, referenced_ids: Iterable[int]) -> None:
        """
        Insert a post and one reply edge per post it references.

        Args:
            session: Open session owning the transaction
            post: New post
            referenced_ids: Ids (on the post's board) the post's text links to
        """
        session.add(post)
        session.flush()
        for message_id in referenced_ids:
            session.add(Reply(
                message_id=message_id,
                message_board=post.board,
                reply_id=post.id,
                reply_board=post.board,
                reply_thread=post.thread,
            ))
        session.flush()

    # Post queries

    def get_threads_for_board(self, board: str) -> List[Post]:
        """
        Retrieve the opening post of every thread on a board.

        Threads are ordered by bump time, most recent first. The bump time is
        the latest ``posted_at`` among the opening post and all replies not
        marked sage.

        Args:
            board: Board name

        Returns:
            List of thread-opening Post objects
        """
        with self.get_session() as session:
            bumps = (
                select(Post.thread.label("thread"), func.max(Post.posted_at).label("bumped_at"))
                .where(Post.board == board, or_(Post.thread == Post.id, Post.sage.is_(False)))
                .group_by(Post.thread)
                .subquery()
            )
            threads = (
                session.query(Post)
                .join(bumps, Post.id == bumps.c.thread)
                .filter(Post.board == board, Post.thread == Post.id)
                .order_by(bumps.c.bumped_at.desc(), Post.id.desc())
                .all()
            )
            session.expunge_all()
            return threads

    def get_posts_for_thread(self, board: str, thread_id: int) -> List[Post]:
        """
        Retrieve all posts for a specific thread.

        Args:
            board: Board name
            thread_id: Id of the thread's opening post

        Returns:
            List of Post objects ordered by id (oldest first)
        """
        with self.get_session() as session:
            posts = session.query(Post).filter(
                Post.board == board,
                Post.thread == thread_id,
            ).order_by(Post.id.asc()).all()
            session.expunge_all()
            return posts

    def get_post(self, board: str, post_id: int) -> Optional[Post]:
        """
        Retrieve a post by its board-scoped id.

        Returns:
            Post object if found, None otherwise
        """
        with self.get_session() as session:
            post = session.get(Post, (post_id, board))
            if post:
                session.expunge(post)
            return post

    def get_replies_to(self, board: str, post_id: int) -> List[Reply]:
        """
        Retrieve the reply edges pointing at a post.

        Args:
            board: Board of the referenced post
            post_id: Id of the referenced post

        Returns:
            List of Reply objects ordered by the referencing post's id
        """
        with self.get_session() as session:
            replies = session.query(Reply).filter(
                Reply.message_board == board,
                Reply.message_id == post_id,
            ).order_by(Reply.reply_id.asc()).all()
            session.expunge_all()
            return replies

    # Image operations

    def image_exists(self, digest: str) -> bool:
        """Return True if an image record with this digest exists."""
        with self.get_session() as session:
            return session.get(Image, digest) is not None

    def save_image(self, digest: str) -> bool:
        """
        Record a stored image.

        A concurrent upload of identical content may have inserted the row
        first; that case is treated as success.

        Args:
            digest: Content digest of the original

        Returns:
            True if this call inserted the row, False if it already existed
        """
        try:
            with self.get_session() as session:
                session.add(Image(hash=digest))
            return True
        except IntegrityError:
            return False

    # Ban operations

    def save_ban(self, ban: Ban) -> None:
        """Save a ban to the database."""
        with self.get_session() as session:
            session.add(ban)

    def get_bans_active_at(self, moment: datetime) -> List[Ban]:
        """
        Retrieve bans in effect at ``moment``, newest first.

        A ban is in effect when it was created at or before ``moment`` and
        expires after it.
        """
        with self.get_session() as session:
            bans = session.query(Ban).filter(
                Ban.created_at <= moment,
                Ban.expires_at > moment,
            ).order_by(Ban.created_at.desc(), Ban.id.desc()).all()
            session.expunge_all()
            return bans

    # Captcha operations

    def save_captcha(self, captcha: Captcha) -> None:
        """Save a captcha challenge to the database."""
        with self.get_session() as session:
            session.add(captcha)

    def consume_captcha(self, captcha_id: str) -> Optional[str]:
        """
        Delete a captcha challenge and return its solution.

        The delete and the read are one statement, so two concurrent
        attempts on the same challenge cannot both see the solution.

        Returns:
            The stored solution, or None if the challenge does not exist
        """
        with self.get_session() as session:
            stmt = delete(Captcha).where(Captcha.id == captcha_id).returning(Captcha.solution)
            return session.execute(stmt).scalar_one_or_none()

    def delete_captchas_before(self, cutoff: datetime) -> int:
        """Delete challenges issued before ``cutoff``. Returns the count."""
        with self.get_session() as session:
            result = session.execute(delete(Captcha).where(Captcha.created_at < cutoff))
            return result.rowcount

    # User and session operations

    def save_user(self, user: User) -> None:
        """
        Save a user to the database.

        Raises:
            IntegrityError: If the user name is taken
        """
        with self.get_session() as session:
            session.add(user)

    def get_user_by_name(self, name: str) -> Optional[User]:
        """Retrieve a user by name."""
        with self.get_session() as session:
            user = session.query(User).filter(User.name == name).first()
            if user:
                session.expunge(user)
            return user

    def get_user(self, user_id: str) -> Optional[User]:
        """Retrieve a user by id."""
        with self.get_session() as session:
            user = session.get(User, user_id)
            if user:
                session.expunge(user)
            return user

    def save_login_session(self, login_session: LoginSession) -> None:
        """Save a login session."""
        with self.get_session() as session:
            session.add(login_session)

    def get_login_session(self, session_id: str) -> Optional[LoginSession]:
        """Retrieve a login session by id."""
        with self.get_session() as session:
            login_session = session.get(LoginSession, session_id)
            if login_session:
                session.expunge(login_session)
            return login_session

    def delete_login_session(self, session_id: str) -> None:
        """Delete a login session if it exists."""
        with self.get_session() as session:
            session.execute(delete(LoginSession).where(LoginSession.id == session_id))
