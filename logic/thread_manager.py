"""
Thread Manager for the ruburu image-board.

Manages post creation and thread retrieval:
- Allocates per-board sequential post ids inside the post's transaction
- Renders post markup and records reply edges
- Lists threads by bump time and returns thread contents
- Answers "which posts reference this one" for back-links
"""

import ipaddress
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.db_manager import DBManager
from core.error_handler import (
    BoardError,
    ConstraintViolation,
    MissingImage,
    NotFound,
    StorageFailure,
    ValidationError,
)
from core.image_store import ImageRef
from core.markup import MarkupRenderer, post_url
from models.database import Post


logger = logging.getLogger(__name__)


MAX_FIELD_LENGTH = 255
MAX_CONTENT_LENGTH = 65535


@dataclass
class PostFields:
    """User-supplied fields of a new post."""
    ip: str
    title: Optional[str] = None
    author: Optional[str] = None
    email: Optional[str] = None
    content: Optional[str] = None
    sage: bool = False

    def normalized(self) -> "PostFields":
        """
        Return a copy with blank strings turned into None, after validation.

        Raises:
            ValidationError: If a field is too long or the address is invalid
        """
        values = {}
        for name, limit in (("title", MAX_FIELD_LENGTH), ("author", MAX_FIELD_LENGTH),
                            ("email", MAX_FIELD_LENGTH), ("content", MAX_CONTENT_LENGTH)):
            value = getattr(self, name)
            if value is not None and not value.strip():
                value = None
            if value is not None and len(value) > limit:
                raise ValidationError(f"Field {name} must be at most {limit} characters")
            values[name] = value

        try:
            ip = str(ipaddress.ip_address(self.ip))
        except ValueError:
            raise ValidationError(f"Invalid address: {self.ip!r}")

        return replace(self, ip=ip, sage=bool(self.sage), **values)


@dataclass(frozen=True)
class ReplyRef:
    """A post that references another post."""
    id: int
    board: str
    thread: int

    @property
    def url(self) -> str:
        return post_url(self.board, self.thread, self.id)


@dataclass
class PostView:
    """A post bundled with what is needed to display it."""
    post: Post
    replies: List[ReplyRef] = field(default_factory=list)
    image: Optional[ImageRef] = None


class ThreadManager:
    """
    Manages thread and post operations.

    Responsibilities:
    - Create threads and replies with gapless per-board ids
    - Render markup and persist reply edges in the same transaction
    - Retrieve threads ordered by bump time and posts of a thread
    - Retrieve back-links for a post
    """

    def __init__(
        self,
        db_manager: DBManager,
        renderer: Optional[MarkupRenderer] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Initialize ThreadManager.

        Args:
            db_manager: DBManager instance for database operations
            renderer: MarkupRenderer for post bodies
            clock: Returns the current UTC time, used for ``posted_at``
        """
        self.db = db_manager
        self.renderer = renderer or MarkupRenderer()
        self.clock = clock

    def create_thread(self, board: str, fields: PostFields, image: Optional[ImageRef]) -> int:
        """
        Create a thread-opening post.

        Args:
            board: Board name
            fields: Post fields
            image: Stored image reference (required for threads)

        Returns:
            int: The new post id, which is also the thread id

        Raises:
            MissingImage: If no image is given
            NotFound: If the board does not exist
            ValidationError: If a field is invalid
            StorageFailure: If the database fails
        """
        if image is None:
            raise MissingImage()
        return self._create_post(board, None, fields, image)

    def create_reply(
        self,
        board: str,
        thread_id: int,
        fields: PostFields,
        image: Optional[ImageRef] = None,
    ) -> int:
        """
        Create a reply in an existing thread.

        Args:
            board: Board name
            thread_id: Id of the thread's opening post
            fields: Post fields
            image: Optional stored image reference

        Returns:
            int: The new post id

        Raises:
            NotFound: If the board does not exist
            ConstraintViolation: If the thread does not exist on the board
            ValidationError: If a field is invalid
            StorageFailure: If the database fails
        """
        if isinstance(thread_id, bool) or not isinstance(thread_id, int) or thread_id < 1:
            raise ConstraintViolation(f"Invalid thread id: {thread_id!r}")
        return self._create_post(board, thread_id, fields, image)

    def _create_post(
        self,
        board: str,
        thread_id: Optional[int],
        fields: PostFields,
        image: Optional[ImageRef],
    ) -> int:
        """
        Allocate an id, render, and insert a post with its reply edges.

        Everything happens in one transaction. The counter increment is the
        first write, which serializes concurrent posters on the board; if any
        later step fails the increment is rolled back with the rest, so no
        id is burned.
        """
        fields = fields.normalized()

        try:
            with self.db.get_session() as session:
                post_id = self.db.allocate_post_id(session, board)
                if post_id is None:
                    raise NotFound(f"Board /{board}/ not found")

                if thread_id is None:
                    thread = post_id
                elif self.db.get_thread_root(session, board, thread_id) is None:
                    raise ConstraintViolation(f"Thread {thread_id} does not exist on /{board}/")
                else:
                    thread = thread_id

                rendered = self.renderer.render(
                    fields.content,
                    board,
                    lambda ids: self.db.find_post_threads(session, board, ids),
                )

                post = Post(
                    id=post_id,
                    board=board,
                    thread=thread,
                    title=fields.title,
                    author=fields.author,
                    email=fields.email,
                    sage=fields.sage,
                    plaintext_content=fields.content,
                    html_content=rendered.html,
                    posted_at=self.clock(),
                    ip=fields.ip,
                    image=image.hash if image else None,
                )
                self.db.add_post_with_replies(session, post, rendered.reply_ids)
        except BoardError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Failed to create post on /{board}/: {e}")
            raise StorageFailure(f"Post creation failed: {e}")

        if thread == post_id:
            logger.info(f"Created thread /{board}/{post_id}")
        else:
            logger.info(
                f"Created post /{board}/{post_id} in thread {thread}"
                f" replying to {rendered.reply_ids or 'nothing'}"
            )
        return post_id

    def list_threads(self, board: str) -> List[Post]:
        """
        Retrieve the opening posts of a board's threads, most recently bumped first.

        Raises:
            NotFound: If the board does not exist
            StorageFailure: If retrieval fails
        """
        try:
            if self.db.get_board(board) is None:
                raise NotFound(f"Board /{board}/ not found")
            return self.db.get_threads_for_board(board)
        except SQLAlchemyError as e:
            raise StorageFailure(f"List threads failed: {e}")

    def get_thread_posts(self, board: str, thread_id: int) -> List[Post]:
        """
        Retrieve every post of a thread ordered by id.

        A thread always contains its opening post, so an empty result means
        the thread does not exist.

        Raises:
            NotFound: If no post belongs to the thread
            StorageFailure: If retrieval fails
        """
        try:
            posts = self.db.get_posts_for_thread(board, thread_id)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Get posts failed: {e}")

        if not posts:
            raise NotFound(f"Thread /{board}/{thread_id} not found")
        logger.debug(f"Retrieved {len(posts)} posts for /{board}/{thread_id}")
        return posts

    def get_replies(self, board: str, post_id: int) -> List[ReplyRef]:
        """
        Retrieve the posts that reference a post, ordered by id.

        Raises:
            StorageFailure: If retrieval fails
        """
        try:
            edges = self.db.get_replies_to(board, post_id)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Get replies failed: {e}")

        return [ReplyRef(id=e.reply_id, board=e.reply_board, thread=e.reply_thread) for e in edges]

    def get_board_view(self, board: str) -> List[PostView]:
        """Thread-opening posts of a board, bump-ordered, ready for display."""
        return [self._view(post) for post in self.list_threads(board)]

    def get_thread_view(self, board: str, thread_id: int) -> List[PostView]:
        """Posts of a thread with back-links and image references."""
        return [self._view(post) for post in self.get_thread_posts(board, thread_id)]

    def _view(self, post: Post) -> PostView:
        return PostView(
            post=post,
            replies=self.get_replies(post.board, post.id),
            image=ImageRef(post.image) if post.image else None,
        )
