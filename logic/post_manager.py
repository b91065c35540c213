"""
Post Manager for the ruburu image-board.

The write entry point used by the web layer. A submission is checked by the
moderation gate, its image stored, and the post handed to the thread
manager. The result is always a ``PostOutcome``; errors are mapped by the
error handler instead of propagating.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from core.error_handler import ErrorHandler, get_error_handler
from core.image_store import ImageStore
from core.markup import thread_url
from logic.board_manager import BoardManager
from logic.moderation_manager import CaptchaChallenge, ModerationManager
from logic.thread_manager import PostFields, PostView, ThreadManager
from models.database import Board


logger = logging.getLogger(__name__)


@dataclass
class PostRequest:
    """A post submission as received from the web layer."""
    board: str
    ip: str
    thread: Optional[int] = None
    title: Optional[str] = None
    author: Optional[str] = None
    email: Optional[str] = None
    content: Optional[str] = None
    sage: bool = False
    image: Optional[bytes] = None
    captcha_id: Optional[str] = None
    captcha_answer: Optional[str] = None

    def fields(self) -> PostFields:
        return PostFields(
            ip=self.ip,
            title=self.title,
            author=self.author,
            email=self.email,
            content=self.content,
            sage=self.sage,
        )


@dataclass
class PostOutcome:
    """
    Result of a submission.

    On success ``post_id`` is the new post and ``thread_id`` the thread to
    redirect to (equal for a new thread). On rejection ``status`` and
    ``error`` name the failure and ``message`` is safe to show the user.
    """
    ok: bool
    status: int
    post_id: Optional[int] = None
    thread_id: Optional[int] = None
    location: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None


@dataclass
class PageContext:
    """What a board or thread page needs to render."""
    board: Board
    posts: List[PostView]
    captcha: CaptchaChallenge
    thread_id: Optional[int] = None


class PostManager:
    """
    Coordinates a post submission across the managers.

    Responsibilities:
    - Authorize the requester (ban, captcha)
    - Store the attachment
    - Create the thread or reply
    - Map failures to typed outcomes
    - Issue a fresh captcha for every page that shows a post form
    """

    def __init__(
        self,
        board_manager: BoardManager,
        thread_manager: ThreadManager,
        moderation_manager: ModerationManager,
        image_store: ImageStore,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.boards = board_manager
        self.threads = thread_manager
        self.moderation = moderation_manager
        self.images = image_store
        self.errors = error_handler or get_error_handler()

    def submit(self, request: PostRequest) -> PostOutcome:
        """
        Handle a post submission.

        Args:
            request: The submission

        Returns:
            PostOutcome describing the new post or the rejection
        """
        try:
            post_id, thread_id = self._submit(request)
        except Exception as e:
            # Storage faults arrive here too; they become a 500 outcome
            return self._rejected(e, request)

        return PostOutcome(
            ok=True,
            status=303,
            post_id=post_id,
            thread_id=thread_id,
            location=thread_url(request.board, thread_id),
        )

    async def submit_async(self, request: PostRequest) -> PostOutcome:
        """Run ``submit`` in a worker thread so the event loop keeps serving."""
        return await asyncio.to_thread(self.submit, request)

    def _submit(self, request: PostRequest) -> tuple:
        self.moderation.authorize_post(request.ip, request.captcha_id, request.captcha_answer)

        image = self.images.ensure_stored(request.image) if request.image else None
        fields = request.fields()

        if request.thread is None:
            post_id = self.threads.create_thread(request.board, fields, image)
            return post_id, post_id

        post_id = self.threads.create_reply(request.board, request.thread, fields, image)
        return post_id, request.thread

    def _rejected(self, error: Exception, request: PostRequest) -> PostOutcome:
        context = self.errors.handle_error(
            error,
            "submit_post",
            board=request.board,
            thread_id=request.thread,
        )
        return PostOutcome(
            ok=False,
            status=context.status,
            error=context.kind,
            message=context.user_message,
        )

    def board_page(self, board: str) -> PageContext:
        """
        Gather a board page: its threads and a fresh captcha.

        Raises:
            NotFound: If the board does not exist
        """
        board_row = self.boards.get_board(board)
        posts = self.threads.get_board_view(board)
        return PageContext(board=board_row, posts=posts, captcha=self.moderation.issue_captcha())

    def thread_page(self, board: str, thread_id: int) -> PageContext:
        """
        Gather a thread page: its posts and a fresh captcha.

        Raises:
            NotFound: If the board or thread does not exist
        """
        board_row = self.boards.get_board(board)
        posts = self.threads.get_thread_view(board, thread_id)
        return PageContext(
            board=board_row,
            posts=posts,
            captcha=self.moderation.issue_captcha(),
            thread_id=thread_id,
        )
