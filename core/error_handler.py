"""
Error Handler for the ruburu image-board.

Provides the error taxonomy raised by the core and a centralized handler
that categorizes errors, logs them, and maps them to the response status
the boundary layer should show.
"""

import logging
import threading
import traceback
from enum import Enum
from typing import Optional
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError


logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Error categories for classification."""
    NOT_FOUND = "not_found"
    CLIENT = "client"
    ABUSE = "abuse"
    AUTH = "auth"
    STORAGE = "storage"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for an error."""
    category: ErrorCategory
    severity: ErrorSeverity
    operation: str
    kind: str
    status: int
    user_message: str
    technical_details: str
    board: Optional[str] = None
    thread_id: Optional[int] = None


# Custom Exception Classes

class BoardError(Exception):
    """Base exception for image-board errors."""

    status = 500

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN):
        super().__init__(message)
        self.category = category


class NotFound(BoardError):
    """A board, thread or post does not exist."""

    status = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message, ErrorCategory.NOT_FOUND)


class ValidationError(BoardError):
    """The request carries invalid data."""

    status = 400

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.CLIENT)


class CodecError(ValidationError):
    """Uploaded content is not a decodable image."""
    pass


class ConstraintViolation(ValidationError):
    """A reply names a thread that does not exist on the board."""
    pass


class MissingImage(ValidationError):
    """A new thread was submitted without an image."""

    def __init__(self, message: str = "An image is required to start a thread"):
        super().__init__(message)


class MissingOrInvalidCaptchaID(ValidationError):
    """The captcha token is absent, unknown, or the answer was wrong."""

    def __init__(self, message: str = "Missing or invalid captcha"):
        super().__init__(message)


class Banned(BoardError):
    """The requester's address is covered by an active ban."""

    status = 403

    def __init__(self, reason: str):
        super().__init__(f"Banned: {reason}", ErrorCategory.ABUSE)
        self.reason = reason


class AuthenticationError(BoardError):
    """Administrative credentials were rejected."""

    status = 401

    def __init__(self, message: str = "Invalid name or password"):
        super().__init__(message, ErrorCategory.AUTH)


class PermissionDenied(BoardError):
    """A session lacks the privilege an administrative action needs."""

    status = 403

    def __init__(self, message: str = "Insufficient privilege"):
        super().__init__(message, ErrorCategory.AUTH)


class StorageFailure(BoardError):
    """Database or filesystem fault."""

    status = 500

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.STORAGE)


class ErrorHandler:
    """
    Global error handler for the image-board.

    Maps any exception raised by the core to an ``ErrorContext`` that carries
    the response status and a user-facing message, and logs it at a level
    matching its severity. Nothing is retried here; transient storage faults
    go straight back to the caller.

    Usage:
        error_handler = ErrorHandler()

        try:
            thread_manager.create_reply(...)
        except Exception as e:
            context = error_handler.handle_error(e, "create_reply", board="b")
    """

    def __init__(self):
        """Initialize error handler."""
        self._error_count = 0
        self._lock = threading.Lock()

    def handle_error(
        self,
        error: Exception,
        context: str,
        board: Optional[str] = None,
        thread_id: Optional[int] = None,
    ) -> ErrorContext:
        """
        Handle an error with appropriate categorization and response.

        Args:
            error: The exception that occurred
            context: Description of the operation that failed
            board: Optional board name the operation targeted
            thread_id: Optional thread id the operation targeted

        Returns:
            ErrorContext with categorized error information
        """
        with self._lock:
            self._error_count += 1

        if isinstance(error, BoardError):
            category = error.category
            status = error.status
        else:
            category = self._categorize_error(error)
            status = 500

        severity = self._determine_severity(error, category)

        error_context = ErrorContext(
            category=category,
            severity=severity,
            operation=context,
            kind=type(error).__name__,
            status=status,
            user_message=self._generate_user_message(error, category),
            technical_details=self._get_technical_details(error),
            board=board,
            thread_id=thread_id,
        )

        self._log_error(error_context)

        return error_context

    def _categorize_error(self, error: Exception) -> ErrorCategory:
        """
        Categorize an exception that is not a ``BoardError``.

        Args:
            error: The exception to categorize

        Returns:
            ErrorCategory
        """
        if isinstance(error, (SQLAlchemyError, OSError)):
            return ErrorCategory.STORAGE
        return ErrorCategory.UNKNOWN

    def _determine_severity(
        self,
        error: Exception,
        category: ErrorCategory
    ) -> ErrorSeverity:
        """
        Determine the severity of an error.

        Args:
            error: The exception
            category: Error category

        Returns:
            ErrorSeverity
        """
        # A ban is an expected rejection, not a fault
        if category == ErrorCategory.ABUSE:
            return ErrorSeverity.INFO

        if category in (ErrorCategory.NOT_FOUND, ErrorCategory.CLIENT, ErrorCategory.AUTH):
            return ErrorSeverity.WARNING

        if category == ErrorCategory.STORAGE:
            return ErrorSeverity.ERROR

        return ErrorSeverity.CRITICAL

    def _generate_user_message(self, error: Exception, category: ErrorCategory) -> str:
        """
        Generate a user-friendly error message.

        Args:
            error: The exception
            category: Error category

        Returns:
            User-friendly error message
        """
        if isinstance(error, Banned):
            return f"You are banned: {error.reason}"
        if category in (ErrorCategory.NOT_FOUND, ErrorCategory.CLIENT, ErrorCategory.AUTH):
            return str(error)
        if category == ErrorCategory.STORAGE:
            return "The post could not be saved. Please try again."
        return "An internal error occurred."

    def _get_technical_details(self, error: Exception) -> str:
        """
        Get technical details for logging.

        Args:
            error: The exception

        Returns:
            Technical details string
        """
        details = [
            f"Exception Type: {type(error).__name__}",
            f"Message: {str(error)}",
            "Traceback:",
            "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        ]
        return "\n".join(details)

    def _log_error(self, error_context: ErrorContext):
        """
        Log error with appropriate level.

        Args:
            error_context: Error context information
        """
        log_message = (
            f"[{error_context.category.value.upper()}] "
            f"{error_context.operation}: {error_context.kind}: {error_context.user_message}"
        )

        extra_info = []
        if error_context.board:
            extra_info.append(f"board={error_context.board}")
        if error_context.thread_id is not None:
            extra_info.append(f"thread={error_context.thread_id}")

        if extra_info:
            log_message += f" ({', '.join(extra_info)})"

        if error_context.severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)
            logger.critical(f"Technical details:\n{error_context.technical_details}")
        elif error_context.severity == ErrorSeverity.ERROR:
            logger.error(log_message)
            logger.debug(f"Technical details:\n{error_context.technical_details}")
        elif error_context.severity == ErrorSeverity.WARNING:
            logger.warning(log_message)
        else:
            logger.info(log_message)

    def get_error_count(self) -> int:
        """
        Get total number of errors handled.

        Returns:
            Error count
        """
        with self._lock:
            return self._error_count

    def reset_error_count(self):
        """Reset error counter."""
        with self._lock:
            self._error_count = 0


# Global error handler instance
_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """
    Get the global error handler instance.

    Returns:
        Global ErrorHandler instance
    """
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def set_error_handler(handler: ErrorHandler):
    """
    Set the global error handler instance.

    Args:
        handler: ErrorHandler instance to use globally
    """
    global _global_error_handler
    _global_error_handler = handler
