"""
Core module for the ruburu image-board.

This module contains the core functionality including:
- Database operations
- Content-addressed image storage with thumbnails
- Markup rendering and reply extraction
- Captcha image generation
- Password hashing
- The error taxonomy and central error handler
"""

__version__ = "0.1.0"

from core.error_handler import (
    BoardError,
    NotFound,
    ValidationError,
    CodecError,
    ConstraintViolation,
    MissingImage,
    MissingOrInvalidCaptchaID,
    Banned,
    AuthenticationError,
    PermissionDenied,
    StorageFailure,
    ErrorHandler,
    get_error_handler,
)
from core.image_store import ImageStore, ImageRef
from core.markup import MarkupRenderer, RenderedPost

__all__ = [
    'BoardError',
    'NotFound',
    'ValidationError',
    'CodecError',
    'ConstraintViolation',
    'MissingImage',
    'MissingOrInvalidCaptchaID',
    'Banned',
    'AuthenticationError',
    'PermissionDenied',
    'StorageFailure',
    'ErrorHandler',
    'get_error_handler',
    'ImageStore',
    'ImageRef',
    'MarkupRenderer',
    'RenderedPost',
]
