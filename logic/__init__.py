"""
Application Logic Layer for the ruburu image-board

This module provides the business logic components that coordinate the
core infrastructure (database, image store, markup, captcha) for the web
layer.
"""

from logic.auth_manager import AuthManager, AdminSession
from logic.board_manager import BoardManager
from logic.thread_manager import ThreadManager, PostFields, PostView, ReplyRef
from logic.moderation_manager import ModerationManager, CaptchaChallenge
from logic.post_manager import PostManager, PostRequest, PostOutcome, PageContext

__all__ = [
    'AuthManager',
    'AdminSession',
    'BoardManager',
    'ThreadManager',
    'PostFields',
    'PostView',
    'ReplyRef',
    'ModerationManager',
    'CaptchaChallenge',
    'PostManager',
    'PostRequest',
    'PostOutcome',
    'PageContext',
]
