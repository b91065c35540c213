"""
Data models module for the ruburu image-board.

This module contains SQLAlchemy ORM models for:
- Boards and Posts
- Reply edges
- Images
- Bans and Captcha challenges
- Administrative users and sessions
"""
