"""Configuration management module for the ruburu image-board."""

from .config_manager import ConfigManager, get_config_manager

__all__ = ['ConfigManager', 'get_config_manager']
