"""
Configuration module for the token market.

This module provides configuration management and settings
for the matching engine and its servers.
"""

from .settings import Settings, get_settings, reload_settings

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
]
