"""
Configuration module for the sync run service.
"""

from syncrun.config.settings import settings, Settings

__all__ = ["settings", "Settings"]
