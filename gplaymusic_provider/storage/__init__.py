"""
Storage Layer.

This package handles the in-memory song cache together with the song files it
owns, and the persisted configuration including the auth token.
"""

from .config_manager import ConfigManager
from .song_cache import RemovalCause, SongCache, SongFileRemover

__all__ = ["ConfigManager", "RemovalCause", "SongCache", "SongFileRemover"]
