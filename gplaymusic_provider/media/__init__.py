"""
Media Layer.

This package writes song audio streams to the song directory.
"""

from .song_loader import SongLoader

__all__ = ["SongLoader"]
