"""
Core Logic Layer.

This package contains the provider facade and the mapping from catalog tracks
to songs.
"""

from .materializer import song_from_track
from .provider import GPlayMusicProvider

__all__ = ["GPlayMusicProvider", "song_from_track"]
