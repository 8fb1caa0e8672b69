"""
GPlayMusic song provider.

Searches the Google Play Music catalog, caches the resulting songs and keeps the
locally downloaded audio files in step with the cache.
"""

__version__ = "0.3.0"
