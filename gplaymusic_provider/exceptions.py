"""
Defines custom exceptions for the provider to allow for more specific error handling.
"""


class GPlayMusicError(Exception):
    """Base exception for all provider-specific errors."""


class FetchError(GPlayMusicError):
    """Raised when a catalog request fails due to a network or service problem."""


class TokenRejectedError(GPlayMusicError):
    """Raised when the catalog refuses the auth token used to build a client."""


class AuthFetchError(GPlayMusicError):
    """Raised when no auth token could be obtained at all."""


class AuthenticationError(GPlayMusicError):
    """Raised when a freshly issued token is rejected as well."""


class InitializationError(GPlayMusicError):
    """Raised when the provider cannot be started."""


class NoSuchSongError(GPlayMusicError):
    """Raised when a song id cannot be resolved."""


class SongLookupError(GPlayMusicError, LookupError):
    """Raised by the song cache when loading a missing entry fails."""


class InvalidTrackError(GPlayMusicError, ValueError):
    """Raised when a catalog track lacks a field every valid track carries."""


class FileCleanupError(GPlayMusicError):
    """Raised when a cached song file cannot be deleted. Logged, never propagated."""


class ConfigurationError(GPlayMusicError):
    """Raised for issues related to configuration loading or validation."""
