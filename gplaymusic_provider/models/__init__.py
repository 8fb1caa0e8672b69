"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the provider, such as songs and configuration.
"""

from .config import Credentials, ProviderConfig
from .song import Song

__all__ = ["Credentials", "ProviderConfig", "Song"]
