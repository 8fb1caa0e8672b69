"""
GPlayMusic API Layer.

This package handles all communication with the catalog and its auth service.
"""

from .auth import AuthToken, ClientBuilder, TokenProvider
from .client import CatalogClient
from .session import AuthSession, AuthState, TokenStore

__all__ = [
    "AuthSession",
    "AuthState",
    "AuthToken",
    "CatalogClient",
    "ClientBuilder",
    "TokenProvider",
    "TokenStore",
]
