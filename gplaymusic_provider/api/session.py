"""
Authentication session reconciling a stored token with a fresh credential login.
"""

import logging
from enum import Enum
from typing import Optional, Protocol

from gplaymusic_provider.exceptions import AuthenticationError, TokenRejectedError
from gplaymusic_provider.models.config import Credentials

from .auth import AuthToken, ClientBuilder, TokenProvider
from .client import CatalogClient

log = logging.getLogger(__name__)


class TokenStore(Protocol):
    """Where the auth token survives between runs."""

    def load_token(self) -> Optional[str]: ...

    def save_token(self, token: str) -> None: ...

    def clear_token(self) -> None: ...


class AuthState(Enum):
    """States of the authentication session."""

    NO_TOKEN = "no_token"
    HAVE_STORED_TOKEN = "have_stored_token"
    HAVE_FRESH_TOKEN = "have_fresh_token"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class AuthSession:
    """
    Produces an authenticated catalog client.

    A stored token is tried first. If the catalog rejects it, the token is
    cleared and exactly one fresh token is requested with the credentials. A
    rejected fresh token is final:

    - NO_TOKEN -> HAVE_STORED_TOKEN: a well formed token is stored
    - NO_TOKEN -> HAVE_FRESH_TOKEN: otherwise, after a credential login
    - HAVE_STORED_TOKEN -> HAVE_FRESH_TOKEN: stored token rejected
    - HAVE_*_TOKEN -> AUTHENTICATED: client built
    - HAVE_FRESH_TOKEN -> FAILED: fresh token rejected

    Errors while obtaining a token (AuthFetchError) or transport errors while
    building the client (FetchError) are not retried and propagate as is.
    Not safe for concurrent use; call `authenticate` from one flow at a time.
    """

    def __init__(
        self,
        credentials: Credentials,
        token_store: TokenStore,
        token_provider: Optional[TokenProvider] = None,
        client_builder: Optional[ClientBuilder] = None,
    ):
        self._credentials = credentials
        self._token_store = token_store
        self._token_provider = token_provider or TokenProvider()
        self._client_builder = client_builder or ClientBuilder()

        self._state = AuthState.NO_TOKEN
        self._token: Optional[AuthToken] = None

    @property
    def state(self) -> AuthState:
        """Current state of the session."""
        return self._state

    async def authenticate(self) -> CatalogClient:
        """
        Drives the session until a client is built or authentication failed.

        Returns:
            A client whose token the catalog accepted.

        Raises:
            AuthenticationError: If a freshly issued token is rejected.
            AuthFetchError: If a fresh token cannot be obtained.
        """
        self._state = AuthState.NO_TOKEN
        self._token = None

        stored = self._token_store.load_token()
        if self._token_provider.is_well_formed(stored):
            log.info("Trying to login with existing token.")
            self._token = self._token_provider.from_stored(stored)
            self._state = AuthState.HAVE_STORED_TOKEN
        else:
            await self._fetch_fresh_token()

        while True:
            try:
                client = await self._client_builder.build(self._token)
            except TokenRejectedError as e:
                if self._state is AuthState.HAVE_STORED_TOKEN:
                    log.info("[yellow]Stored token was rejected.[/yellow]")
                    self._token_store.clear_token()
                    self._token = None
                    await self._fetch_fresh_token()
                    continue

                self._state = AuthState.FAILED
                self._token = None
                raise AuthenticationError(
                    f"The catalog rejected a freshly issued token: {e}"
                ) from e

            self._state = AuthState.AUTHENTICATED
            log.info("Successfully logged into GPlayMusic.")
            return client

    async def _fetch_fresh_token(self) -> None:
        log.info("Fetching new token.")
        self._token = await self._token_provider.login(self._credentials)
        self._token_store.save_token(self._token.token)
        self._state = AuthState.HAVE_FRESH_TOKEN
