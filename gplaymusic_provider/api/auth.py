"""
Obtains auth tokens for the catalog and builds clients that are proven to
accept them.
"""

import asyncio
import logging
from typing import Dict, Optional

import aiohttp
from pydantic import BaseModel

from gplaymusic_provider.exceptions import AuthFetchError
from gplaymusic_provider.models.config import Credentials

from .client import CatalogClient

log = logging.getLogger(__name__)


class AuthToken(BaseModel):
    """An opaque bearer token together with where it came from."""

    token: str
    fresh: bool = False

    class Config:
        """Pydantic model configuration."""

        frozen = True

    def __repr__(self) -> str:
        return f"AuthToken(token='{self.token[:6]}...', fresh={self.fresh})"


class TokenProvider:
    """
    Turns either a stored token or account credentials into an AuthToken.

    Credential login is the two step Google Play Services flow: a master token
    is requested with the password and then exchanged for a token scoped to
    the music service.
    """

    AUTH_URL = "https://android.clients.google.com/auth"
    SERVICE = "sj"
    APP = "com.google.android.music"
    CLIENT_SIG = "38918a453d07199354f8b19af05ec6562ced5788"

    def __init__(self, auth_url: Optional[str] = None):
        self.auth_url = auth_url or self.AUTH_URL

    @staticmethod
    def is_well_formed(token: Optional[str]) -> bool:
        """Local sanity check of a stored token before trying it remotely."""
        return bool(token) and not any(c.isspace() for c in token)

    def from_stored(self, token: str) -> AuthToken:
        """Wraps a previously stored token."""
        return AuthToken(token=token, fresh=False)

    async def login(self, credentials: Credentials) -> AuthToken:
        """
        Requests a fresh token for the given account.

        Raises:
            AuthFetchError: If the credentials are incomplete or refused, or the
            auth service cannot be reached.
        """
        if not credentials.is_complete:
            raise AuthFetchError(
                "Username, password and Android ID are required to fetch a new token."
            )

        log.info(f"Requesting new auth token for: {credentials.username}")
        common = {
            "accountType": "HOSTED_OR_GOOGLE",
            "Email": credentials.username,
            "has_permission": "1",
            "androidId": credentials.android_id,
            "lang": "en",
            "sdk_version": "17",
        }

        master = await self._request(
            {
                **common,
                "add_account": "1",
                "Passwd": credentials.password,
                "service": "ac2dm",
                "device_country": "us",
                "operatorCountry": "us",
            },
            expected_key="Token",
        )
        scoped = await self._request(
            {
                **common,
                "EncryptedPasswd": master,
                "service": self.SERVICE,
                "app": self.APP,
                "client_sig": self.CLIENT_SIG,
            },
            expected_key="Auth",
        )
        return AuthToken(token=scoped, fresh=True)

    async def _request(self, form: Dict[str, str], expected_key: str) -> str:
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=30)
            ) as session:
                async with session.post(self.auth_url, data=form) as r:
                    body = await r.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthFetchError(f"Could not reach the auth service: {e}") from e

        values = parse_auth_response(body)
        if expected_key not in values:
            reason = values.get("Error", f"missing '{expected_key}' in response")
            raise AuthFetchError(f"Token request failed: {reason}")
        return values[expected_key]


def parse_auth_response(body: str) -> Dict[str, str]:
    """Parses the line based 'Key=Value' format of the auth service."""
    values = {}
    for line in body.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip()] = value.strip()
    return values


class ClientBuilder:
    """Builds catalog clients and checks that the catalog accepts their token."""

    def __init__(self, **client_options):
        """
        Args:
            client_options: Passed through to every CatalogClient.
        """
        self._client_options = client_options

    async def build(self, auth_token: AuthToken) -> CatalogClient:
        """
        Builds a client for the token and validates it with one cheap request.

        Raises:
            TokenRejectedError: If the catalog refuses the token.
            FetchError: If the validation request fails for another reason.
        """
        client = CatalogClient(auth_token.token, **self._client_options)
        try:
            await client.fetch_config()
        except Exception:
            await client.close()
            raise
        return client
