"""
Async client for the Google Play Music catalog (skyjam API).
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from gplaymusic_provider.exceptions import FetchError, TokenRejectedError

log = logging.getLogger(__name__)


class CatalogClient:
    """
    Authenticated client for searching and fetching catalog tracks.

    Every request carries the auth token it was built with. Rejections of that
    token surface as TokenRejectedError, every other failure as FetchError.
    """

    BASE_URL = "https://mclients.googleapis.com/sj/v2.5/"
    STREAM_URL = "https://mclients.googleapis.com/music/mplay"

    def __init__(
        self,
        auth_token: str,
        base_url: Optional[str] = None,
        stream_url: Optional[str] = None,
        max_connections: int = 8,
    ):
        """
        Initializes the catalog client.

        Args:
            auth_token: The bearer token sent with every request.
            base_url: Override for the API root, used against test servers.
            stream_url: Override for the stream endpoint.
            max_connections: Size of the connection pool.
        """
        self.auth_token = auth_token
        self.base_url = base_url or self.BASE_URL
        self.stream_url = stream_url or self.STREAM_URL
        self.max_connections = max_connections

        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def session(self) -> Optional[aiohttp.ClientSession]:
        return self._session

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_connections * 2,
                limit_per_host=self.max_connections,
                ttl_dns_cache=300,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "Authorization": f"GoogleLogin auth={self.auth_token}",
                    "Accept-Encoding": "gzip, deflate",
                },
                timeout=aiohttp.ClientTimeout(total=60, connect=15, sock_read=30),
            )
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def api_call(
        self, endpoint: str, method: str = "GET", **kwargs: Any
    ) -> Dict[str, Any]:
        """
        Makes an authenticated call against the catalog API.

        Raises:
            TokenRejectedError: If the catalog answers 401 or 403.
            FetchError: For any other HTTP or transport failure.
        """
        session = await self._initialize_session()
        params = {"alt": "json", "hl": "en_US", "tier": "aa", "dv": "0"}
        params.update({k: str(v) for k, v in kwargs.items()})

        start_time = time.monotonic()
        try:
            async with session.request(
                method, self.base_url + endpoint, params=params
            ) as r:
                log.debug(
                    f"API call to {endpoint} returned {r.status} in "
                    f"{(time.monotonic() - start_time) * 1000:.0f}ms"
                )
                if r.status in (401, 403):
                    raise TokenRejectedError(
                        f"The catalog rejected the auth token ({r.status})."
                    )
                r.raise_for_status()
                return await r.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log.debug(f"API call to {endpoint} failed: {e}")
            raise FetchError(f"Request to '{endpoint}' failed: {e}") from e

    async def fetch_config(self) -> Dict[str, Any]:
        """Fetches the account configuration. Cheap way to prove the token works."""
        return await self.api_call("config")

    async def search_tracks(self, query: str, limit: int = 30) -> List[Dict[str, Any]]:
        """Searches the catalog and returns the raw track records found."""
        response = await self.api_call(
            "query", q=query, ct="1", **{"max-results": limit}
        )
        return [
            entry["track"] for entry in response.get("entries", []) if "track" in entry
        ][:limit]

    async def fetch_track(self, track_id: str) -> Dict[str, Any]:
        """Fetches a single raw track record by its catalog id."""
        return await self.api_call("fetchtrack", nid=track_id)

    async def fetch_stream_url(self, track_id: str, quality: str) -> str:
        """
        Resolves the temporary audio stream URL of a track.

        Args:
            track_id: The catalog id of the track.
            quality: The catalog stream option ('low', 'med' or 'hi').
        """
        session = await self._initialize_session()
        # Store tracks are addressed by 'mjck', library uploads by 'songid'
        id_param = "mjck" if track_id.startswith("T") else "songid"
        params = {"opt": quality, "net": "mob", "pt": "e", id_param: track_id}

        try:
            async with session.get(
                self.stream_url, params=params, allow_redirects=False
            ) as r:
                if r.status in (401, 403):
                    raise TokenRejectedError(
                        f"The catalog rejected the auth token ({r.status})."
                    )
                location = r.headers.get("Location")
                if r.status not in (301, 302, 303, 307) or not location:
                    raise FetchError(
                        f"No stream available for track '{track_id}' ({r.status})."
                    )
                return location
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"Resolving stream of '{track_id}' failed: {e}") from e
