"""
The GPlayMusic song provider as seen by the host: search, lookup, song files
and lifecycle.
"""

import asyncio
import logging
import shutil
import time
from collections.abc import Callable
from pathlib import Path
from typing import List, Optional

from gplaymusic_provider.api.auth import ClientBuilder, TokenProvider
from gplaymusic_provider.api.client import CatalogClient
from gplaymusic_provider.api.session import AuthSession, TokenStore
from gplaymusic_provider.exceptions import (
    AuthenticationError,
    AuthFetchError,
    FetchError,
    InitializationError,
    InvalidTrackError,
    NoSuchSongError,
    SongLookupError,
    TokenRejectedError,
)
from gplaymusic_provider.media.song_loader import SongLoader
from gplaymusic_provider.models.config import ProviderConfig
from gplaymusic_provider.models.song import Song
from gplaymusic_provider.storage.song_cache import SongCache, SongFileRemover
from gplaymusic_provider.utils.path import create_dir

from .materializer import song_from_track

log = logging.getLogger(__name__)


class GPlayMusicProvider:
    """
    Provides GPlayMusic songs to the host.

    Search results are put into the song cache, so looking them up later does
    not hit the catalog again. The song directory belongs to the cache: files
    of evicted songs are deleted and the whole directory is wiped on close.
    """

    ID = "gplaymusic"
    READABLE_NAME = "GPlayMusic Songs"

    def __init__(
        self,
        config: ProviderConfig,
        token_store: TokenStore,
        token_provider: Optional[TokenProvider] = None,
        client_builder: Optional[ClientBuilder] = None,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ):
        """
        Args:
            config: The validated provider configuration.
            token_store: Persistence for the auth token.
            token_provider: Source of auth tokens, defaults to the Google login.
            client_builder: Factory for authenticated clients.
            clock: Monotonic time source used by the song cache.
            sweep_interval: Seconds between background sweeps of expired songs.
        """
        self.config = config
        self.song_dir: Path = config.song_path
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._auth_session = AuthSession(
            config.credentials, token_store, token_provider, client_builder
        )

        self._client: Optional[CatalogClient] = None
        self._cache: Optional[SongCache] = None
        self._song_loader: Optional[SongLoader] = None

    @property
    def cache(self) -> SongCache:
        if self._cache is None:
            raise RuntimeError("Provider has not been initialized.")
        return self._cache

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    async def initialize(self) -> None:
        """
        Prepares the song directory and cache and logs into the catalog.

        Raises:
            InitializationError: If the song directory cannot be created or the
            login fails.
        """
        log.info("Initializing...")
        try:
            await asyncio.to_thread(create_dir, self.song_dir)
        except OSError as e:
            raise InitializationError(
                f"Unable to create song directory '{self.song_dir}': {e}"
            ) from e

        self._cache = SongCache(
            loader=self._load_song,
            ttl_minutes=self.config.cache_time,
            removal_listener=SongFileRemover(self.song_dir),
            initial_capacity=self.config.cache_initial_capacity,
            maximum_size=self.config.cache_maximum_size,
            clock=self._clock,
        )

        try:
            self._client = await self._auth_session.authenticate()
        except (AuthFetchError, AuthenticationError, FetchError) as e:
            log.warning("[yellow]Logging into GPlayMusic failed![/yellow]")
            await self._cache.close()
            self._cache = None
            raise InitializationError(f"Logging into GPlayMusic failed: {e}") from e

        self._song_loader = SongLoader(
            self._client, self.song_dir, self.config.stream_option
        )
        await self._cache.start_background_cleanup(self._sweep_interval)

    async def search(self, query: str) -> List[Song]:
        """
        Searches the catalog and caches every song found.

        Never raises for catalog failures; those are logged and yield no songs.
        Malformed tracks are logged and left out of the results.
        """
        try:
            tracks = await self._require_client().search_tracks(
                query, self.config.search_limit
            )
        except (FetchError, TokenRejectedError) as e:
            log.warning(f"Exception while searching with query '{query}': {e}")
            return []

        songs = []
        for track in tracks:
            try:
                song = song_from_track(track)
            except InvalidTrackError as e:
                log.warning(f"Skipping search result for '{query}': {e}")
                continue
            self.cache.put(song.id, song)
            songs.append(song)
        log.debug(f"Search for '{query}' found {len(songs)} songs.")
        return songs

    async def lookup(self, song_id: str) -> Song:
        """
        Resolves a song by id, from the cache if possible.

        Raises:
            NoSuchSongError: If the song cannot be loaded.
        """
        try:
            return await self.cache.get(song_id)
        except SongLookupError as e:
            raise NoSuchSongError(f"No song with id '{song_id}': {e}") from e

    async def load_song(self, song_id: str) -> Path:
        """
        Makes sure the audio file of a song is in the song directory.

        Raises:
            NoSuchSongError: If the song cannot be resolved.
            FetchError: If the audio stream cannot be downloaded.
        """
        song = await self.lookup(song_id)
        if self._song_loader is None:
            raise RuntimeError("Provider has not been initialized.")
        return await self._song_loader.load(song)

    async def close(self) -> None:
        """Invalidates the cache, wipes the song directory and logs out."""
        if self._cache is not None:
            await self._cache.close()
            self._cache = None
        if self._client is not None:
            await self._client.close()
            self._client = None
        self._song_loader = None

        await asyncio.to_thread(self._wipe_song_dir)

    async def __aenter__(self) -> "GPlayMusicProvider":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _load_song(self, song_id: str) -> Song:
        """Cache loader: fetches a track and materializes it."""
        track = await self._require_client().fetch_track(song_id)
        return song_from_track(track)

    def _require_client(self) -> CatalogClient:
        if self._client is None:
            raise RuntimeError("Provider has not been initialized.")
        return self._client

    def _wipe_song_dir(self) -> None:
        if not self.song_dir.exists():
            return
        try:
            shutil.rmtree(self.song_dir)
        except OSError as e:
            log.warning(f"Could not remove song directory '{self.song_dir}': {e}")
