"""
Downloads the audio stream of a song into the song directory.
"""

import asyncio
import logging
import os
from collections import OrderedDict
from pathlib import Path

import aiofiles
import aiohttp

from gplaymusic_provider.api.client import CatalogClient
from gplaymusic_provider.exceptions import FetchError
from gplaymusic_provider.models.song import Song
from gplaymusic_provider.utils.path import song_file_path

log = logging.getLogger(__name__)


class SongLoader:
    """Writes songs to `{song_dir}/{id}.mp3` at the configured stream quality."""

    CHUNK_SIZE = 262144  # 256 KB

    def __init__(
        self,
        client: CatalogClient,
        song_dir: Path,
        quality: str,
        max_attempts: int = 3,
        base_delay: float = 1.5,
    ):
        """
        Args:
            client: Authenticated client used to resolve stream URLs.
            song_dir: Directory the audio files are written to.
            quality: The catalog stream option ('low', 'med' or 'hi').
            max_attempts: Download attempts before giving up.
            base_delay: Initial delay between attempts, doubled every retry.
        """
        self.client = client
        self.song_dir = song_dir
        self.quality = quality
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._locks: OrderedDict[str, asyncio.Lock] = OrderedDict()
        self._max_locks = 1000

    async def load(self, song: Song) -> Path:
        """
        Makes sure the audio file of a song exists and returns its path.

        Raises:
            FetchError: If the stream cannot be resolved or downloaded.
        """
        path = song_file_path(self.song_dir, song.id)
        async with self._get_lock(song.id):
            if await asyncio.to_thread(path.is_file):
                log.debug(f"Song '{song.id}' is already on disk.")
                return path

            url = await self.client.fetch_stream_url(song.id, self.quality)
            await self._download(url, path)
            log.debug(f"Loaded song '{song.title}' ({song.id}).")
            return path

    def _get_lock(self, song_id: str) -> asyncio.Lock:
        """Gets or creates the lock guarding the file of one song."""
        if song_id in self._locks:
            self._locks.move_to_end(song_id)
            return self._locks[song_id]

        lock = asyncio.Lock()
        self._locks[song_id] = lock
        if len(self._locks) > self._max_locks:
            self._locks.popitem(last=False)
        return lock

    async def _download(self, url: str, destination: Path) -> None:
        """Downloads into a partial file and moves it in place once complete."""
        partial = destination.with_name(destination.name + ".part")
        session = self.client.session
        last_exception = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with session.get(url, allow_redirects=True) as response:
                    response.raise_for_status()
                    async with aiofiles.open(partial, "wb") as f:
                        async for chunk in response.content.iter_chunked(
                            self.CHUNK_SIZE
                        ):
                            await f.write(chunk)
                await asyncio.to_thread(os.replace, partial, destination)
                return
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                last_exception = e
                log.debug(
                    f"Download attempt {attempt}/{self.max_attempts} for "
                    f"'{destination.name}' failed: {e}. Retrying..."
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))

        await asyncio.to_thread(partial.unlink, missing_ok=True)
        raise FetchError(
            f"Downloading '{destination.name}' failed: {last_exception}"
        ) from last_exception
