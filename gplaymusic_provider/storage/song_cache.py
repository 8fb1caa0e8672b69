"""
An in-memory song cache with access-based expiry and a maximum size.

Entries expire a fixed time after their last access and are evicted least
recently used first once the cache is full. Every entry leaving the cache is
reported to a removal listener, which by default deletes the song's audio file.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from contextlib import suppress
from enum import Enum
from pathlib import Path

from gplaymusic_provider.exceptions import FileCleanupError, SongLookupError
from gplaymusic_provider.models.song import Song
from gplaymusic_provider.utils.path import song_file_path

log = logging.getLogger(__name__)


class RemovalCause(Enum):
    """Why an entry left the cache."""

    EXPIRED = "expired"  # Not accessed within the expiry time
    SIZE = "size"  # Evicted to stay within the maximum size
    EXPLICIT = "explicit"  # Invalidated by the owner


SongLoader = Callable[[str], Awaitable[Song]]
RemovalListener = Callable[[Song, RemovalCause], Awaitable[None]]


class SongFileRemover:
    """Removal listener that deletes the audio file of an evicted song."""

    def __init__(self, song_dir: Path):
        self.song_dir = song_dir

    async def __call__(self, song: Song, cause: RemovalCause) -> None:
        log.debug(f"Removing song with id '{song.id}' from cache ({cause.value}).")
        await asyncio.to_thread(self._delete, song)

    def _delete(self, song: Song) -> None:
        path = song_file_path(self.song_dir, song.id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise FileCleanupError(
                f"Could not remove file of song '{song.title} ({song.id})': {e}"
            ) from e


class _CacheEntry:
    __slots__ = ("song", "last_access")

    def __init__(self, song: Song, last_access: float):
        self.song = song
        self.last_access = last_access


class SongCache:
    """
    Maps song ids to Song objects, loading missing entries on demand.

    Concurrent `get` calls for the same missing id share a single load. Entries
    are kept in recency order, so the first entry is always the least recently
    accessed one. Must be used from within a running event loop, since removal
    notifications are dispatched as tasks.
    """

    def __init__(
        self,
        loader: SongLoader,
        ttl_minutes: int,
        removal_listener: RemovalListener | None = None,
        initial_capacity: int = 256,
        maximum_size: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initializes the song cache.

        Args:
            loader: Coroutine function resolving a song id to a Song on a miss.
            ttl_minutes: Minutes after the last access until an entry expires.
            removal_listener: Optional coroutine function notified with every
            song that leaves the cache.
            initial_capacity: Expected number of entries. Only a sizing hint.
            maximum_size: Number of entries above which the least recently
            used entries are evicted.
            clock: Monotonic time source in seconds.
        """
        if ttl_minutes < 1:
            raise ValueError("ttl_minutes must be positive.")
        if maximum_size < 1:
            raise ValueError("maximum_size must be at least 1.")

        self.expire_after_seconds = ttl_minutes * 60
        self.initial_capacity = initial_capacity
        self.maximum_size = maximum_size

        self._loader = loader
        self._removal_listener = removal_listener
        self._clock = clock

        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._loading: dict[str, asyncio.Task] = {}
        self._pending_removals: dict[str, asyncio.Task] = {}
        self._cleanup_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, song_id: object) -> bool:
        """Checks for an unexpired entry without counting as an access."""
        entry = self._entries.get(song_id)
        return entry is not None and not self._is_expired(entry, self._clock())

    async def get(self, song_id: str) -> Song:
        """
        Returns the cached song for an id, loading it on a miss.

        Raises:
            SongLookupError: If the loader fails. Failures are not cached.
        """
        song = self._get_if_present(song_id)
        if song is not None:
            return song

        task = self._loading.get(song_id)
        if task is None:
            log.debug(f"Adding song with id '{song_id}' to cache.")
            task = asyncio.create_task(self._load(song_id))
            self._loading[song_id] = task
            task.add_done_callback(lambda t, key=song_id: self._on_load_done(key, t))

        # One waiter being cancelled must not cancel the load for the others
        return await asyncio.shield(task)

    def put(self, song_id: str, song: Song) -> None:
        """Inserts or replaces an entry, counting as an access."""
        self._insert(song_id, song)

    def clean_up(self) -> int:
        """Removes all expired entries and returns how many were removed."""
        now = self._clock()
        expired = []
        for song_id, entry in self._entries.items():
            if not self._is_expired(entry, now):
                break
            expired.append(song_id)

        for song_id in expired:
            self._remove(song_id, RemovalCause.EXPIRED)
        if expired:
            log.debug(f"Cache cleanup: removed {len(expired)} expired songs.")
        return len(expired)

    async def invalidate_all(self) -> None:
        """Removes every entry and waits until all removal listeners finished."""
        for song_id in list(self._entries):
            self._remove(song_id, RemovalCause.EXPLICIT)
        await self.wait_for_removals()

    async def wait_for_removals(self) -> None:
        """Waits for all scheduled removal notifications to complete."""
        while self._pending_removals:
            await asyncio.wait(list(self._pending_removals.values()))

    async def close(self) -> None:
        """
        Stops housekeeping, aborts pending loads and invalidates all entries.

        Callers still waiting on an aborted load get a SongLookupError.
        """
        await self.stop_background_cleanup()

        loading = list(self._loading.values())
        if loading:
            # Loads that never started would end cancelled instead of failed
            await asyncio.sleep(0)
        for task in loading:
            task.cancel()
        if loading:
            await asyncio.gather(*loading, return_exceptions=True)

        await self.invalidate_all()

    async def start_background_cleanup(self, interval: float = 60.0) -> None:
        """Starts the periodic removal of expired entries."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval))
            log.debug("Started song cache background cleanup task.")

    async def stop_background_cleanup(self) -> None:
        """Stops the background cleanup task gracefully."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
            log.debug("Stopped song cache background cleanup task.")

    async def _cleanup_loop(self, interval: float) -> None:
        """Removes expired entries periodically until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                self.clean_up()
            except Exception as e:
                log.warning(f"Error in song cache cleanup loop: {e}")

    async def _load(self, song_id: str) -> Song:
        try:
            song = await self._loader(song_id)
        except asyncio.CancelledError as e:
            # Only close() cancels loads; waiters see a failed lookup
            raise SongLookupError(
                f"Song cache closed while loading song '{song_id}'."
            ) from e
        except Exception as e:
            log.debug(f"Loading song '{song_id}' failed: {e}")
            raise SongLookupError(f"Could not load song '{song_id}': {e}") from e

        # A put for the same id while loading takes precedence
        current = self._get_if_present(song_id)
        if current is not None:
            return current
        self._insert(song_id, song)
        return song

    def _on_load_done(self, song_id: str, task: asyncio.Task) -> None:
        if self._loading.get(song_id) is task:
            del self._loading[song_id]
        if not task.cancelled():
            # Mark the exception as retrieved even if every waiter went away
            task.exception()

    def _get_if_present(self, song_id: str) -> Song | None:
        entry = self._entries.get(song_id)
        if entry is None:
            return None

        now = self._clock()
        if self._is_expired(entry, now):
            self._remove(song_id, RemovalCause.EXPIRED)
            return None

        entry.last_access = now
        self._entries.move_to_end(song_id)
        return entry.song

    def _insert(self, song_id: str, song: Song) -> None:
        self._entries[song_id] = _CacheEntry(song, self._clock())
        self._entries.move_to_end(song_id)

        self.clean_up()
        while len(self._entries) > self.maximum_size:
            oldest = next(iter(self._entries))
            self._remove(oldest, RemovalCause.SIZE)

    def _is_expired(self, entry: _CacheEntry, now: float) -> bool:
        return now - entry.last_access >= self.expire_after_seconds

    def _remove(self, song_id: str, cause: RemovalCause) -> None:
        entry = self._entries.pop(song_id, None)
        if entry is not None and self._removal_listener is not None:
            self._notify_removal(entry.song, cause)

    def _notify_removal(self, song: Song, cause: RemovalCause) -> None:
        """Schedules the removal listener, serialized per song id."""
        previous = self._pending_removals.get(song.id)
        task = asyncio.create_task(self._run_listener(song, cause, previous))
        self._pending_removals[song.id] = task
        task.add_done_callback(lambda t, key=song.id: self._on_removal_done(key, t))

    async def _run_listener(
        self, song: Song, cause: RemovalCause, previous: asyncio.Task | None
    ) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        try:
            await self._removal_listener(song, cause)
        except FileCleanupError as e:
            log.warning(f"[yellow]{e}[/yellow]")
        except Exception as e:
            log.warning(
                f"Removal listener failed for song '{song.id}': {e}", exc_info=True
            )

    def _on_removal_done(self, song_id: str, task: asyncio.Task) -> None:
        if self._pending_removals.get(song_id) is task:
            del self._pending_removals[song_id]
