"""In-memory fakes for the catalog, auth collaborators and clock."""

import asyncio
from typing import Optional

from gplaymusic_provider.api.auth import AuthToken, TokenProvider
from gplaymusic_provider.exceptions import FetchError, TokenRejectedError
from gplaymusic_provider.models.config import Credentials
from gplaymusic_provider.models.song import Song


def make_track(
    track_id: str,
    title: str = "Song",
    artist: str = "Artist",
    duration_millis: str = "185400",
    art_url: Optional[str] = None,
) -> dict:
    """A raw catalog track as the skyjam API returns it."""
    track = {
        "kind": "sj#track",
        "storeId": track_id,
        "nid": track_id,
        "title": title,
        "artist": artist,
        "album": "Album",
        "durationMillis": duration_millis,
    }
    if art_url:
        track["albumArtRef"] = [{"kind": "sj#imageRef", "url": art_url}]
    return track


def make_song(song_id: str, title: str = "Song") -> Song:
    return Song(id=song_id, title=title, description="Artist", duration=185)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCatalog:
    """In-memory stand-in for CatalogClient."""

    def __init__(self, tracks=()):
        self.tracks = {track["storeId"]: track for track in tracks}
        self.search_calls = []
        self.fetch_calls = []
        self.search_error: Optional[Exception] = None
        self.closed = False

    async def search_tracks(self, query: str, limit: int = 30) -> list:
        self.search_calls.append((query, limit))
        if self.search_error:
            raise self.search_error
        return list(self.tracks.values())[:limit]

    async def fetch_track(self, track_id: str) -> dict:
        self.fetch_calls.append(track_id)
        await asyncio.sleep(0)
        if track_id not in self.tracks:
            raise FetchError(f"Unknown track '{track_id}'")
        return self.tracks[track_id]

    async def fetch_stream_url(self, track_id: str, quality: str) -> str:
        raise FetchError("Streaming is not available in tests.")

    async def close(self) -> None:
        self.closed = True


class MemoryTokenStore:
    def __init__(self, token: Optional[str] = None):
        self.token = token
        self.saved = []
        self.cleared = 0

    def load_token(self) -> Optional[str]:
        return self.token

    def save_token(self, token: str) -> None:
        self.token = token
        self.saved.append(token)

    def clear_token(self) -> None:
        self.token = None
        self.cleared += 1


class FakeTokenProvider(TokenProvider):
    """Issues 'fresh-1', 'fresh-2', ... instead of talking to the auth service."""

    def __init__(self, error: Optional[Exception] = None):
        super().__init__()
        self.error = error
        self.login_calls = 0

    async def login(self, credentials: Credentials) -> AuthToken:
        self.login_calls += 1
        if self.error:
            raise self.error
        return AuthToken(token=f"fresh-{self.login_calls}", fresh=True)


class FakeClientBuilder:
    """Accepts a fixed set of tokens and rejects every other one."""

    def __init__(self, accepted=(), catalog: Optional[FakeCatalog] = None, error=None):
        self.accepted = set(accepted)
        self.catalog = catalog or FakeCatalog()
        self.error = error
        self.built = []

    async def build(self, auth_token: AuthToken):
        self.built.append(auth_token.token)
        if self.error:
            raise self.error
        if auth_token.token not in self.accepted:
            raise TokenRejectedError(f"Token '{auth_token.token}' rejected")
        return self.catalog
