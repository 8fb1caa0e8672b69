"""
Turns raw catalog track records into Song objects.
"""

from typing import Any, Dict, Optional

from pydantic import ValidationError

from gplaymusic_provider.exceptions import InvalidTrackError
from gplaymusic_provider.models.song import Song


def get_track_id(track: Dict[str, Any]) -> Optional[str]:
    """
    Returns the catalog id of a track.

    Store tracks carry 'storeId' (sometimes only 'nid'); library uploads only
    have the plain 'id'.
    """
    return track.get("storeId") or track.get("nid") or track.get("id")


def get_album_art_url(track: Dict[str, Any]) -> Optional[str]:
    """Returns the URL of the first album art reference, if any."""
    refs = track.get("albumArtRef") or []
    if refs:
        return refs[0].get("url")
    return None


def song_from_track(track: Dict[str, Any]) -> Song:
    """
    Builds a Song from a catalog track record.

    Args:
        track: The track dictionary as returned by the catalog.

    Returns:
        The materialized Song.

    Raises:
        InvalidTrackError: If the track lacks its id, title, artist or duration,
            or one of them cannot be read.
    """
    track_id = get_track_id(track)
    missing = [
        field
        for field, value in (
            ("id", track_id),
            ("title", track.get("title")),
            ("artist", track.get("artist")),
            ("durationMillis", track.get("durationMillis")),
        )
        if value is None
    ]
    if missing:
        raise InvalidTrackError(
            f"Track {track_id or '<unknown>'} is missing fields: {', '.join(missing)}"
        )

    # durationMillis arrives as a string in catalog responses
    try:
        duration_millis = int(track["durationMillis"])
    except (TypeError, ValueError) as e:
        raise InvalidTrackError(
            f"Track {track_id} has an invalid duration: {track['durationMillis']!r}"
        ) from e

    try:
        return Song(
            id=track_id,
            title=track["title"],
            description=track["artist"],
            duration=duration_millis // 1000,
            album_art_url=get_album_art_url(track),
        )
    except ValidationError as e:
        raise InvalidTrackError(f"Track {track_id} is malformed: {e}") from e
