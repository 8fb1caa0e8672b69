"""
Utilities for handling song file paths.
"""

from pathlib import Path

from pathvalidate import sanitize_filename

from gplaymusic_provider.models.song import Song


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def song_file_path(song_dir: Path, song_id: str) -> Path:
    """Location of the audio file for a song id inside the song directory."""
    return song_dir / f"{song_id}.mp3"


def export_file_name(song: Song) -> str:
    """Readable '{artist} - {title}.mp3' name, safe to use on any platform."""
    name = sanitize_filename(f"{song.description} - {song.title}.mp3")
    return name or f"{song.id}.mp3"
