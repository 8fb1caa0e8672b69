from .formatting import format_song_duration
from .path import create_dir, export_file_name, song_file_path

__all__ = ["create_dir", "export_file_name", "format_song_duration", "song_file_path"]
