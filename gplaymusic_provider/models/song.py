"""
Pydantic model for a playable song as handed to the host.
"""

from typing import Optional

from pydantic import BaseModel


class Song(BaseModel):
    """An immutable song record materialized from a catalog track."""

    id: str
    title: str
    description: str
    duration: int  # seconds
    album_art_url: Optional[str] = None

    class Config:
        """Pydantic model configuration."""

        frozen = True
        str_strip_whitespace = True

    @property
    def file_name(self) -> str:
        """Name of the audio file backing this song inside the song directory."""
        return f"{self.id}.mp3"
