"""
Pydantic model for provider configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, field_validator, model_validator

# User-facing quality names -> catalog stream options
STREAM_QUALITY_MAP = {
    "LOW": "low",
    "MEDIUM": "med",
    "HIGH": "hi",
}

DEFAULT_SONG_DIR = "songs/"


class Credentials(BaseModel):
    """Account credentials used to request a fresh auth token."""

    username: str = ""
    password: str = ""
    android_id: str = ""

    class Config:
        """Pydantic model configuration."""

        frozen = True
        str_strip_whitespace = True

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password and self.android_id)


class ProviderConfig(BaseModel):
    """A validated configuration model for the provider."""

    # Authentication
    username: str = ""
    password: str = ""
    android_id: str = ""
    token: str = ""

    # Songs
    song_dir: str = DEFAULT_SONG_DIR
    stream_quality: str = "HIGH"
    search_limit: int = 30

    # Cache
    cache_time: int = 60  # minutes
    cache_initial_capacity: int = 256
    cache_maximum_size: int = 1024

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("stream_quality")
    @classmethod
    def validate_stream_quality(cls, v: str) -> str:
        """Normalizes the quality name and ensures the catalog knows it."""
        v = v.upper()
        if v not in STREAM_QUALITY_MAP:
            raise ValueError("Quality has to be LOW, MEDIUM or HIGH.")
        return v

    @field_validator("cache_time")
    @classmethod
    def validate_cache_time(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Cache time must be a positive number of minutes.")
        return v

    @field_validator("cache_maximum_size")
    @classmethod
    def validate_maximum_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Cache maximum size must be at least 1.")
        return v

    @field_validator("cache_initial_capacity")
    @classmethod
    def validate_initial_capacity(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Cache initial capacity cannot be negative.")
        return v

    @field_validator("search_limit")
    @classmethod
    def validate_search_limit(cls, v: int) -> int:
        if v < 1 or v > 100:
            raise ValueError("Search limit must be between 1 and 100.")
        return v

    @field_validator("song_dir")
    @classmethod
    def validate_song_dir(cls, v: str) -> str:
        """
        The song directory is wiped on shutdown, so it has to be empty or not
        exist yet while having a parent directory.
        """
        if not v:
            raise ValueError("Song directory cannot be empty.")
        path = Path(v).expanduser()
        if path.exists():
            if not path.is_dir() or any(path.iterdir()):
                raise ValueError(
                    "Song directory has to be an empty directory or not existing "
                    "while having a parent directory."
                )
        elif not path.absolute().parent.is_dir():
            raise ValueError(
                f"Parent directory of '{v}' does not exist."
            )
        return v

    @model_validator(mode="after")
    def validate_auth_config(self) -> "ProviderConfig":
        """Validates that either a token or the full credentials are present."""
        if not self.token and not self.credentials.is_complete:
            raise ValueError(
                "Authentication not configured. Provide either a token or "
                "username, password and Android ID."
            )
        return self

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            username=self.username,
            password=self.password,
            android_id=self.android_id,
        )

    @property
    def song_path(self) -> Path:
        return Path(self.song_dir).expanduser()

    @property
    def stream_option(self) -> str:
        """The catalog's name for the configured stream quality."""
        return STREAM_QUALITY_MAP[self.stream_quality]

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
