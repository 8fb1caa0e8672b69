"""
Helper functions for formatting data into human-readable strings.
"""


def format_song_duration(seconds: int) -> str:
    """Formats a song length in seconds as 'm:ss' (or 'h:mm:ss')."""
    hours, remainder = divmod(max(int(seconds), 0), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
