"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gplaymusic_provider.models.config import ProviderConfig
from gplaymusic_provider.models.song import Song
from gplaymusic_provider.utils.formatting import format_song_duration


def format_error_with_suggestions(error: Exception) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__

    suggestions_map = {
        "InitializationError": [
            "• Check that the song directory can be created.",
            "• Verify username, password and Android ID in the configuration file.",
            "• Run `gplaymusic-provider init --force` to store new credentials.",
        ],
        "ConfigurationError": [
            "• Run `gplaymusic-provider validate` to see which value is wrong.",
            "• The song directory has to be empty or not exist yet.",
        ],
        "NoSuchSongError": [
            "• Make sure the id is a catalog track id (e.g. 'Tabc...').",
            "• The catalog might be temporarily unavailable.",
        ],
        "FetchError": [
            "• A network connection issue occurred.",
            "• Please try again in a few minutes.",
        ],
    }
    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(str(error))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_songs_table(songs: Sequence[Song], title: str = "Songs"):
    """Displays songs with their ids so they can be looked up later."""
    console = Console()
    if not songs:
        console.print("[yellow]No songs found.[/yellow]")
        return

    table = Table(title=title)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Artist")
    table.add_column("Length", justify="right", style="green")
    table.add_column("Id", style="dim")
    for i, song in enumerate(songs, 1):
        table.add_row(
            str(i),
            song.title,
            song.description,
            format_song_duration(song.duration),
            song.id,
        )
    console.print(table)


def print_validation_table(config_path: Path, config: ProviderConfig):
    """Displays a summary of the current settings, hiding sensitive data."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    auth_method = "Stored token" if config.token else "Username/Password"
    table.add_row("Auth Method:", f"[green]{auth_method}[/green]")
    table.add_row("Username:", config.username or "[dim]-[/dim]")
    table.add_row("Quality:", config.stream_quality)
    table.add_row("Song Directory:", f"[dim]{config.song_dir}[/dim]")
    table.add_row("Cache Time:", f"{config.cache_time} min")
    table.add_row("Cache Size:", str(config.cache_maximum_size))
    table.add_row("Search Limit:", str(config.search_limit))

    console.print(
        Panel(
            table,
            title=f"[bold green]✓ Validated Settings[/bold green] ([dim]{config_path}[/dim])",
            border_style="green",
        )
    )
