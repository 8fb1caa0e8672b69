"""
Defines the command-line interface for the provider using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from gplaymusic_provider import __version__
from gplaymusic_provider.core.provider import GPlayMusicProvider
from gplaymusic_provider.exceptions import GPlayMusicError
from gplaymusic_provider.storage.config_manager import ConfigManager
from gplaymusic_provider.utils.path import export_file_name

from .formatters import (
    format_error_with_suggestions,
    print_songs_table,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("gplaymusic_provider")

app = typer.Typer(
    name="gplaymusic-provider",
    help="Search and cache songs from Google Play Music.",
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "gplaymusic-provider"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
):
    """GPlayMusic song provider"""
    if version:
        console.print(
            f"[bold]gplaymusic-provider[/bold] version [cyan]{__version__}[/cyan]"
        )
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("gplaymusic_provider").setLevel(log_level)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    username: str = typer.Argument(..., help="Username or email of the account."),
    android_id: str = typer.Argument(
        ..., help="IMEI or GoogleID of a device with GPlayMusic installed."
    ),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, help="Password or app password."
    ),
    song_dir: str = typer.Option(
        "songs/", "--song-dir", help="Directory songs are temporarily saved in."
    ),
    quality: str = typer.Option(
        "HIGH", "--quality", "-q", help="Stream quality: LOW, MEDIUM or HIGH."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite existing credentials without asking."
    ),
):
    """Initialize configuration with GPlayMusic credentials."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm(
            "Configuration file already exists. Overwrite the credentials?"
        )
    ):
        raise typer.Abort()

    config_manager = ConfigManager(CONFIG_FILE)
    try:
        config_manager.save_new_config(
            {
                "username": username,
                "password": password,
                "android_id": android_id,
                "song_dir": song_dir,
                "stream_quality": quality.upper(),
            }
        )
        config_manager.load_config()
    except GPlayMusicError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


def _run_with_provider(action):
    """Runs a coroutine function against an initialized provider."""

    async def _run():
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        async with GPlayMusicProvider(config, config_manager) as provider:
            return await action(provider)

    try:
        return asyncio.run(_run())
    except GPlayMusicError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


@app.command()
def search(query: str = typer.Argument(..., help="Search query.")):
    """Search the catalog for songs."""
    songs = _run_with_provider(lambda provider: provider.search(query))
    print_songs_table(songs, title=f"Results for '{query}'")


@app.command()
def lookup(song_id: str = typer.Argument(..., help="Catalog id of the song.")):
    """Show a single song."""
    song = _run_with_provider(lambda provider: provider.lookup(song_id))
    print_songs_table([song], title="Song")
    if song.album_art_url:
        console.print(f"[dim]Album art: {song.album_art_url}[/dim]")


@app.command()
def download(
    song_id: str = typer.Argument(..., help="Catalog id of the song."),
    output: Path = typer.Option(  # noqa: B008
        Path("."), "--output", "-o", help="Directory to copy the song into."
    ),
):
    """Download a song. The song directory is wiped on exit, so it is copied out."""

    async def _download(provider: GPlayMusicProvider) -> Path:
        song = await provider.lookup(song_id)
        path = await provider.load_song(song_id)
        destination = output / export_file_name(song)
        await asyncio.to_thread(output.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.replace, destination)
        return destination

    destination = _run_with_provider(_download)
    console.print(f"[green]✓ Saved to '{destination}'[/green]")


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        print_validation_table(CONFIG_FILE, config)
    except GPlayMusicError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
