"""
Main entry point for the gplaymusic-provider application.
This module handles top-level setup, exception handling, and CLI invocation.
"""

import asyncio
import logging
import sys

import typer
from rich.console import Console

from gplaymusic_provider.cli.app import app
from gplaymusic_provider.cli.formatters import format_error_with_suggestions
from gplaymusic_provider.exceptions import GPlayMusicError


def main() -> None:
    """Main entry point function."""
    log = logging.getLogger("gplaymusic_provider")
    console = Console()

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]⚠️  Operation cancelled by user.[/yellow]")
        sys.exit(0)
    except GPlayMusicError as e:
        console.print()
        console.print(format_error_with_suggestions(e))
        sys.exit(1)
    except Exception:
        console.print("\n[red]An unexpected error occurred.[/red]")
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
