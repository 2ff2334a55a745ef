"""Unified CLI error handler for beacon commands."""

from __future__ import annotations

import functools
import logging
import os
import traceback

import typer

from beacon.errors import BeaconError, ConfigError
from beacon.ui import console

logger = logging.getLogger("beacon.error_handler")


def debug_mode() -> bool:
    """Check if debug output is enabled via BEACON_DEBUG env var."""
    return os.environ.get("BEACON_DEBUG", "").lower() in ("1", "true", "yes")


def _render_beacon_error(e: BeaconError) -> None:
    """Render a BeaconError with Rich formatting and context."""
    console.print(f"\n[bold red]Error:[/bold red] {e}")

    if e.context and debug_mode():
        console.print("[dim]Context:[/dim]")
        for key, value in e.context.items():
            if value:
                console.print(f"  [dim]{key}:[/dim] {value}")

    if isinstance(e, ConfigError):
        console.print("[dim]Run 'beacon config show' to see the resolved configuration.[/dim]")


def handle_errors(func):
    """Decorator that catches BeaconError and renders formatted CLI output."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except BeaconError as e:
            _render_beacon_error(e)
            if debug_mode():
                console.print(f"\n[dim]{traceback.format_exc()}[/dim]")
            raise typer.Exit(1)
        except KeyboardInterrupt:
            console.print("\n[dim]Interrupted.[/dim]")
            raise typer.Exit(130)
        except (typer.Exit, typer.Abort, SystemExit):
            raise
        except Exception as e:
            console.print(f"\n[bold red]Unexpected error:[/bold red] {e}")
            if debug_mode():
                console.print(f"\n[dim]{traceback.format_exc()}[/dim]")
            else:
                console.print("[dim]Set BEACON_DEBUG=1 for full traceback.[/dim]")
            raise typer.Exit(1)

    return wrapper
