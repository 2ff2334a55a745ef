"""Shared UI theme and console for the beacon CLI."""

from rich.console import Console
from rich.theme import Theme

BEACON_THEME = Theme({
    "info": "cyan",
    "success": "bold green",
    "warning": "yellow",
    "error": "bold red",
    "brand": "bold cyan",
    "muted": "dim",
})

console = Console(theme=BEACON_THEME)
