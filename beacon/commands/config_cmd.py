"""CLI commands for configuration inspection."""
from __future__ import annotations

import typer

from beacon.error_handler import handle_errors
from beacon.ui import console

app = typer.Typer(
    name="config",
    help="Inspect beacon configuration.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.command()
@handle_errors
def show():
    """Display the resolved configuration (all layers merged)."""
    from rich.panel import Panel
    from rich.table import Table
    from beacon.core.config_service import get_config_service

    svc = get_config_service()
    info = svc.show()

    sources = info["sources"]
    console.print(Panel(
        f"Global:  {sources['global_config'] or '[dim]not found[/dim]'}\n"
        f"Project: {sources['project_config'] or '[dim]not found[/dim]'}",
        title="Config Sources",
        border_style="cyan",
    ))

    resolved = info["resolved"]
    for section in ("telemetry", "host"):
        values = resolved.get(section, {})
        if not isinstance(values, dict):
            continue
        table = Table(title=section.capitalize(), show_header=True)
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for key, val in values.items():
            table.add_row(f"{section}.{key}", str(val))
        console.print(table)


@app.command()
@handle_errors
def check():
    """Validate telemetry settings, failing on the first bad value."""
    from beacon.core.config_service import get_config_service

    settings = get_config_service().telemetry_settings(strict=True)
    console.print(f"[green]Configuration OK.[/green] Transport: {settings.transport}")
