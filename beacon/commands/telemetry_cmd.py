"""CLI commands for telemetry inspection."""

import typer

from beacon.error_handler import handle_errors
from beacon.ui import console

app = typer.Typer(no_args_is_help=True)

CATEGORIES = ("modules", "module_tags", "engine_features", "application_types", "start_modes")


@app.command()
@handle_errors
def status():
    """Show telemetry status and what's collected."""
    from rich.panel import Panel
    from beacon.telemetry.consent import ConsentGate

    info = ConsentGate().status()

    enabled = info["enabled"]
    status_text = "[bold green]enabled[/bold green]" if enabled else "[bold red]disabled[/bold red]"
    lines = [f"Status: {status_text}  (source: {info['source']})"]

    if info["env_value"]:
        lines.append(f"Env override: {info['env_var']}={info['env_value']}")
    else:
        lines.append(f"[dim]Opt out with {info['env_var']}=1[/dim]")

    lines.append("")
    lines.append("[bold]What we collect:[/bold]")
    for item in info["collected"]:
        lines.append(f"  [green]+[/green] {item}")

    lines.append("")
    lines.append("[bold]What we NEVER collect:[/bold]")
    for item in info["never_collected"]:
        lines.append(f"  [red]-[/red] {item}")

    console.print(Panel("\n".join(lines), title="Telemetry", border_style="cyan"))


@app.command()
@handle_errors
def identity():
    """Show the node identifier this installation reports."""
    from beacon.core.config_service import get_config_service
    from beacon.telemetry.consent import ConsentGate
    from beacon.telemetry.identity import IdentityManager

    if not ConsentGate().is_enabled():
        console.print("[yellow]Telemetry is disabled.[/yellow] No identifier is created or sent.")
        return

    manager = IdentityManager(get_config_service().get_cache_dir())
    node = manager.get_node_identity()

    console.print(f"Node ID: [bold]{node}[/bold]")
    console.print(f"Source:  {node.source.value}")
    console.print(f"File:    {manager.identity_path}")
    if node.is_fallback:
        console.print(
            "[dim]The identifier could not be stored, so the shared fallback ID is reported.[/dim]"
        )


@app.command()
@handle_errors
def allowlist(
    category: str = typer.Argument(None, help=f"One of: {', '.join(CATEGORIES)}"),
):
    """List the names that are reported verbatim."""
    from rich.table import Table
    from beacon.telemetry.allowlists import default_allowlists

    lists = default_allowlists().as_dict()
    if category is not None and category not in lists:
        console.print(f"[red]Unknown category '{category}'.[/red] Choose from: {', '.join(CATEGORIES)}")
        raise typer.Exit(1)

    for name in [category] if category else CATEGORIES:
        table = Table(title=name.replace("_", " ").title(), show_header=False)
        table.add_column("Name", style="cyan")
        for value in lists[name]:
            table.add_row(value)
        console.print(table)
