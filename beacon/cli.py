#!/usr/bin/env python3
"""
beacon: inspect the telemetry a host application would send, and why.
"""
import logging

import typer

from beacon.commands import config_cmd, telemetry_cmd
from beacon.error_handler import debug_mode

app = typer.Typer(
    name="beacon",
    help="Opt-out usage telemetry: consent, identity and allowlists.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(telemetry_cmd.app, name="telemetry", help="Inspect telemetry state")
app.add_typer(config_cmd.app, name="config", help="Inspect configuration")


@app.callback()
def main_callback(
    debug: bool = typer.Option(False, "--debug", help="Log pipeline internals to stderr."),
):
    """Opt-out usage telemetry: consent, identity and allowlists."""
    if debug or debug_mode():
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")


@app.command()
def status():
    """Shortcut for [bold]beacon telemetry status[/bold]."""
    telemetry_cmd.status()


def main():
    app()


if __name__ == "__main__":
    main()
