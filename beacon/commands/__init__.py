"""Typer sub-applications for the beacon CLI."""
