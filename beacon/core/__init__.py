"""Service layer for beacon.

Services never import from beacon.ui, beacon.cli, or typer. The CLI handles
presentation.
"""
