"""Print the broker configuration and whether it is complete."""
from __future__ import annotations

import typer

from embed_broker.core.config import get_settings, validate_settings
from embed_broker.core.logging import settings_summary


def check() -> None:
    """Show a masked configuration summary, errors and warnings."""

    settings = get_settings()
    typer.echo("Configuration Summary:")
    for name, value in settings_summary(settings).items():
        typer.echo(f"   {name}: {value}")

    validation = validate_settings(settings)
    for warning in validation.warnings:
        typer.echo(f"Warning: {warning}")
    if not validation.is_valid:
        for error in validation.errors:
            typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1)
    typer.echo("Configuration is valid.")


app = typer.Typer(add_completion=False)
app.command()(check)


if __name__ == "__main__":
    app()
