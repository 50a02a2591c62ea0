"""Issue a development session token accepted by the broker."""
from __future__ import annotations

from typing import Optional

import typer

from embed_broker.core.config import get_settings
from embed_broker.core.security import SecurityError, create_session_token


def issue(
    subject: str = typer.Argument(..., help="User id placed in the 'sub' claim"),
    email: Optional[str] = typer.Option(None, help="Optional 'email' claim"),
    expires_minutes: int = typer.Option(
        60, min=1, max=24 * 60, help="Token lifetime in minutes"
    ),
) -> None:
    """Sign a session token with SESSION_JWT_SECRET and print it."""

    settings = get_settings()
    try:
        token = create_session_token(
            settings=settings,
            sub=subject,
            email=email,
            expires_minutes=expires_minutes,
        )
    except SecurityError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(token)


app = typer.Typer(add_completion=False)
app.command()(issue)


if __name__ == "__main__":
    app()
