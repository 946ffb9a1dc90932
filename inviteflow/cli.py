"""Typer CLI for InviteFlow."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .crud import create_profile, get_profile_by_email, rotate_api_token
from .database import get_session
from .seed import seed_fake_data
from .storage import init_db, upgrade_database

app = typer.Typer(help="InviteFlow command-line interface")


def _readonly_exit(exc: OperationalError, action: str) -> None:
    message = str(getattr(exc, "orig", exc)).lower()
    if "readonly" in message or "read-only" in message:
        typer.secho(
            f"Unable to {action} because the database is read-only. "
            f"Ensure write access to {settings.database_path}.",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        _readonly_exit(exc, "upgrade")
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start the FastAPI application."""
    init_db()
    config = uvicorn.Config(
        "inviteflow.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting InviteFlow on {host}:{port}")
    server.run()


@app.command("add-user")
def add_user(
    email: str = typer.Argument(..., help="Email address of the new user"),
    full_name: str | None = typer.Option(None, "--name", help="Display name"),
) -> None:
    """Create a user profile and print its API token."""
    init_db()
    try:
        with get_session() as session:
            profile = create_profile(session, email=email, full_name=full_name)
            token = profile.api_token
    except ValueError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except OperationalError as exc:
        _readonly_exit(exc, "create the user")
        raise
    typer.echo(token)


@app.command("user-token")
def user_token(
    email: str = typer.Argument(..., help="Email address of the user"),
    rotate: bool = typer.Option(
        False, "--rotate", help="Issue a new token, invalidating the old one"
    ),
) -> None:
    """Print (or rotate) a user's API token."""
    init_db()
    with get_session() as session:
        profile = get_profile_by_email(session, email)
        if profile is None:
            typer.secho(f"No user with email {email}", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
        token = rotate_api_token(session, profile) if rotate else profile.api_token
    typer.echo(token)


@app.command("seed-data")
def seed_data(
    users: int = typer.Option(
        settings.seed_users, "--users", min=1, help="Number of users to create"
    ),
    events_per_user: int = typer.Option(
        settings.seed_events_per_user,
        "--events-per-user",
        min=0,
        help="Events owned by each user",
    ),
    invitations_per_event: int = typer.Option(
        settings.seed_invitations_per_event,
        "--invitations-per-event",
        min=0,
        help="Maximum invitations attached to each event",
    ),
):
    """Populate the database with fake users, events and invitations."""
    stats = seed_fake_data(
        user_count=users,
        events_per_user=events_per_user,
        max_invitations_per_event=invitations_per_event,
    )
    typer.echo(
        f"Seed complete: {stats['users']} users, {stats['events']} events, "
        f"{stats['invitations']} invitations created."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Print the effective configuration"
    ),
    invite_code_length: int | None = typer.Option(
        None, "--invite-code-length", min=4, help="Length of event invite codes"
    ),
    short_code_length: int | None = typer.Option(
        None, "--short-code-length", min=4, help="Length of invitation short codes"
    ),
    code_max_attempts: int | None = typer.Option(
        None,
        "--code-max-attempts",
        min=1,
        help="Attempts before giving up on a unique code",
    ),
    join_auto_accept: bool | None = typer.Option(
        None,
        "--join-auto-accept/--no-join-auto-accept",
        help="Treat joining with an invite code as a yes response",
    ),
    base_url: str | None = typer.Option(
        None, "--base-url", help="Public URL used when building invitation links"
    ),
    signin_path: str | None = typer.Option(
        None, "--signin-path", help="Where unauthenticated link visitors are sent"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    events_per_page: int | None = typer.Option(
        None, "--events-per-page", min=1, help="Default event list size"
    ),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Configuration file to read and write"
    ),
):
    """View or update the persistent configuration file."""
    updates = {
        "invite_code_length": invite_code_length,
        "short_code_length": short_code_length,
        "code_max_attempts": code_max_attempts,
        "join_auto_accept": join_auto_accept,
        "base_url": base_url,
        "signin_path": signin_path,
        "app_host": host,
        "app_port": port,
        "events_per_page": events_per_page,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}
    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
