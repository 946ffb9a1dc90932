from __future__ import annotations

from sqlalchemy import func, select
from typer.testing import CliRunner

from inviteflow.cli import app
from inviteflow.models import Event, Invitation, Profile

runner = CliRunner()


def test_add_user_prints_token(session):
    result = runner.invoke(app, ["add-user", "New@Example.com", "--name", "Nia"])

    assert result.exit_code == 0, result.output
    token = result.output.strip()
    profile = session.scalars(select(Profile)).one()
    assert profile.email == "new@example.com"
    assert profile.api_token == token


def test_add_user_rejects_duplicate(owner):
    result = runner.invoke(app, ["add-user", "owner@example.com"])
    assert result.exit_code == 1


def test_user_token_rotation(session, owner):
    shown = runner.invoke(app, ["user-token", "owner@example.com"])
    assert shown.output.strip() == owner.api_token

    rotated = runner.invoke(app, ["user-token", "owner@example.com", "--rotate"])
    assert rotated.exit_code == 0
    session.expire_all()
    assert session.get(Profile, owner.id).api_token == rotated.output.strip()
    assert rotated.output.strip() != shown.output.strip()

    missing = runner.invoke(app, ["user-token", "ghost@example.com"])
    assert missing.exit_code == 1


def test_seed_data_populates_database(session):
    result = runner.invoke(
        app,
        ["seed-data", "--users", "3", "--events-per-user", "2", "--invitations-per-event", "3"],
    )

    assert result.exit_code == 0, result.output
    assert "3 users, 6 events" in result.output
    session.expire_all()
    assert session.scalar(select(func.count(Profile.id))) == 3
    assert session.scalar(select(func.count(Event.id))) == 6
    assert session.scalar(select(func.count(Invitation.id))) <= 18
