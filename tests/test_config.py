from __future__ import annotations

import pytest

from inviteflow import config


@pytest.fixture()
def isolated_env(monkeypatch, tmp_path):
    for key in config.DEFAULTS:
        monkeypatch.delenv(f"INVITEFLOW_{key.upper()}", raising=False)
    monkeypatch.delenv("INVITEFLOW_CONFIG", raising=False)
    monkeypatch.delenv("INVITEFLOW_DB", raising=False)
    monkeypatch.delenv("INVITEFLOW_DATA_DIR", raising=False)
    monkeypatch.setenv("INVITEFLOW_BASE_DIR", str(tmp_path))
    return tmp_path


def test_defaults_apply_without_config(isolated_env):
    settings = config.load_settings()
    assert settings.invite_code_length == 8
    assert settings.short_code_length == 6
    assert settings.code_max_attempts == 10
    assert settings.join_auto_accept is True
    assert settings.database_path == isolated_env / "data" / "inviteflow.db"


def test_toml_then_env_override(isolated_env, monkeypatch):
    config_path = isolated_env / "inviteflow.toml"
    config.write_config_file(
        {"join_auto_accept": False, "code_max_attempts": 4}, path=config_path
    )
    settings = config.load_settings()
    assert settings.join_auto_accept is False
    assert settings.code_max_attempts == 4

    monkeypatch.setenv("INVITEFLOW_JOIN_AUTO_ACCEPT", "yes")
    monkeypatch.setenv("INVITEFLOW_CODE_MAX_ATTEMPTS", "7")
    settings = config.load_settings()
    assert settings.join_auto_accept is True
    assert settings.code_max_attempts == 7


def test_invalid_values_are_rejected(isolated_env, monkeypatch):
    monkeypatch.setenv("INVITEFLOW_CODE_MAX_ATTEMPTS", "0")
    with pytest.raises(ValueError):
        config.load_settings()
    monkeypatch.setenv("INVITEFLOW_CODE_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("INVITEFLOW_JOIN_AUTO_ACCEPT", "sometimes")
    with pytest.raises(ValueError):
        config.load_settings()
    monkeypatch.setenv("INVITEFLOW_JOIN_AUTO_ACCEPT", "no")
    monkeypatch.setenv("INVITEFLOW_SHORT_CODE_LENGTH", "2")
    with pytest.raises(ValueError, match="short_code_length"):
        config.load_settings()
    monkeypatch.setenv("INVITEFLOW_SHORT_CODE_LENGTH", "6")
    monkeypatch.setenv("INVITEFLOW_BASE_URL", "rsvp.example")
    with pytest.raises(ValueError, match="base_url"):
        config.load_settings()


def test_update_config_file_merges_known_keys(isolated_env, monkeypatch):
    monkeypatch.setattr(config, "settings", config.load_settings())
    path = isolated_env / "custom.toml"

    updated = config.update_config_file(
        {"base_url": "https://rsvp.example", "unknown": 1}, path=path
    )

    assert updated.base_url == "https://rsvp.example"
    text = path.read_text(encoding="utf-8")
    assert 'base_url = "https://rsvp.example"' in text
    assert "unknown" not in text
