"""Tests for config module."""

from pathlib import Path

import pytest

from notebox_mcp.config import Config

ENV_VARS = (
    "NOTEBOX_STATE_DIR",
    "NOTEBOX_WORKSPACE",
    "NOTEBOX_PORT",
    "NOTEBOX_READ_ONLY",
    "NOTEBOX_DEBOUNCE_MS",
    "NOTEBOX_SYNC_INTERVAL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_config_defaults():
    """Test config loads with defaults when no env vars set."""
    config = Config.from_env()
    assert config.state_dir == Path.home() / ".notebox"
    assert config.workspace is None
    assert config.port == 8080
    assert config.read_only is False
    assert config.debounce_ms == 250
    assert config.sync_interval == 30
    assert config.settings_path == Path.home() / ".notebox" / "settings.json"


def test_config_from_env(monkeypatch):
    """Test config loads from environment variables."""
    monkeypatch.setenv("NOTEBOX_STATE_DIR", "/custom/state")
    monkeypatch.setenv("NOTEBOX_WORKSPACE", "/custom/notes")
    monkeypatch.setenv("NOTEBOX_PORT", "9000")
    monkeypatch.setenv("NOTEBOX_DEBOUNCE_MS", "100")

    config = Config.from_env()
    assert config.state_dir == Path("/custom/state")
    assert config.workspace == Path("/custom/notes")
    assert config.port == 9000
    assert config.debounce_ms == 100
    assert config.debounce_seconds == pytest.approx(0.1)


def test_config_from_env_creates_new_instances():
    """Test Config.from_env() creates new instances each time."""
    config1 = Config.from_env()
    config2 = Config.from_env()
    assert config1 is not config2


def test_config_tilde_expansion(monkeypatch):
    """Test config expands tilde in paths."""
    monkeypatch.setenv("NOTEBOX_STATE_DIR", "~/custom/state")
    monkeypatch.setenv("NOTEBOX_WORKSPACE", "~/notes")
    config = Config.from_env()
    assert "~" not in str(config.state_dir)
    assert config.state_dir.is_absolute()
    assert config.workspace.is_absolute()


def test_config_workspace_override(monkeypatch):
    """Test CLI workspace wins over the env var."""
    monkeypatch.setenv("NOTEBOX_WORKSPACE", "/from/env")
    config = Config.from_env(workspace_override="/from/cli")
    assert config.workspace == Path("/from/cli")


def test_config_invalid_port_non_numeric(monkeypatch):
    """Test config raises error for non-numeric port."""
    monkeypatch.setenv("NOTEBOX_PORT", "not_a_number")
    with pytest.raises(ValueError, match="Invalid NOTEBOX_PORT"):
        Config.from_env()


def test_config_invalid_port_out_of_range(monkeypatch):
    """Test config raises error for port out of valid range."""
    monkeypatch.setenv("NOTEBOX_PORT", "70000")
    with pytest.raises(ValueError, match="Port must be between 1 and 65535"):
        Config.from_env()


@pytest.mark.parametrize("value", ["1", "true", "YES"])
def test_config_read_only_from_env(monkeypatch, value):
    monkeypatch.setenv("NOTEBOX_READ_ONLY", value)
    assert Config.from_env().read_only is True


def test_config_read_only_override(monkeypatch):
    """Test CLI flag takes precedence over env var."""
    monkeypatch.setenv("NOTEBOX_READ_ONLY", "true")
    assert Config.from_env(read_only_override=False).read_only is False


def test_config_invalid_debounce(monkeypatch):
    monkeypatch.setenv("NOTEBOX_DEBOUNCE_MS", "-1")
    with pytest.raises(ValueError, match="Invalid NOTEBOX_DEBOUNCE_MS"):
        Config.from_env()


def test_config_sync_interval_from_env(monkeypatch):
    """Test sync_interval loads from environment."""
    monkeypatch.setenv("NOTEBOX_SYNC_INTERVAL", "60")
    config = Config.from_env()
    assert config.sync_interval == 60


def test_config_sync_interval_disabled(monkeypatch):
    """Test sync_interval can be set to 0 to disable."""
    monkeypatch.setenv("NOTEBOX_SYNC_INTERVAL", "0")
    config = Config.from_env()
    assert config.sync_interval == 0


def test_config_sync_interval_invalid_non_numeric(monkeypatch):
    """Test config raises error for non-numeric sync interval."""
    monkeypatch.setenv("NOTEBOX_SYNC_INTERVAL", "fast")
    with pytest.raises(ValueError, match="Invalid NOTEBOX_SYNC_INTERVAL"):
        Config.from_env()


def test_config_sync_interval_invalid_negative(monkeypatch):
    """Test config raises error for negative sync interval."""
    monkeypatch.setenv("NOTEBOX_SYNC_INTERVAL", "-5")
    with pytest.raises(ValueError, match="Sync interval must be >= 0"):
        Config.from_env()
