"""Configuration loading from environment and .env.defaults."""
from pathlib import Path

import pytest

from settlement_validation import env_defaults
from settlement_validation.config import Timeouts, ValidationConfig


def test_builtin_defaults():
    config = ValidationConfig()
    assert config.base_url == "http://localhost:8080"
    assert config.browser_type == "chromium"
    assert config.headless is True
    assert config.admin.username == "admin"
    assert config.user.password == "user123"
    assert config.report_dir == Path("docs/screenshots/role-validation")
    assert config.timeouts == Timeouts()
    assert config.timeouts.settlement == 120.0


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("BASE_URL", "https://settle.example.com/")
    monkeypatch.setenv("ADMIN_PASSWORD", "s3cret")
    monkeypatch.setenv("PLAYWRIGHT_HEADLESS", "false")
    monkeypatch.setenv("PLAYWRIGHT_BROWSER", "Firefox")
    monkeypatch.setenv("TIMEOUT_SCALE", "0.5")

    config = ValidationConfig()

    assert config.base_url == "https://settle.example.com"
    assert config.admin.password == "s3cret"
    assert config.headless is False
    assert config.browser_type == "firefox"
    assert config.timeouts.settlement == 60.0
    assert config.timeouts.row_creation == 7.5


def test_arguments_win_over_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("BASE_URL", "http://env:8080")
    config = ValidationConfig(base_url="http://arg:9000", screenshot_dir=str(tmp_path), headless=False)
    assert config.base_url == "http://arg:9000"
    assert config.screenshot_dir == tmp_path
    assert config.headless is False


def test_env_defaults_file(monkeypatch, tmp_path):
    defaults = tmp_path / ".env.defaults"
    defaults.write_text(
        "# comment\nBASE_URL=http://from-file:8080\nUSER_USERNAME='viewer'\nbroken line\n",
        encoding="utf-8",
    )
    monkeypatch.setenv(env_defaults.DEFAULTS_FILE_ENV, str(defaults))
    env_defaults.reset_cache()

    config = ValidationConfig()
    assert config.base_url == "http://from-file:8080"
    assert config.user.username == "viewer"

    monkeypatch.setenv("USER_USERNAME", "from-env")
    assert ValidationConfig().user.username == "from-env"


def test_parse_env_file():
    assert env_defaults.parse_env_file('A=1\n\n#B=2\nC="x y"\nD\n') == {"A": "1", "C": "x y"}


@pytest.mark.parametrize(
    "key,value",
    [
        ("BASE_URL", "localhost:8080"),
        ("PLAYWRIGHT_BROWSER", "opera"),
        ("SCREENSHOT_FORMAT", "gif"),
        ("TIMEOUT_SCALE", "0"),
    ],
)
def test_invalid_values(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValueError):
        ValidationConfig()


def test_describe_masks_passwords():
    line = ValidationConfig().describe()
    assert line.startswith("[CONFIG]")
    assert "admin123" not in line
    assert "admin/********" in line


def test_use_profile_restores_previous():
    config = ValidationConfig()
    assert config.active.name == "admin"
    with config.use_profile(config.user) as profile:
        assert config.active.name == "user"
        profile.password = "changed"
    assert config.active.name == "admin"
    assert config.user.password == "user123"


def test_url_join():
    config = ValidationConfig(base_url="http://h:1")
    assert config.url("/api/auth/me") == "http://h:1/api/auth/me"
    assert config.url("logs") == "http://h:1/logs"
