from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import allure
import pytest

from issue_investigator.config import ENV_PREFIX, Settings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Environment Settings"),
]


def test_defaults(clean_env: Path, monkeypatch) -> None:
    monkeypatch.delenv(f"{ENV_PREFIX}DATA_DIR")

    settings = Settings.from_env()

    assert settings.state.data_dir == Path("/data")
    assert settings.state.queue_path == Path("/data/queue.json")
    assert settings.state.investigated_path == Path("/data/investigated.json")
    assert settings.state.worker_lock_path == Path("/data/worker.lock")
    assert settings.state.effective_logs_dir == Path("/data/logs")
    assert settings.worker.investigate_command == "investigate.sh {repo} {issue}"
    assert settings.worker.backoff_threshold == 3
    assert settings.worker.exit_threshold == 6
    assert settings.worker.cooldown_seconds == 1800
    assert settings.worker.investigation_timeout_seconds == 3600
    assert settings.github.api_url == "https://api.github.com"
    assert settings.github.token == ""
    assert settings.server.port == 8099
    assert settings.log_level == "INFO"
    settings.validate()


def test_env_overrides(clean_env: Path, monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv(f"{ENV_PREFIX}LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv(f"{ENV_PREFIX}INVESTIGATE_COMMAND", "run {owner} {name} {issue}")
    monkeypatch.setenv(f"{ENV_PREFIX}COOLDOWN_SECONDS", "2.5")
    monkeypatch.setenv(f"{ENV_PREFIX}GITHUB_API_URL", "https://ghe.example.test/api/v3/")
    monkeypatch.setenv(f"{ENV_PREFIX}PORT", "9000")
    monkeypatch.setenv(f"{ENV_PREFIX}LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.state.data_dir == clean_env
    assert settings.state.effective_logs_dir == tmp_path / "logs"
    assert settings.worker.investigate_command == "run {owner} {name} {issue}"
    assert settings.worker.cooldown_seconds == 2.5
    assert settings.github.api_url == "https://ghe.example.test/api/v3"
    assert settings.server.port == 9000
    assert settings.log_level == "DEBUG"
    settings.validate()


def test_explicit_data_dir_wins(clean_env: Path, tmp_path: Path) -> None:
    settings = Settings.from_env(data_dir=tmp_path / "other")

    assert settings.state.queue_path == tmp_path / "other" / "queue.json"


def test_plain_github_token_is_fallback(clean_env: Path, monkeypatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "plain")
    assert Settings.from_env().github.token == "plain"

    monkeypatch.setenv(f"{ENV_PREFIX}GITHUB_TOKEN", "prefixed")
    assert Settings.from_env().github.token == "prefixed"


@pytest.mark.parametrize(
    ("section", "changes", "message"),
    [
        ("worker", {"backoff_threshold": 0}, "BACKOFF_THRESHOLD"),
        ("worker", {"exit_threshold": 3}, "EXIT_THRESHOLD"),
        ("worker", {"cooldown_seconds": -1.0}, "COOLDOWN_SECONDS"),
        ("worker", {"investigate_command": "investigate.sh {issue}"}, "INVESTIGATE_COMMAND"),
        ("server", {"port": 70_000}, "PORT"),
        ("github", {"api_url": "ftp://example.test"}, "GitHub API URL"),
    ],
)
def test_validate_rejects_inconsistent_settings(
    clean_env: Path,
    section: str,
    changes: dict[str, object],
    message: str,
) -> None:
    settings = Settings.from_env()
    settings = replace(settings, **{section: replace(getattr(settings, section), **changes)})

    with pytest.raises(ValueError, match=message):
        settings.validate()
