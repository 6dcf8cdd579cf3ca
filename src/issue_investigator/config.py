"""Runtime configuration for the trigger server, worker and reconciler."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

ENV_PREFIX = "ISSUE_INVESTIGATOR_"
DEFAULT_DATA_DIR = Path("/data")
DEFAULT_INVESTIGATE_COMMAND = "investigate.sh {repo} {issue}"


@dataclass(slots=True)
class StateSettings:
    """Locations of the shared state files."""

    data_dir: Path = DEFAULT_DATA_DIR
    logs_dir: Path | None = None

    @property
    def queue_path(self) -> Path:
        return self.data_dir / "queue.json"

    @property
    def investigated_path(self) -> Path:
        return self.data_dir / "investigated.json"

    @property
    def worker_lock_path(self) -> Path:
        return self.data_dir / "worker.lock"

    @property
    def effective_logs_dir(self) -> Path:
        return self.logs_dir if self.logs_dir is not None else self.data_dir / "logs"


@dataclass(slots=True)
class WorkerSettings:
    """Investigation execution and failure-backoff policy."""

    investigate_command: str = DEFAULT_INVESTIGATE_COMMAND
    investigation_timeout_seconds: int = 3_600
    graceful_shutdown_seconds: int = 30
    backoff_threshold: int = 3
    exit_threshold: int = 6
    cooldown_seconds: float = 1_800.0


@dataclass(slots=True)
class GitHubSettings:
    """GitHub REST API access for catchup reconciliation."""

    api_url: str = "https://api.github.com"
    token: str = ""
    timeout_seconds: float = 30.0
    max_pages: int = 10


@dataclass(slots=True)
class ServerSettings:
    """HTTP trigger endpoint binding."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8099


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    state: StateSettings = field(default_factory=StateSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    server: ServerSettings = field(default_factory=ServerSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, data_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults matching the container layout."""

        resolved_data_dir = data_dir or Path(_env("DATA_DIR", str(DEFAULT_DATA_DIR)))
        logs_dir_raw = _env("LOGS_DIR", "").strip()
        return cls(
            state=StateSettings(
                data_dir=resolved_data_dir,
                logs_dir=Path(logs_dir_raw) if logs_dir_raw else None,
            ),
            worker=WorkerSettings(
                investigate_command=_env("INVESTIGATE_COMMAND", DEFAULT_INVESTIGATE_COMMAND),
                investigation_timeout_seconds=int(_env("INVESTIGATION_TIMEOUT_SECONDS", "3600")),
                graceful_shutdown_seconds=int(_env("GRACEFUL_SHUTDOWN_SECONDS", "30")),
                backoff_threshold=int(_env("BACKOFF_THRESHOLD", "3")),
                exit_threshold=int(_env("EXIT_THRESHOLD", "6")),
                cooldown_seconds=float(_env("COOLDOWN_SECONDS", "1800")),
            ),
            github=GitHubSettings(
                api_url=_env("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
                token=_env("GITHUB_TOKEN", os.getenv("GITHUB_TOKEN", "")).strip(),
                timeout_seconds=float(_env("GITHUB_TIMEOUT_SECONDS", "30")),
                max_pages=int(_env("GITHUB_MAX_PAGES", "10")),
            ),
            server=ServerSettings(
                host=_env("HOST", "0.0.0.0"),  # noqa: S104
                port=int(_env("PORT", "8099")),
            ),
            log_level=_env("LOG_LEVEL", "INFO").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for inconsistent worker or server settings."""

        worker = self.worker
        if worker.backoff_threshold <= 0:
            raise ValueError(f"{ENV_PREFIX}BACKOFF_THRESHOLD must be > 0.")
        if worker.exit_threshold <= worker.backoff_threshold:
            raise ValueError(
                f"{ENV_PREFIX}EXIT_THRESHOLD must be greater than {ENV_PREFIX}BACKOFF_THRESHOLD "
                f"(got {worker.exit_threshold} <= {worker.backoff_threshold}).",
            )
        if worker.cooldown_seconds < 0:
            raise ValueError(f"{ENV_PREFIX}COOLDOWN_SECONDS must be >= 0.")
        if worker.investigation_timeout_seconds <= 0:
            raise ValueError(f"{ENV_PREFIX}INVESTIGATION_TIMEOUT_SECONDS must be > 0.")
        if worker.graceful_shutdown_seconds < 0:
            raise ValueError(f"{ENV_PREFIX}GRACEFUL_SHUTDOWN_SECONDS must be >= 0.")
        template = worker.investigate_command
        if "{repo}" not in template and not ("{owner}" in template and "{name}" in template):
            raise ValueError(
                f"{ENV_PREFIX}INVESTIGATE_COMMAND must include {{repo}} or {{owner}} and {{name}}.",
            )
        if not 0 < self.server.port < 65_536:
            raise ValueError(f"{ENV_PREFIX}PORT must be between 1 and 65535.")
        if self.github.max_pages <= 0:
            raise ValueError(f"{ENV_PREFIX}GITHUB_MAX_PAGES must be > 0.")
        parsed = urlparse(self.github.api_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"Invalid GitHub API URL: {self.github.api_url!r}.")


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)
