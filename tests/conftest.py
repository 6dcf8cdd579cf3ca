"""Shared test fixtures."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

from issue_investigator.config import ENV_PREFIX
from issue_investigator.orchestrator.ownership import WorkerOwnership
from issue_investigator.orchestrator.repository import QueueRepository

FAKE_INVESTIGATION_COMMAND = (
    f"{sys.executable} -m issue_investigator.orchestrator.backend.fake_investigation"
    " {repo} {issue}"
)


@pytest.fixture()
def fake_command() -> str:
    """Command template running the bundled stand-in investigation."""

    return FAKE_INVESTIGATION_COMMAND


@pytest.fixture()
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture()
def repository(data_dir: Path) -> QueueRepository:
    repo = QueueRepository(
        queue_path=data_dir / "queue.json",
        investigated_path=data_dir / "investigated.json",
    )
    repo.init_state()
    return repo


@pytest.fixture()
def ownership(data_dir: Path) -> WorkerOwnership:
    return WorkerOwnership(data_dir / "worker.lock")


@pytest.fixture()
def clean_env(monkeypatch, data_dir: Path) -> Path:
    """Drop inherited ISSUE_INVESTIGATOR_* variables and point state at ``data_dir``."""

    for name in list(os.environ):
        if name.startswith(ENV_PREFIX) or name == "GITHUB_TOKEN":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv(f"{ENV_PREFIX}DATA_DIR", str(data_dir))
    return data_dir


@pytest.fixture()
def dead_pid() -> int:
    """PID of a process that has already exited and been reaped."""

    process = subprocess.Popen([sys.executable, "-c", "pass"])  # noqa: S603
    process.wait()
    return process.pid
