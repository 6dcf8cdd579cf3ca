from __future__ import annotations

import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from issue_investigator.config import ENV_PREFIX, Settings
from issue_investigator.github.client import OpenIssuesResult
from issue_investigator import main
from issue_investigator.main import issue_investigator
from issue_investigator.orchestrator import controllers
from issue_investigator.orchestrator.ownership import WorkerOwnership
from issue_investigator.orchestrator.repository import QueueRepository
from issue_investigator.orchestrator.services import TriggerService

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Queue Operations"),
]


class _OpenIssues:
    def list_open_issues(self, repo: str) -> OpenIssuesResult:
        return OpenIssuesResult(repo=repo, numbers=(10, 11), ok=True)


class _Launcher:
    launches = 0

    def launch(self) -> int:
        type(self).launches += 1
        return os.getpid()


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch) -> None:
    monkeypatch.setattr(main, "configure_logging", lambda _level: None)


def _use_fake_trigger_service(monkeypatch) -> None:
    _Launcher.launches = 0

    @contextmanager
    def _fake(settings: Settings) -> Iterator[TriggerService]:
        yield TriggerService(
            repository=controllers.build_repository(settings),
            ownership=controllers.build_ownership(settings),
            issues=_OpenIssues(),
            launcher=_Launcher(),
        )

    monkeypatch.setattr(controllers, "trigger_service", _fake)


def test_trigger_command_queues_and_reports(clean_env: Path, monkeypatch) -> None:
    _use_fake_trigger_service(monkeypatch)

    result = CliRunner().invoke(
        issue_investigator,
        ["trigger", "--repo", "org/repo", "--issue", "11"],
    )

    assert result.exit_code == 0, result.output
    assert "Issue org/repo#11: added to queue" in result.output
    assert "Queue length: 2 catchup_added=1" in result.output
    assert "Worker: started" in result.output
    assert _Launcher.launches == 1
    queue = json.loads((clean_env / "queue.json").read_text("utf-8"))
    assert [entry["issue"] for entry in queue] == [11, 10]


def test_trigger_command_rejects_bad_repo(clean_env: Path, monkeypatch) -> None:
    _use_fake_trigger_service(monkeypatch)

    result = CliRunner().invoke(issue_investigator, ["trigger", "--repo", "nope", "--issue", "1"])

    assert result.exit_code == 2
    assert "Invalid repo format" in result.output
    assert not (clean_env / "queue.json").exists()
    assert _Launcher.launches == 0


def test_status_command_json(clean_env: Path, repository: QueueRepository) -> None:
    repository.enqueue("org/repo", 3)
    repository.mark_completed("org/repo", 1)

    result = CliRunner().invoke(issue_investigator, ["status", "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["queue_length"] == 1
    assert payload["investigated"] == {"org/repo": [1]}
    assert payload["worker_running"] is False


def test_status_command_table(clean_env: Path, repository: QueueRepository) -> None:
    repository.enqueue("org/repo", 3)
    repository.mark_completed("org/repo", 1)
    repository.mark_completed("org/repo", 2)

    result = CliRunner().invoke(issue_investigator, ["status"])

    assert result.exit_code == 0, result.output
    assert "Worker: idle" in result.output
    assert "Queue: 1" in result.output
    assert "1. org/repo#3" in result.output
    assert "Investigated: 2" in result.output
    assert "org/repo: 1, 2" in result.output


def test_forget_command(clean_env: Path, repository: QueueRepository) -> None:
    repository.mark_completed("org/repo", 9)
    runner = CliRunner()

    first = runner.invoke(issue_investigator, ["forget", "--repo", "org/repo", "--issue", "9"])
    second = runner.invoke(issue_investigator, ["forget", "--repo", "org/repo", "--issue", "9"])

    assert first.exit_code == 0, first.output
    assert "Forgot org/repo#9" in first.output
    assert "was not marked as investigated" in second.output
    assert repository.is_completed("org/repo", 9) is False


def test_worker_command_drains_queue(
    clean_env: Path,
    monkeypatch,
    repository: QueueRepository,
    fake_command: str,
) -> None:
    monkeypatch.setenv(f"{ENV_PREFIX}INVESTIGATE_COMMAND", fake_command)
    repository.enqueue("org/repo", 42)

    result = CliRunner().invoke(issue_investigator, ["worker"])

    assert result.exit_code == 0, result.output
    assert "reason=drained processed=1 succeeded=1 failed=0" in result.output
    assert repository.is_completed("org/repo", 42) is True
    assert not (clean_env / "worker.lock").exists()
    log_names = [path.name for path in (clean_env / "logs").iterdir()]
    assert any(name.startswith("investigation-org-repo-42-") for name in log_names)


def test_worker_command_fails_when_not_owner(
    clean_env: Path,
    repository: QueueRepository,
    ownership: WorkerOwnership,
) -> None:
    repository.enqueue("org/repo", 42)
    ownership.record(os.getppid())

    result = CliRunner().invoke(issue_investigator, ["worker"])

    assert result.exit_code == 1
    assert "reason=not_owner" in result.output
    assert repository.length() == 1


def test_release_worker_command(clean_env: Path, ownership: WorkerOwnership, dead_pid: int) -> None:
    runner = CliRunner()
    ownership.record(os.getppid())

    alive = runner.invoke(issue_investigator, ["release-worker"])
    assert "is alive" in alive.output
    assert ownership.owner_pid() == os.getppid()

    ownership.record(dead_pid)
    stale = runner.invoke(issue_investigator, ["release-worker"])
    assert "Stale worker marker removed." in stale.output

    empty = runner.invoke(issue_investigator, ["release-worker"])
    assert "No worker marker present." in empty.output


def test_invalid_configuration_is_reported(clean_env: Path, monkeypatch) -> None:
    monkeypatch.setenv(f"{ENV_PREFIX}EXIT_THRESHOLD", "2")

    result = CliRunner().invoke(issue_investigator, ["status"])

    assert result.exit_code == 1
    assert "EXIT_THRESHOLD" in result.output
