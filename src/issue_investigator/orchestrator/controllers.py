"""Controllers for trigger, worker and inspection CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from issue_investigator.config import Settings
from issue_investigator.github.client import GitHubIssuesClient
from issue_investigator.orchestrator.backend import CliInvestigationBackend
from issue_investigator.orchestrator.launcher import SubprocessWorkerLauncher
from issue_investigator.orchestrator.models import StatusSnapshot, validate_target
from issue_investigator.orchestrator.ownership import WorkerOwnership
from issue_investigator.orchestrator.repository import QueueRepository
from issue_investigator.orchestrator.services import TriggerService, status_snapshot
from issue_investigator.orchestrator.worker import InvestigationWorker, WorkerRunSummary


@dataclass(slots=True)
class TriggerCommand:
    """CLI input for a manual trigger."""

    data_dir: Path | None
    repo: str
    issue: int


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for foreground worker execution."""

    data_dir: Path | None


@dataclass(slots=True)
class StatusCommand:
    """CLI input for the status snapshot."""

    data_dir: Path | None
    output_format: str = "table"


@dataclass(slots=True)
class ForgetCommand:
    """CLI input for resetting one completed issue."""

    data_dir: Path | None
    repo: str
    issue: int


@dataclass(slots=True)
class ReleaseWorkerCommand:
    """CLI input for clearing a stuck ownership marker."""

    data_dir: Path | None


@dataclass(slots=True)
class WorkerRunResult:
    """Worker report to render in CLI."""

    lines: list[str]
    summary: WorkerRunSummary


def build_repository(settings: Settings) -> QueueRepository:
    return QueueRepository(
        queue_path=settings.state.queue_path,
        investigated_path=settings.state.investigated_path,
    )


def build_ownership(settings: Settings) -> WorkerOwnership:
    return WorkerOwnership(settings.state.worker_lock_path)


@contextmanager
def trigger_service(settings: Settings) -> Iterator[TriggerService]:
    """Wire a trigger service; the GitHub client is closed on exit."""

    with GitHubIssuesClient(
        api_url=settings.github.api_url,
        token=settings.github.token,
        timeout_seconds=settings.github.timeout_seconds,
        max_pages=settings.github.max_pages,
    ) as issues:
        yield TriggerService(
            repository=build_repository(settings),
            ownership=build_ownership(settings),
            issues=issues,
            launcher=SubprocessWorkerLauncher(
                logs_dir=settings.state.effective_logs_dir,
                data_dir=settings.state.data_dir,
            ),
        )


def build_worker(settings: Settings) -> InvestigationWorker:
    worker_settings = settings.worker
    return InvestigationWorker(
        repository=build_repository(settings),
        ownership=build_ownership(settings),
        backend=CliInvestigationBackend(
            command_template=worker_settings.investigate_command,
            logs_dir=settings.state.effective_logs_dir,
        ),
        investigation_timeout_seconds=worker_settings.investigation_timeout_seconds,
        graceful_shutdown_seconds=worker_settings.graceful_shutdown_seconds,
        backoff_threshold=worker_settings.backoff_threshold,
        exit_threshold=worker_settings.exit_threshold,
        cooldown_seconds=worker_settings.cooldown_seconds,
    )


class InvestigatorCliController:
    """Coordinates queue, worker and inspection CLI operations."""

    def trigger(self, command: TriggerCommand) -> list[str]:
        settings = _settings(command.data_dir)
        with trigger_service(settings) as service:
            result = service.trigger(command.repo, command.issue)
        return [
            f"Issue {result.repo}#{result.issue}: "
            f"{'added to queue' if result.inserted else 'already queued/investigated'}",
            f"Queue length: {result.queue_length} catchup_added={result.catchup_added}",
            f"Worker: {result.worker.value}",
        ]

    def run_worker(self, command: WorkerCommand) -> WorkerRunResult:
        settings = _settings(command.data_dir)
        summary = build_worker(settings).run_loop()
        reason = summary.stop_reason.value if summary.stop_reason else "-"
        return WorkerRunResult(
            lines=[
                "Worker summary: "
                f"reason={reason} processed={summary.processed} "
                f"succeeded={summary.succeeded} failed={summary.failed} "
                f"backoffs={summary.backoffs}",
            ],
            summary=summary,
        )

    def status(self, command: StatusCommand) -> list[str]:
        settings = _settings(command.data_dir)
        status = status_snapshot(
            repository=build_repository(settings),
            ownership=build_ownership(settings),
        )
        if command.output_format == "json":
            return [json.dumps(status.to_json(), indent=2, sort_keys=True)]
        return _render_status_lines(status)

    def forget(self, command: ForgetCommand) -> list[str]:
        repo, issue = validate_target(command.repo, command.issue)
        repository = build_repository(_settings(command.data_dir))
        if repository.forget(repo, issue):
            return [f"Forgot {repo}#{issue}; it can be investigated again."]
        return [f"{repo}#{issue} was not marked as investigated."]

    def release_worker(self, command: ReleaseWorkerCommand) -> list[str]:
        ownership = build_ownership(_settings(command.data_dir))
        owner = ownership.live_owner()
        if owner is not None:
            return [f"Worker PID {owner} is alive; stop it instead of clearing its marker."]
        if ownership.force_release():
            return ["Stale worker marker removed."]
        return ["No worker marker present."]


def _render_status_lines(status: StatusSnapshot) -> list[str]:
    worker = f"running (PID {status.worker_pid})" if status.worker_running else "idle"
    lines = [f"Worker: {worker}", f"Queue: {len(status.queue)}"]
    for position, item in enumerate(status.queue, start=1):
        lines.append(f"  {position}. {item.display_name} added={item.added or '-'}")
    total = sum(len(numbers) for numbers in status.investigated.values())
    lines.append(f"Investigated: {total}")
    for repo, numbers in sorted(status.investigated.items()):
        lines.append(f"  {repo}: {', '.join(str(number) for number in numbers)}")
    return lines


def _settings(data_dir: Path | None) -> Settings:
    settings = Settings.from_env(data_dir=data_dir)
    settings.validate()
    return settings
