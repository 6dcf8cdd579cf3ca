"""Use-case services: trigger handling, catchup reconciliation and status."""

from __future__ import annotations

import logging
from typing import Protocol

from issue_investigator.errors import StateStoreError
from issue_investigator.github.client import OpenIssuesResult
from issue_investigator.orchestrator.launcher import WorkerLauncher
from issue_investigator.orchestrator.models import (
    StatusSnapshot,
    TriggerResult,
    WorkerLaunchStatus,
    validate_target,
)
from issue_investigator.orchestrator.ownership import WorkerOwnership
from issue_investigator.orchestrator.repository import QueueRepository

logger = logging.getLogger(__name__)


class OpenIssuesSource(Protocol):
    """Upstream tracker query used by reconciliation."""

    def list_open_issues(self, repo: str) -> OpenIssuesResult:
        """List open issue numbers for ``repo``."""


class TriggerService:
    """Ensures an issue is queued, resyncs with the tracker and wakes a worker."""

    def __init__(
        self,
        *,
        repository: QueueRepository,
        ownership: WorkerOwnership,
        issues: OpenIssuesSource,
        launcher: WorkerLauncher,
    ) -> None:
        self.repository = repository
        self.ownership = ownership
        self.issues = issues
        self.launcher = launcher

    def trigger(self, repo: object, issue: object) -> TriggerResult:
        """Handle one external event for ``(repo, issue)``.

        Input is validated before any state is touched. Reconciliation is
        best-effort; insertion and worker start are not.
        """

        repo, issue = validate_target(repo, issue)
        self.repository.init_state()

        inserted = self.repository.enqueue(repo, issue)
        logger.info(
            "Issue %s#%s: %s",
            repo,
            issue,
            "added to queue" if inserted else "already queued/investigated",
        )

        catchup_added = self.reconcile(repo)
        queue_length = self.repository.length()
        logger.info("Queue length: %d, catchup added: %d", queue_length, catchup_added)

        return TriggerResult(
            repo=repo,
            issue=issue,
            inserted=inserted,
            queue_length=queue_length,
            catchup_added=catchup_added,
            worker=self.ensure_worker(),
        )

    def reconcile(self, repo: str) -> int:
        """Enqueue every open issue that is neither completed nor queued."""

        logger.info("Scanning for uninvestigated issues in %s", repo)
        result = self.issues.list_open_issues(repo)
        if not result.ok:
            logger.warning(
                "Catchup skipped for %s: could not list open issues (%s)",
                repo,
                result.error or "unknown error",
            )
            return 0
        if not result.numbers:
            logger.info("No open issues reported for %s", repo)
            return 0

        added = 0
        for number in result.numbers:
            if self.repository.is_completed(repo, number) or self.repository.is_queued(
                repo,
                number,
            ):
                continue
            if self.repository.enqueue(repo, number):
                logger.info("Catchup: added %s#%s", repo, number)
                added += 1
        return added

    def ensure_worker(self) -> WorkerLaunchStatus:
        """Start a worker unless a live one owns the queue or nothing is pending."""

        with self.ownership.locked():
            owner = self.ownership.live_owner()
            if owner is not None:
                logger.info("Worker already running (PID %d)", owner)
                return WorkerLaunchStatus.ALREADY_RUNNING
            if self.repository.length() == 0:
                return WorkerLaunchStatus.NOT_NEEDED
            try:
                pid = self.launcher.launch()
                self.ownership.record(pid)
            except (OSError, StateStoreError):
                logger.exception("Failed to start worker")
                return WorkerLaunchStatus.LAUNCH_FAILED
        return WorkerLaunchStatus.STARTED

    def status(self) -> StatusSnapshot:
        return status_snapshot(repository=self.repository, ownership=self.ownership)


def status_snapshot(*, repository: QueueRepository, ownership: WorkerOwnership) -> StatusSnapshot:
    """View of pending work, completed issues and worker liveness.

    Existing state is never modified; missing state files are created empty,
    as every queue operation does.
    """

    snapshot = repository.snapshot()
    owner = ownership.live_owner()
    return StatusSnapshot(
        queue=snapshot.queue,
        investigated=snapshot.investigated,
        worker_running=owner is not None,
        worker_pid=owner,
    )
