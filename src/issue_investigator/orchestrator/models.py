"""Domain models for the investigation queue."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from issue_investigator.errors import InvalidTriggerError

REPO_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]+/[a-zA-Z0-9_.-]+$")


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


class WorkerStopReason(str, Enum):
    """Why a worker run ended."""

    DRAINED = "drained"
    ABORTED = "aborted"
    STOPPED = "stopped"
    NOT_OWNER = "not_owner"


class WorkerLaunchStatus(str, Enum):
    """Worker outcome reported back to a trigger caller."""

    STARTED = "started"
    ALREADY_RUNNING = "already_running"
    NOT_NEEDED = "not_needed"
    LAUNCH_FAILED = "launch_failed"


@dataclass(slots=True, frozen=True)
class WorkItem:
    """One pending investigation; identity is ``(repo, issue)``."""

    repo: str
    issue: int
    added: str

    @property
    def key(self) -> tuple[str, int]:
        return (self.repo, self.issue)

    @property
    def display_name(self) -> str:
        return f"{self.repo}#{self.issue}"

    def to_json(self) -> dict[str, Any]:
        return {"repo": self.repo, "issue": self.issue, "added": self.added}

    @classmethod
    def create(cls, repo: str, issue: int) -> WorkItem:
        return cls(repo=repo, issue=issue, added=utc_now().isoformat())

    @classmethod
    def from_json(cls, payload: object) -> WorkItem | None:
        """Parse a stored entry, returning None for anything malformed."""

        if not isinstance(payload, dict):
            return None
        repo = payload.get("repo")
        issue = payload.get("issue")
        if not isinstance(repo, str) or isinstance(issue, bool) or not isinstance(issue, int):
            return None
        added = payload.get("added")
        return cls(repo=repo, issue=issue, added=added if isinstance(added, str) else "")


@dataclass(slots=True)
class QueueSnapshot:
    """Read-only view of pending and completed state."""

    queue: list[WorkItem] = field(default_factory=list)
    investigated: dict[str, list[int]] = field(default_factory=dict)

    @property
    def queue_length(self) -> int:
        return len(self.queue)


@dataclass(slots=True)
class StatusSnapshot:
    """Status query result: queue, completed map and worker liveness."""

    queue: list[WorkItem]
    investigated: dict[str, list[int]]
    worker_running: bool
    worker_pid: int | None

    def to_json(self) -> dict[str, Any]:
        return {
            "queue_length": len(self.queue),
            "queue": [item.to_json() for item in self.queue],
            "investigated": self.investigated,
            "worker_running": self.worker_running,
            "worker_pid": self.worker_pid,
        }


@dataclass(slots=True)
class TriggerResult:
    """Acknowledgement returned to a trigger caller."""

    repo: str
    issue: int
    inserted: bool
    queue_length: int
    catchup_added: int
    worker: WorkerLaunchStatus
    status: str = "queued"

    def to_json(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "repo": self.repo,
            "issue": self.issue,
            "inserted": self.inserted,
            "queue_length": self.queue_length,
            "catchup_added": self.catchup_added,
            "worker": self.worker.value,
        }


def validate_target(repo: object, issue: object) -> tuple[str, int]:
    """Check a trigger pair and return it normalized."""

    if not isinstance(repo, str) or not REPO_PATTERN.match(repo):
        raise InvalidTriggerError("Invalid repo format (expected owner/repo)")
    if isinstance(issue, bool) or not isinstance(issue, int) or issue <= 0:
        raise InvalidTriggerError("Issue must be a positive integer")
    return repo, issue
