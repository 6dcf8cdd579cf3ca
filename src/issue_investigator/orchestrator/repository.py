"""Queue operations over the shared pending and completed state files."""

from __future__ import annotations

import logging
from pathlib import Path

from issue_investigator.orchestrator.models import QueueSnapshot, WorkItem
from issue_investigator.orchestrator.store import JsonStateFile

logger = logging.getLogger(__name__)


class QueueRepository:
    """Pending queue and completed set facade backed by JSON files.

    Every mutation reads the whole structure, computes the new value and
    atomically replaces the file while holding that file's advisory lock.
    ``enqueue`` is the dedup gate for every fresh insertion.
    """

    def __init__(self, *, queue_path: Path, investigated_path: Path) -> None:
        self._queue = JsonStateFile(queue_path, default=list, expected_type=list)
        self._investigated = JsonStateFile(investigated_path, default=dict, expected_type=dict)

    def init_state(self) -> None:
        """Create empty state files when absent."""

        self._queue.ensure()
        self._investigated.ensure()

    def is_completed(self, repo: str, issue: int) -> bool:
        self.init_state()
        return issue in self._completed_for(self._investigated.read(), repo)

    def is_queued(self, repo: str, issue: int) -> bool:
        self.init_state()
        return any(item.key == (repo, issue) for item in self._read_queue())

    def enqueue(self, repo: str, issue: int) -> bool:
        """Append a new item unless it is completed or already queued."""

        self.init_state()
        if self.is_completed(repo, issue):
            return False
        with self._queue.locked():
            items = self._read_queue()
            if any(item.key == (repo, issue) for item in items):
                return False
            items.append(WorkItem.create(repo, issue))
            self._write_queue(items)
        logger.debug("Enqueued %s#%s (queue length %d)", repo, issue, len(items))
        return True

    def requeue(self, item: WorkItem) -> WorkItem:
        """Move an item to the tail in one atomic cycle, bypassing the dedup gate.

        Any entry sharing the item's identity is dropped first, so an insert
        that raced in while the item was being processed collapses into the
        single tail entry instead of being lost or duplicated.
        """

        self.init_state()
        fresh = WorkItem.create(item.repo, item.issue)
        with self._queue.locked():
            items = [entry for entry in self._read_queue() if entry.key != item.key]
            items.append(fresh)
            self._write_queue(items)
        return fresh

    def peek_front(self) -> WorkItem | None:
        self.init_state()
        items = self._read_queue()
        return items[0] if items else None

    def pop_front(self) -> WorkItem | None:
        """Remove the head item; callers pop only the item they just processed."""

        self.init_state()
        with self._queue.locked():
            items = self._read_queue()
            if not items:
                return None
            head = items.pop(0)
            self._write_queue(items)
        return head

    def mark_completed(self, repo: str, issue: int) -> None:
        self.init_state()
        with self._investigated.locked():
            investigated = self._investigated.read()
            completed = self._completed_for(investigated, repo)
            if issue in completed:
                return
            completed.add(issue)
            investigated[repo] = sorted(completed)
            self._investigated.write(investigated)

    def forget(self, repo: str, issue: int) -> bool:
        """Drop an issue from the completed set so it can be investigated again."""

        self.init_state()
        with self._investigated.locked():
            investigated = self._investigated.read()
            completed = self._completed_for(investigated, repo)
            if issue not in completed:
                return False
            completed.discard(issue)
            if completed:
                investigated[repo] = sorted(completed)
            else:
                investigated.pop(repo, None)
            self._investigated.write(investigated)
        return True

    def length(self) -> int:
        self.init_state()
        return len(self._read_queue())

    def snapshot(self) -> QueueSnapshot:
        self.init_state()
        investigated = self._investigated.read()
        return QueueSnapshot(
            queue=self._read_queue(),
            investigated={
                repo: sorted(self._completed_for(investigated, repo)) for repo in investigated
            },
        )

    def _read_queue(self) -> list[WorkItem]:
        items: list[WorkItem] = []
        for entry in self._queue.read():
            item = WorkItem.from_json(entry)
            if item is None:
                logger.warning("Skipping malformed queue entry: %r", entry)
                continue
            items.append(item)
        return items

    def _write_queue(self, items: list[WorkItem]) -> None:
        self._queue.write([item.to_json() for item in items])

    @staticmethod
    def _completed_for(investigated: dict[str, object], repo: str) -> set[int]:
        values = investigated.get(repo)
        if not isinstance(values, list):
            return set()
        return {value for value in values if isinstance(value, int) and not isinstance(value, bool)}
