"""Advisory single-worker ownership marker with a liveness probe."""

from __future__ import annotations

import contextlib
import logging
import os
from collections.abc import Iterator
from pathlib import Path

from issue_investigator.errors import StateStoreError
from issue_investigator.orchestrator.store import file_lock, write_atomic

logger = logging.getLogger(__name__)


def pid_alive(pid: int | None) -> bool:
    """Return True when ``pid`` names a running, non-zombie process."""

    if pid is None or pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except PermissionError:
        return True
    except OSError:
        return False
    return not _is_zombie(pid)


def _is_zombie(pid: int) -> bool:
    # Unreaped children of the trigger server linger as zombies and still
    # answer signal 0.
    try:
        stat = Path(f"/proc/{pid}/stat").read_text("utf-8")
    except OSError:
        return False
    _, _, tail = stat.rpartition(")")
    fields = tail.split()
    return bool(fields) and fields[0] == "Z"


class WorkerOwnership:
    """PID file naming the worker process that currently owns the queue.

    A recorded process that is no longer alive is treated as "unowned",
    so a crashed worker never blocks the next one.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock_path = path.with_name(path.name + ".lock")

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        """Serialize check-and-claim across server and worker processes."""

        with file_lock(self._lock_path):
            yield

    def owner_pid(self) -> int | None:
        try:
            raw = self.path.read_text("utf-8").strip()
        except OSError:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring malformed worker marker %s: %r", self.path, raw)
            return None

    def live_owner(self) -> int | None:
        pid = self.owner_pid()
        return pid if pid_alive(pid) else None

    def is_running(self) -> bool:
        return self.live_owner() is not None

    def claim(self, pid: int) -> bool:
        """Record ``pid`` as owner unless another live process holds the marker."""

        with self.locked():
            current = self.owner_pid()
            if current is not None and current != pid and pid_alive(current):
                logger.info("Worker marker held by live process %s; not claiming", current)
                return False
            if current is not None and current != pid:
                logger.info("Reclaiming stale worker marker left by process %s", current)
            self.record(pid)
        return True

    def record(self, pid: int) -> None:
        """Write the marker unconditionally; callers hold ``locked()``."""

        try:
            write_atomic(self.path, f"{pid}\n")
        except OSError as error:
            raise StateStoreError(f"Failed to write worker marker {self.path}: {error}") from error

    def release(self, pid: int) -> bool:
        """Remove the marker if it still names ``pid``."""

        with self.locked():
            return self.release_held(pid)

    def release_held(self, pid: int) -> bool:
        """Same as ``release`` for callers already inside ``locked()``."""

        if self.owner_pid() != pid:
            return False
        return self._remove()

    def force_release(self) -> bool:
        with self.locked():
            return self._remove()

    def _remove(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True
