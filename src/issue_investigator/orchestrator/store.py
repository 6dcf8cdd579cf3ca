"""JSON state files with fail-open reads and atomic replace-on-write."""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

from issue_investigator.errors import StateStoreError

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on ``path`` for the duration of the block."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)
    with path.open("r+", encoding="utf-8") as handle:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def write_atomic(path: Path, content: str) -> None:
    """Write content via a sibling temp file and ``os.replace``.

    On any failure the temp file is removed and the original file is left
    exactly as it was.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


class JsonStateFile:
    """One independently readable JSON document in the shared data directory."""

    def __init__(self, path: Path, *, default: Callable[[], Any], expected_type: type) -> None:
        self.path = path
        self._default = default
        self._expected_type = expected_type
        self._lock_path = path.with_name(path.name + ".lock")

    def ensure(self) -> None:
        """Create the file with its empty default when absent."""

        if self.path.exists():
            return
        try:
            with self.locked():
                # A concurrent writer may have created it while we waited.
                if not self.path.exists():
                    self.write(self._default())
        except (OSError, StateStoreError):
            logger.warning("Could not initialize state file %s", self.path, exc_info=True)

    def read(self) -> Any:
        """Return parsed content, or the empty default when unreadable or corrupt."""

        try:
            raw = self.path.read_text("utf-8")
        except FileNotFoundError:
            return self._default()
        except OSError as error:
            logger.warning("State file %s unreadable, using empty default: %s", self.path, error)
            return self._default()
        try:
            payload = json.loads(raw)
        except ValueError as error:
            logger.warning("State file %s is not valid JSON, using empty default: %s", self.path, error)
            return self._default()
        if not isinstance(payload, self._expected_type):
            logger.warning(
                "State file %s holds %s instead of %s, using empty default",
                self.path,
                type(payload).__name__,
                self._expected_type.__name__,
            )
            return self._default()
        return payload

    def write(self, payload: Any) -> None:
        try:
            write_atomic(self.path, json.dumps(payload, ensure_ascii=False, indent=2))
        except OSError as error:
            raise StateStoreError(f"Failed to write state file {self.path}: {error}") from error

    @contextlib.contextmanager
    def locked(self) -> Iterator[None]:
        """Serialize a read-modify-write cycle against other processes."""

        with file_lock(self._lock_path):
            yield
