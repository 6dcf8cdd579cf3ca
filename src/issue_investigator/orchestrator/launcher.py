"""Detached worker process launcher."""

from __future__ import annotations

import logging
import subprocess
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class WorkerLauncher(Protocol):
    """Starts a worker process and returns its process id."""

    def launch(self) -> int:
        """Spawn the worker."""


class SubprocessWorkerLauncher:
    """Spawn ``issue-investigator worker`` in its own session with a log file."""

    def __init__(self, *, logs_dir: Path, data_dir: Path | None = None) -> None:
        self.logs_dir = logs_dir
        self.data_dir = data_dir

    def command(self) -> list[str]:
        argv = [sys.executable, "-m", "issue_investigator.main", "worker"]
        if self.data_dir is not None:
            argv.extend(["--data-dir", str(self.data_dir)])
        return argv

    def launch(self) -> int:
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(tz=UTC).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        log_path = self.logs_dir / f"worker-{stamp}.log"
        with log_path.open("a", encoding="utf-8") as log_handle:
            process = subprocess.Popen(  # noqa: S603
                self.command(),
                stdin=subprocess.DEVNULL,
                stdout=log_handle,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        logger.info("Worker started with PID %d, logging to %s", process.pid, log_path)
        return process.pid
