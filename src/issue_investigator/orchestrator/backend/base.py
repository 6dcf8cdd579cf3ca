"""Backend interface for running one investigation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class InvestigationRequest:
    """Inputs required to investigate one issue."""

    repo: str
    issue: int
    timeout_seconds: int
    shutdown_requested: Callable[[], bool] | None = None
    graceful_shutdown_seconds: int | None = None


@dataclass(slots=True)
class InvestigationResult:
    """Execution outcome; only ``exit_code`` carries control meaning."""

    exit_code: int
    timed_out: bool
    log_path: Path | None
    interrupted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.interrupted


class InvestigationBackend(Protocol):
    """Protocol implemented by investigation runners."""

    def run(self, request: InvestigationRequest) -> InvestigationResult:
        """Run an investigation and return its exit status."""
