"""Subprocess-based backend that runs the investigation executable."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import IO

from issue_investigator.errors import InvestigationRunError
from issue_investigator.orchestrator.backend.base import (
    InvestigationRequest,
    InvestigationResult,
)

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
INTERRUPTED_EXIT_CODE = 143
POLL_INTERVAL_SECONDS = 0.1
STOP_WAIT_SECONDS = 2.0


class CliInvestigationBackend:
    """Execute the configured command template for one ``(repo, issue)`` pair."""

    def __init__(self, *, command_template: str, logs_dir: Path) -> None:
        self.command_template = command_template
        self.logs_dir = logs_dir

    def run(self, request: InvestigationRequest) -> InvestigationResult:
        run_args = build_run_args(
            command_template=self.command_template,
            repo=request.repo,
            issue=request.issue,
        )
        log_path = self.logs_dir / investigation_log_name(request.repo, request.issue)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        env = os.environ.copy()
        env["ISSUE_INVESTIGATOR_REPO"] = request.repo
        env["ISSUE_INVESTIGATOR_ISSUE"] = str(request.issue)

        logger.info("Running %s (log: %s)", shlex.join(run_args), log_path)
        try:
            with log_path.open("w", encoding="utf-8") as log_handle:
                return _run_subprocess_with_shutdown(
                    run_args=run_args,
                    env=env,
                    timeout_seconds=request.timeout_seconds,
                    log_handle=log_handle,
                    shutdown_requested=request.shutdown_requested,
                    graceful_shutdown_seconds=request.graceful_shutdown_seconds,
                    log_path=log_path,
                )
        except FileNotFoundError as error:
            raise InvestigationRunError(
                f"Investigation command not found: {run_args[0]}",
                transient=False,
            ) from error
        except OSError as error:
            raise InvestigationRunError(
                f"Investigation command failed to start: {error}",
                transient=True,
            ) from error


def investigation_log_name(repo: str, issue: int, *, now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return f"investigation-{repo.replace('/', '-')}-{issue}-{stamp}.log"


def build_run_args(*, command_template: str, repo: str, issue: int) -> list[str]:
    stripped = command_template.strip()
    if not stripped:
        raise InvestigationRunError("Investigation command template is empty.", transient=False)

    owner, _, name = repo.partition("/")
    try:
        rendered = stripped.format(
            repo=shlex.quote(repo),
            issue=shlex.quote(str(issue)),
            owner=shlex.quote(owner),
            name=shlex.quote(name),
        )
    except (KeyError, IndexError) as error:
        raise InvestigationRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise InvestigationRunError(
            "Investigation command template rendered empty command.",
            transient=False,
        )
    return argv


def _run_subprocess_with_shutdown(  # noqa: PLR0913
    *,
    run_args: list[str],
    env: dict[str, str],
    timeout_seconds: int,
    log_handle: IO[str],
    shutdown_requested: Callable[[], bool] | None,
    graceful_shutdown_seconds: int | None,
    log_path: Path,
) -> InvestigationResult:
    process = subprocess.Popen(  # noqa: S603
        run_args,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=log_handle,
        stderr=subprocess.STDOUT,
        text=True,
    )
    timeout_at = time.monotonic() + timeout_seconds
    interrupt_at: float | None = None

    while True:
        try:
            returncode = process.wait(timeout=POLL_INTERVAL_SECONDS)
        except subprocess.TimeoutExpired:
            pass
        else:
            return InvestigationResult(exit_code=returncode, timed_out=False, log_path=log_path)

        now = time.monotonic()
        if now >= timeout_at:
            logger.warning("Investigation exceeded %ss; terminating", timeout_seconds)
            _stop_process(process)
            return InvestigationResult(
                exit_code=TIMEOUT_EXIT_CODE,
                timed_out=True,
                log_path=log_path,
            )

        if interrupt_at is None and shutdown_requested is not None and shutdown_requested():
            interrupt_at = now + max(0, graceful_shutdown_seconds or 0)
            logger.info("Shutdown requested; investigation may run until the grace period ends")
        if interrupt_at is not None and now >= interrupt_at:
            _stop_process(process)
            return InvestigationResult(
                exit_code=INTERRUPTED_EXIT_CODE,
                timed_out=False,
                log_path=log_path,
                interrupted=True,
            )


def _stop_process(process: subprocess.Popen[str]) -> None:
    """SIGTERM, then SIGKILL if the command ignores it."""

    for send in (process.terminate, process.kill):
        try:
            send()
        except OSError:
            return
        try:
            process.wait(timeout=STOP_WAIT_SECONDS)
        except subprocess.TimeoutExpired:
            continue
        return
