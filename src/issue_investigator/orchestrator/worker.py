"""Single-owner worker that drains the investigation queue."""

from __future__ import annotations

import logging
import os
import signal
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from issue_investigator.errors import InvestigationRunError
from issue_investigator.orchestrator.backend import (
    InvestigationBackend,
    InvestigationRequest,
    InvestigationResult,
)
from issue_investigator.orchestrator.models import WorkerStopReason, WorkItem
from issue_investigator.orchestrator.ownership import WorkerOwnership
from issue_investigator.orchestrator.repository import QueueRepository

logger = logging.getLogger(__name__)

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    backoffs: int = 0
    stop_reason: WorkerStopReason | None = None


class InvestigationWorker:
    """Drains the pending queue strictly FIFO, one investigation at a time.

    Failed items move to the tail. Failure counters are global to the run,
    not per item. ``backoff_threshold`` failures since the last cooldown
    pause for ``cooldown_seconds``; ``exit_threshold`` failures since the
    last success end the run with the remaining items still queued.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: QueueRepository,
        ownership: WorkerOwnership,
        backend: InvestigationBackend,
        investigation_timeout_seconds: int = 3_600,
        graceful_shutdown_seconds: int = 30,
        backoff_threshold: int = 3,
        exit_threshold: int = 6,
        cooldown_seconds: float = 1_800.0,
        pid: int | None = None,
    ) -> None:
        self.repository = repository
        self.ownership = ownership
        self.backend = backend
        self.investigation_timeout_seconds = investigation_timeout_seconds
        self.graceful_shutdown_seconds = graceful_shutdown_seconds
        self.backoff_threshold = backoff_threshold
        self.exit_threshold = exit_threshold
        self.cooldown_seconds = cooldown_seconds
        self.pid = pid if pid is not None else os.getpid()
        self.consecutive_failures = 0
        self.failures_since_cooldown = 0
        self._stop_requested = False
        self._released = False

    def run_loop(self) -> WorkerRunSummary:
        """Claim ownership, drain the queue and always release on the way out."""

        summary = WorkerRunSummary()
        if not self.ownership.claim(self.pid):
            logger.warning("Another worker is alive; exiting without processing")
            summary.stop_reason = WorkerStopReason.NOT_OWNER
            return summary

        self._released = False
        logger.info("Worker %s started; queue length %d", self.pid, self.repository.length())
        try:
            with self._signal_handlers():
                summary.stop_reason = self._drain(summary)
        except Exception:
            logger.exception("Worker %s crashed", self.pid)
            raise
        finally:
            if not self._released:
                self.ownership.release(self.pid)
            logger.info("Worker %s released ownership", self.pid)

        logger.info(
            "Worker finished: reason=%s processed=%d succeeded=%d failed=%d backoffs=%d",
            summary.stop_reason.value,
            summary.processed,
            summary.succeeded,
            summary.failed,
            summary.backoffs,
        )
        return summary

    def _drain(self, summary: WorkerRunSummary) -> WorkerStopReason:
        while True:
            if self._stop_requested:
                return WorkerStopReason.STOPPED
            item = self.repository.peek_front()
            if item is None:
                if self._release_if_drained():
                    logger.info("Queue drained")
                    return WorkerStopReason.DRAINED
                continue

            summary.processed += 1
            logger.info("Investigating %s", item.display_name)
            succeeded = self._investigate(item)
            if self._stop_requested and not succeeded:
                logger.info("Stop requested during %s; leaving it at the head", item.display_name)
                summary.processed -= 1
                return WorkerStopReason.STOPPED

            if succeeded:
                self._on_success(item)
                summary.succeeded += 1
                continue

            self._on_failure(item)
            summary.failed += 1
            if self.consecutive_failures >= self.exit_threshold:
                logger.error(
                    "Giving up after %d consecutive failures; %d item(s) left queued",
                    self.consecutive_failures,
                    self.repository.length(),
                )
                return WorkerStopReason.ABORTED
            if self.failures_since_cooldown >= self.backoff_threshold:
                summary.backoffs += 1
                logger.warning(
                    "%d consecutive failures; cooling down for %.0fs",
                    self.consecutive_failures,
                    self.cooldown_seconds,
                )
                self._sleep_with_stop(self.cooldown_seconds)
                self.failures_since_cooldown = 0

    def _release_if_drained(self) -> bool:
        # A trigger that saw this worker alive must find its item drained, so
        # the emptiness check and the marker removal share the ownership lock.
        with self.ownership.locked():
            if self.repository.length() > 0:
                return False
            self.ownership.release_held(self.pid)
            self._released = True
        return True

    def _investigate(self, item: WorkItem) -> bool:
        try:
            result = self.backend.run(
                InvestigationRequest(
                    repo=item.repo,
                    issue=item.issue,
                    timeout_seconds=self.investigation_timeout_seconds,
                    shutdown_requested=lambda: self._stop_requested,
                    graceful_shutdown_seconds=self.graceful_shutdown_seconds,
                ),
            )
        except InvestigationRunError as error:
            logger.error(
                "Investigation of %s could not run (transient=%s): %s",
                item.display_name,
                error.transient,
                error,
            )
            return False
        _log_result(item, result)
        return result.succeeded

    def _on_success(self, item: WorkItem) -> None:
        self.repository.mark_completed(item.repo, item.issue)
        self.repository.pop_front()
        self.consecutive_failures = 0
        self.failures_since_cooldown = 0

    def _on_failure(self, item: WorkItem) -> None:
        self.repository.requeue(item)
        self.consecutive_failures += 1
        self.failures_since_cooldown += 1
        logger.warning(
            "Moved %s to the back of the queue (consecutive failures: %d)",
            item.display_name,
            self.consecutive_failures,
        )

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(1.0, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        """Turn SIGINT/SIGTERM into ``request_stop`` for the duration of the run."""

        def _handler(signum: int, _: object | None) -> None:
            self.request_stop(signal_name=signal.Signals(signum).name)

        previous: dict[signal.Signals, object] = {}
        try:
            for signum in STOP_SIGNALS:
                previous[signum] = signal.signal(signum, _handler)
        except ValueError:
            # Only the main thread may install handlers; run without them.
            logger.debug("Signal handlers not installed outside the main thread")
        try:
            yield
        finally:
            for signum, handler in previous.items():
                if handler is not None:
                    signal.signal(signum, handler)

    def request_stop(self, *, signal_name: str = "manual") -> None:
        if not self._stop_requested:
            logger.warning("Stop requested (%s); finishing current step", signal_name)
        self._stop_requested = True


def _log_result(item: WorkItem, result: InvestigationResult) -> None:
    if result.succeeded:
        logger.info("Investigation of %s succeeded (log: %s)", item.display_name, result.log_path)
    elif result.timed_out:
        logger.warning("Investigation of %s timed out (log: %s)", item.display_name, result.log_path)
    else:
        logger.warning(
            "Investigation of %s failed with exit code %d (log: %s)",
            item.display_name,
            result.exit_code,
            result.log_path,
        )
