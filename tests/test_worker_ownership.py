from __future__ import annotations

import os
import subprocess
import sys
import time
from pathlib import Path

import allure
import pytest

from issue_investigator.orchestrator.ownership import WorkerOwnership, pid_alive

pytestmark = [
    allure.epic("Investigation Queue"),
    allure.feature("Worker Ownership"),
]


def test_pid_alive_for_current_and_dead_processes(dead_pid: int) -> None:
    assert pid_alive(os.getpid()) is True
    assert pid_alive(dead_pid) is False
    assert pid_alive(None) is False
    assert pid_alive(0) is False


def test_claim_writes_marker(ownership: WorkerOwnership, data_dir: Path) -> None:
    assert ownership.claim(os.getpid()) is True

    assert (data_dir / "worker.lock").read_text("utf-8").strip() == str(os.getpid())
    assert ownership.live_owner() == os.getpid()
    assert ownership.is_running() is True


def test_claim_refused_while_other_owner_alive(ownership: WorkerOwnership, dead_pid: int) -> None:
    ownership.record(os.getpid())

    assert ownership.claim(dead_pid) is False
    assert ownership.owner_pid() == os.getpid()


def test_claim_accepts_marker_recorded_for_same_pid(ownership: WorkerOwnership) -> None:
    ownership.record(os.getpid())

    assert ownership.claim(os.getpid()) is True


def test_stale_marker_is_reclaimed(ownership: WorkerOwnership, dead_pid: int) -> None:
    ownership.record(dead_pid)

    assert ownership.live_owner() is None
    assert ownership.is_running() is False
    assert ownership.claim(os.getpid()) is True
    assert ownership.owner_pid() == os.getpid()


def test_release_only_by_recorded_owner(ownership: WorkerOwnership, dead_pid: int) -> None:
    ownership.record(os.getpid())

    assert ownership.release(dead_pid) is False
    assert ownership.owner_pid() == os.getpid()
    assert ownership.release(os.getpid()) is True
    assert ownership.owner_pid() is None
    assert ownership.release(os.getpid()) is False


def test_malformed_marker_counts_as_unowned(ownership: WorkerOwnership, data_dir: Path) -> None:
    (data_dir / "worker.lock").write_text("not-a-pid\n", "utf-8")

    assert ownership.owner_pid() is None
    assert ownership.claim(os.getpid()) is True


def test_force_release_removes_any_marker(ownership: WorkerOwnership, dead_pid: int) -> None:
    ownership.record(dead_pid)

    assert ownership.force_release() is True
    assert ownership.force_release() is False


def _proc_state(pid: int) -> str:
    _, _, tail = Path(f"/proc/{pid}/stat").read_text("utf-8").rpartition(")")
    return tail.split()[0]


@pytest.mark.skipif(not Path("/proc/self/stat").exists(), reason="needs procfs")
def test_unreaped_worker_counts_as_dead(ownership: WorkerOwnership) -> None:
    child = subprocess.Popen([sys.executable, "-c", "pass"])  # noqa: S603
    try:
        deadline = time.monotonic() + 10
        # Leave the exited child unreaped: no poll() or wait() until the end.
        while _proc_state(child.pid) != "Z":
            assert time.monotonic() < deadline, "child did not exit"
            time.sleep(0.05)

        assert pid_alive(child.pid) is False
        ownership.record(child.pid)
        assert ownership.live_owner() is None
        assert ownership.claim(os.getpid()) is True
        assert ownership.owner_pid() == os.getpid()
    finally:
        child.wait()
