"""
Lock management for issueflow.

Uses flock for per-issue locking so two processes never drive the same
issue at once, while distinct issues run in parallel.
"""

import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path


CONCURRENCY_WARNING_THRESHOLD = 3


class LockTimeout(Exception):
    """Lock acquisition timed out."""

    def __init__(self, message: str, issue_id: str = ""):
        self.issue_id = issue_id
        super().__init__(message)


def _lock_dir(state_dir: Path) -> Path:
    return state_dir / "locks" / "issues"


def count_running_issues(state_dir: Path) -> int:
    """Count how many issues are currently locked (running)."""
    lock_dir = _lock_dir(state_dir)
    if not lock_dir.exists():
        return 0

    count = 0
    for lock_file in lock_dir.glob("*.lock"):
        try:
            with open(lock_file, 'r') as fd:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    fcntl.flock(fd, fcntl.LOCK_UN)
                except BlockingIOError:
                    count += 1
        except OSError:
            continue
    return count


def is_issue_locked(state_dir: Path, issue_id: str) -> bool:
    """True while another process or thread holds the issue's lock."""
    lock_file = _lock_dir(state_dir) / f"{issue_id}.lock"
    if not lock_file.exists():
        return False
    with open(lock_file, 'r') as fd:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        fcntl.flock(fd, fcntl.LOCK_UN)
    return False


@contextmanager
def _acquire_lock(lock_file: Path, timeout: float, lock_name: str, issue_id: str = ""):
    """
    Internal helper to acquire a file lock.

    Lock files are never deleted: removing one lets two processes hold
    "exclusive" locks on different inodes with the same path.
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    # "a" keeps the inode; "w" would truncate a lock file another holder uses
    fd = open(lock_file, 'a')
    start = time.monotonic()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.monotonic() - start >= timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s", issue_id)
            time.sleep(min(0.5, max(timeout, 0.05)))

    try:
        fd.truncate(0)
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()


@contextmanager
def issue_lock(state_dir: Path, issue_id: str, timeout: float = 60):
    """
    Acquire the per-issue lock, yield, release on exit.

    Raises:
        LockTimeout: another run holds the issue for longer than timeout
    """
    lock_file = _lock_dir(state_dir) / f"{issue_id}.lock"
    with _acquire_lock(lock_file, timeout, f"lock for {issue_id}", issue_id):
        yield
