"""
Per-submission advisory locks.

Re-labelling an issue can start a second run while the first is still
posting; holding an exclusive lock per submission id serializes them.
"""

import fcntl
import os
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class LockError(Exception):
    """Raised when a submission lock cannot be acquired."""
    pass


def lock_path(lock_dir: Path, submission_id: str) -> Path:
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", submission_id) or "_"
    return lock_dir / f"{safe}.lock"


@contextmanager
def submission_lock(lock_dir: Path, submission_id: str, blocking: bool = True) -> Iterator[Path]:
    """
    Hold an exclusive flock on ``<lock_dir>/<submission_id>.lock``.

    Args:
        lock_dir: Directory for lock files (created if missing)
        submission_id: Issue identifier
        blocking: Wait for the lock instead of failing immediately

    Raises:
        LockError: If the lock is held elsewhere (non-blocking) or the file
            cannot be opened
    """
    path = lock_path(Path(lock_dir), submission_id)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise LockError(f"Failed to open lock file {path}: {e}")

    try:
        flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            fcntl.flock(fd, flags)
        except BlockingIOError:
            raise LockError(f"Submission {submission_id} is already being checked")
        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)
