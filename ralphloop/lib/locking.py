"""
flock-based locks.

file_lock() serializes writers of one file (progress.md) and is held only
for the read-modify-replace of a single ledger update. run_lock() is opt-in
(RUN_LOCK=true) and keeps a second loop from running against the same
project at all.
"""

import fcntl
import os
import signal
import sys
import time
from contextlib import contextmanager
from pathlib import Path

RUN_LOCK_RELPATH = Path(".ralph") / "run.lock"


class LockTimeout(Exception):
    """Another process held the lock for longer than we were willing to wait."""


def lock_path_for(target: Path) -> Path:
    """Hidden sidecar next to target: progress.md -> .progress.md.lock"""
    return target.with_name(f".{target.name}.lock")


def _flock_until(handle, deadline: float, poll: float) -> bool:
    while True:
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
            return True
        except BlockingIOError:
            if time.monotonic() >= deadline:
                return False
            time.sleep(poll)


@contextmanager
def _held(lock_file: Path, timeout: float, description: str, poll: float = 0.1):
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    # Never unlink a lock file: a new inode at the same path would be a second lock
    handle = open(lock_file, "a")
    try:
        if not _flock_until(handle, time.monotonic() + timeout, poll):
            raise LockTimeout(f"Could not acquire {description} within {timeout}s")
        try:
            yield handle
        finally:
            fcntl.flock(handle, fcntl.LOCK_UN)
    finally:
        handle.close()


@contextmanager
def file_lock(target: Path, timeout: float = 30):
    """Hold the write lock for target while the block runs."""
    with _held(lock_path_for(target), timeout, f"write lock for {target.name}"):
        yield


@contextmanager
def run_lock(root: Path, timeout: float = 0):
    """
    Hold the project's run lock for a whole invocation.

    The default timeout of 0 makes a concurrent invocation fail immediately
    with LockTimeout. The holder's pid is written into the lock file. SIGTERM
    is turned into SystemExit while held so the lock is released on the way
    out.
    """
    lock_file = root / RUN_LOCK_RELPATH
    previous = signal.signal(signal.SIGTERM, lambda *_: sys.exit(1))
    try:
        with _held(lock_file, timeout, "run lock"):
            lock_file.write_text(f"{os.getpid()}\n")
            yield
    finally:
        signal.signal(signal.SIGTERM, previous)
