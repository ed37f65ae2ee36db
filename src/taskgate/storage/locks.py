"""File locks keyed by document id, acquired in deterministic order."""

from __future__ import annotations

import contextlib
from collections.abc import Generator, Iterable
from pathlib import Path

from filelock import FileLock, Timeout

from taskgate.core.errors import StoreUnavailable


class LockTimeout(StoreUnavailable):
    """Raised when a lock cannot be acquired within the timeout period."""


def lock_key(kind: str, doc_id: str) -> str:
    """Lock key for one document, e.g. ``users_usr_01H...``."""
    return f"{kind}_{doc_id}"


@contextlib.contextmanager
def store_lock(
    locks_dir: Path,
    key: str,
    timeout: float = 10,
) -> Generator[None, None, None]:
    """Acquire a single file lock at ``locks_dir/<key>.lock``.

    Raises:
        LockTimeout: If the lock cannot be acquired within *timeout* seconds.
    """
    with multi_lock(locks_dir, [key], timeout=timeout):
        yield


@contextlib.contextmanager
def multi_lock(
    locks_dir: Path,
    keys: Iterable[str],
    timeout: float = 10,
) -> Generator[None, None, None]:
    """Acquire several locks in sorted order; release in reverse on exit.

    Duplicate keys are collapsed: two handles on the same lock file would
    block each other even inside one thread.

    Raises:
        LockTimeout: If any lock cannot be acquired within *timeout* seconds.
    """
    acquired: list[FileLock] = []
    try:
        for key in sorted(set(keys)):
            lock = FileLock(locks_dir / f"{key}.lock", timeout=timeout)
            try:
                lock.acquire()
            except Timeout:
                raise LockTimeout(f"Could not acquire lock '{key}' within {timeout}s") from None
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()
