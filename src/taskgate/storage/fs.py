"""Atomic file writes, directory management, and root discovery."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

STORE_DIR = ".taskgate"
TASKGATE_ROOT_ENV = "TASKGATE_ROOT"

STORE_SUBDIRS: tuple[str, ...] = (
    "principals/admins",
    "principals/managers",
    "principals/users",
    "tasks",
    "events",
    "journal",
    "locks",
)


class StoreRootError(Exception):
    """Raised when TASKGATE_ROOT env var is set but invalid."""


def _fsync_directory(path: Path) -> None:
    """Fsync a directory so renames and unlinks are durable.

    Platforms without directory fsync raise ``OSError``; that is ignored.
    """
    try:
        fd = os.open(str(path), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        pass


def atomic_write(path: Path, content: str | bytes) -> None:
    """Write content to path atomically via temp file + fsync + rename.

    The temp file lives in the target's directory so ``os.replace`` stays on
    one filesystem.

    Raises:
        FileNotFoundError: If the parent directory does not exist.
    """
    parent = path.parent
    if not parent.is_dir():
        raise FileNotFoundError(f"Parent directory does not exist: {parent}")

    data = content.encode("utf-8") if isinstance(content, str) else content

    fd, tmp_path = tempfile.mkstemp(dir=parent, prefix=".tmp.")
    closed = False
    try:
        mv = memoryview(data)
        while mv:
            written = os.write(fd, mv)
            mv = mv[written:]
        os.fsync(fd)
        os.close(fd)
        closed = True
        os.replace(tmp_path, path)
        _fsync_directory(parent)
    except BaseException:
        if not closed:
            os.close(fd)
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def remove_file(path: Path) -> bool:
    """Delete *path* durably.  Returns ``False`` if it did not exist."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    _fsync_directory(path.parent)
    return True


def read_json(path: Path) -> dict | None:
    """Read a JSON document, returning ``None`` if the file does not exist."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None


def jsonl_append(path: Path, line: str) -> None:
    """Append one newline-terminated record to a JSONL file and fsync it.

    The caller must already hold the lock for *path*.
    """
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(line)
        fh.flush()
        os.fsync(fh.fileno())
    _fsync_directory(path.parent)


def ensure_store_dirs(root: Path) -> Path:
    """Create the full .taskgate/ directory structure under *root*.

    Returns the path of the .taskgate/ directory.
    """
    store_dir = root / STORE_DIR
    for subdir in STORE_SUBDIRS:
        (store_dir / subdir).mkdir(parents=True, exist_ok=True)
    return store_dir


def find_root(start: Path | None = None) -> Path | None:
    """Find the project root containing .taskgate/.

    TASKGATE_ROOT wins when set; it must point at a directory holding
    .taskgate/ (no fallback to walking up).  Otherwise walk up from *start*
    (defaults to cwd).

    Raises:
        StoreRootError: If TASKGATE_ROOT is set but invalid.
    """
    env_root = os.environ.get(TASKGATE_ROOT_ENV)
    if env_root is not None:
        if not env_root:
            raise StoreRootError("TASKGATE_ROOT is set but empty")
        env_path = Path(env_root)
        if not env_path.is_dir():
            raise StoreRootError(
                f"TASKGATE_ROOT points to a path that does not exist: {env_root}"
            )
        if not (env_path / STORE_DIR).is_dir():
            raise StoreRootError(
                f"TASKGATE_ROOT points to a directory with no {STORE_DIR}/ inside: {env_root}"
            )
        return env_path

    current = (start or Path.cwd()).resolve()
    while True:
        if (current / STORE_DIR).is_dir():
            return current
        parent = current.parent
        if parent == current:
            return None
        current = parent
