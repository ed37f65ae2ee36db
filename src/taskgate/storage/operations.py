"""Shared write-path operations for principal and task documents.

Every mutation goes event-first: the audit event is appended to the
subject's JSONL log, then the snapshot is atomically written (or removed).
Callers hold the document's lock for the whole read-check-write sequence.
"""

from __future__ import annotations

import json
from pathlib import Path

from taskgate.core.events import serialize_event
from taskgate.core.tasks import serialize_snapshot
from taskgate.storage.fs import atomic_write, jsonl_append, remove_file


def event_log_path(store_dir: Path, subject_id: str) -> Path:
    return store_dir / "events" / f"{subject_id}.jsonl"


def write_document(store_dir: Path, path: Path, events: list[dict], snapshot: dict) -> None:
    """Append *events* to the subject's log, then materialize *snapshot* at *path*."""
    log_path = event_log_path(store_dir, snapshot["id"])
    for event in events:
        jsonl_append(log_path, serialize_event(event))
    atomic_write(path, serialize_snapshot(snapshot))


def delete_document(store_dir: Path, path: Path, subject_id: str, events: list[dict]) -> bool:
    """Append *events*, then remove the snapshot.  Returns ``False`` if absent."""
    if not path.is_file():
        return False
    log_path = event_log_path(store_dir, subject_id)
    for event in events:
        jsonl_append(log_path, serialize_event(event))
    return remove_file(path)


def read_events(store_dir: Path, subject_id: str) -> list[dict]:
    """Read the audit log for one document.  Missing log → empty list."""
    log_path = event_log_path(store_dir, subject_id)
    events: list[dict] = []
    if not log_path.exists():
        return events
    for line in log_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            events.append(json.loads(line))
        except json.JSONDecodeError:
            # A crash can truncate the final line; earlier lines are intact.
            continue
    return events
