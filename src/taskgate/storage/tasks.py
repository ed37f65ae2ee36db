"""Task Repository: task documents, scoped queries, and status stats."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path

from taskgate.core.errors import NotFound
from taskgate.core.events import create_event, utc_now
from taskgate.core.filters import build_task_filter
from taskgate.core.ids import generate_task_id
from taskgate.core.principals import Ref
from taskgate.core.stats import status_counts
from taskgate.core.tasks import apply_update, due_datetime, new_task, validate_update
from taskgate.storage.fs import read_json
from taskgate.storage.locks import lock_key, store_lock
from taskgate.storage.operations import delete_document, write_document
from taskgate.storage.principals import locks_dir

logger = logging.getLogger(__name__)


def task_path(store_dir: Path, task_id: str) -> Path:
    return store_dir / "tasks" / f"{task_id}.json"


def _task_lock(task_id: str) -> str:
    return lock_key("tasks", task_id)


def read_task(store_dir: Path, task_id: str) -> dict | None:
    if "/" in task_id or "\\" in task_id or task_id.startswith("."):
        return None
    return read_json(task_path(store_dir, task_id))


def scan_tasks(store_dir: Path) -> list[dict]:
    tasks_dir = store_dir / "tasks"
    snapshots: list[dict] = []
    if tasks_dir.is_dir():
        for path in tasks_dir.glob("*.json"):
            try:
                snapshots.append(json.loads(path.read_text(encoding="utf-8")))
            except FileNotFoundError:
                continue
    return snapshots


def _sort_key(snapshot: dict) -> tuple[datetime, str]:
    return due_datetime(snapshot), snapshot["id"]


def list_tasks(
    store_dir: Path,
    scope: Callable[[dict], bool],
    *,
    status: str | None = None,
    day: date | None = None,
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    search: str | None = None,
) -> list[dict]:
    """Return tasks matching *scope* and the optional filters, by due date ascending."""
    predicate = build_task_filter(
        scope, status=status, day=day, due_from=due_from, due_to=due_to, search=search
    )
    return sorted((s for s in scan_tasks(store_dir) if predicate(s)), key=_sort_key)


def task_stats(store_dir: Path, scope: Callable[[dict], bool]) -> dict[str, int]:
    return status_counts(s for s in scan_tasks(store_dir) if scope(s))


def create_task(store_dir: Path, fields: dict, creator: Ref, *, timeout: float = 10) -> dict:
    """Validate *fields* and store a new task owned by *creator*."""
    ts = utc_now()
    snapshot = new_task(generate_task_id(), fields, creator, ts)
    event = create_event(
        "task_created",
        snapshot["id"],
        creator,
        {k: snapshot[k] for k in ("title", "status", "due_date", "assignee")},
        ts=ts,
    )
    with store_lock(locks_dir(store_dir), _task_lock(snapshot["id"]), timeout=timeout):
        write_document(store_dir, task_path(store_dir, snapshot["id"]), [event], snapshot)
    logger.debug("Created task %s for %s %s", snapshot["id"], creator.kind, creator.id)
    return snapshot


def update_task(
    store_dir: Path,
    task_id: str,
    fields: dict,
    actor: Ref,
    *,
    check: Callable[[dict | None], None] | None = None,
    validate: Callable[[dict], None] | None = None,
    timeout: float = 10,
) -> dict:
    """Apply a partial update.

    *check* is called with the current snapshot under the task lock, so an
    authorization decision is made against the same version that is written.
    *validate* receives the raw *fields* only after *check* passed and the
    task was found.
    """
    with store_lock(locks_dir(store_dir), _task_lock(task_id), timeout=timeout):
        snapshot = read_task(store_dir, task_id)
        if check is not None:
            check(snapshot)
        if snapshot is None:
            raise NotFound("Task not found")
        changes = validate_update(fields)
        if validate is not None:
            validate(fields)
        ts = utc_now()
        updated = apply_update(snapshot, changes, ts)
        event = create_event("task_updated", task_id, actor, changes, ts=ts)
        write_document(store_dir, task_path(store_dir, task_id), [event], updated)
    return updated


def delete_task(
    store_dir: Path,
    task_id: str,
    actor: Ref,
    *,
    check: Callable[[dict | None], None] | None = None,
    timeout: float = 10,
) -> None:
    with store_lock(locks_dir(store_dir), _task_lock(task_id), timeout=timeout):
        snapshot = read_task(store_dir, task_id)
        if check is not None:
            check(snapshot)
        if snapshot is None:
            raise NotFound("Task not found")
        event = create_event("task_deleted", task_id, actor, {"title": snapshot["title"]})
        delete_document(store_dir, task_path(store_dir, task_id), task_id, [event])
    logger.debug("Deleted task %s", task_id)
