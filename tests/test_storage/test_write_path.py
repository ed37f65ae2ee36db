"""Tests for the event-first write path in storage.operations."""

from __future__ import annotations

import json
from pathlib import Path

from taskgate.core.events import create_event
from taskgate.core.ids import generate_task_id
from taskgate.storage.operations import (
    delete_document,
    event_log_path,
    read_events,
    write_document,
)


def _snapshot(task_id: str) -> dict:
    return {"id": task_id, "title": "Write docs", "status": "pending"}


class TestWriteDocument:
    def test_event_then_snapshot(self, store_dir: Path) -> None:
        task_id = generate_task_id()
        path = store_dir / "tasks" / f"{task_id}.json"
        event = create_event("task_created", task_id, None, {"title": "Write docs"})

        write_document(store_dir, path, [event], _snapshot(task_id))

        assert json.loads(path.read_text())["title"] == "Write docs"
        assert [e["id"] for e in read_events(store_dir, task_id)] == [event["id"]]

    def test_events_accumulate(self, store_dir: Path) -> None:
        task_id = generate_task_id()
        path = store_dir / "tasks" / f"{task_id}.json"
        write_document(store_dir, path, [create_event("task_created", task_id, None, {})], _snapshot(task_id))
        write_document(store_dir, path, [create_event("task_updated", task_id, None, {})], _snapshot(task_id))

        assert [e["type"] for e in read_events(store_dir, task_id)] == ["task_created", "task_updated"]


class TestDeleteDocument:
    def test_removes_snapshot_and_logs(self, store_dir: Path) -> None:
        task_id = generate_task_id()
        path = store_dir / "tasks" / f"{task_id}.json"
        write_document(store_dir, path, [create_event("task_created", task_id, None, {})], _snapshot(task_id))

        assert delete_document(store_dir, path, task_id, [create_event("task_deleted", task_id, None, {})])
        assert not path.exists()
        assert read_events(store_dir, task_id)[-1]["type"] == "task_deleted"

    def test_absent_writes_nothing(self, store_dir: Path) -> None:
        task_id = generate_task_id()
        path = store_dir / "tasks" / f"{task_id}.json"

        assert delete_document(store_dir, path, task_id, [create_event("task_deleted", task_id, None, {})]) is False
        assert not event_log_path(store_dir, task_id).exists()


class TestReadEvents:
    def test_missing_log(self, store_dir: Path) -> None:
        assert read_events(store_dir, generate_task_id()) == []

    def test_truncated_final_line_skipped(self, store_dir: Path) -> None:
        task_id = generate_task_id()
        path = store_dir / "tasks" / f"{task_id}.json"
        write_document(store_dir, path, [create_event("task_created", task_id, None, {})], _snapshot(task_id))
        with open(event_log_path(store_dir, task_id), "a", encoding="utf-8") as fh:
            fh.write('{"id": "ev_trunc')

        events = read_events(store_dir, task_id)
        assert len(events) == 1
        assert events[0]["type"] == "task_created"
