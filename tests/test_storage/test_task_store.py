"""Tests for the task repository."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from taskgate.core.errors import Forbidden, NotFound, ValidationFailure
from taskgate.core.filters import creator_is, match_all
from taskgate.core.ids import generate_task_id, generate_user_id
from taskgate.core.principals import USER, Ref
from taskgate.storage.operations import read_events
from taskgate.storage.tasks import (
    create_task,
    delete_task,
    list_tasks,
    read_task,
    task_path,
    task_stats,
    update_task,
)


def _fields(title: str, due: str, **extra: object) -> dict:
    fields = {"title": title, "description": f"About {title}", "due_date": due}
    fields.update(extra)
    return fields


@pytest.fixture()
def owner() -> Ref:
    return Ref(kind=USER, id=generate_user_id())


class TestCreateAndRead:
    def test_create_persists_snapshot_and_event(self, store_dir: Path, owner: Ref) -> None:
        snap = create_task(store_dir, _fields("A", "2025-05-01"), owner)
        assert task_path(store_dir, snap["id"]).is_file()
        assert read_task(store_dir, snap["id"]) == snap
        assert [e["type"] for e in read_events(store_dir, snap["id"])] == ["task_created"]

    def test_invalid_fields_write_nothing(self, store_dir: Path, owner: Ref) -> None:
        with pytest.raises(ValidationFailure):
            create_task(store_dir, {"title": "No description"}, owner)
        assert list(Path(store_dir / "tasks").iterdir()) == []

    def test_read_missing(self, store_dir: Path) -> None:
        assert read_task(store_dir, generate_task_id()) is None

    def test_read_rejects_traversal(self, store_dir: Path) -> None:
        assert read_task(store_dir, "../config") is None


class TestListTasks:
    def test_sorted_by_due_date(self, store_dir: Path, owner: Ref) -> None:
        late = create_task(store_dir, _fields("late", "2025-06-01"), owner)
        early = create_task(store_dir, _fields("early", "2025-04-01"), owner)
        mid = create_task(store_dir, _fields("mid", "2025-05-01T10:00:00+02:00"), owner)
        ids = [t["id"] for t in list_tasks(store_dir, match_all)]
        assert ids == [early["id"], mid["id"], late["id"]]

    def test_scope_applied(self, store_dir: Path, owner: Ref) -> None:
        other = Ref(kind=USER, id=generate_user_id())
        mine = create_task(store_dir, _fields("mine", "2025-05-01"), owner)
        create_task(store_dir, _fields("theirs", "2025-05-01"), other)
        assert [t["id"] for t in list_tasks(store_dir, creator_is(owner))] == [mine["id"]]

    def test_filters(self, store_dir: Path, owner: Ref) -> None:
        create_task(store_dir, _fields("Budget review", "2025-05-01", status="completed"), owner)
        match = create_task(store_dir, _fields("Budget draft", "2025-05-01T18:30:00Z"), owner)
        create_task(store_dir, _fields("Budget plan", "2025-05-02"), owner)

        result = list_tasks(
            store_dir, match_all, status="pending", day=date(2025, 5, 1), search="budget"
        )
        assert [t["id"] for t in result] == [match["id"]]

    def test_empty_store(self, store_dir: Path) -> None:
        assert list_tasks(store_dir, match_all) == []


class TestStats:
    def test_counts_within_scope(self, store_dir: Path, owner: Ref) -> None:
        other = Ref(kind=USER, id=generate_user_id())
        create_task(store_dir, _fields("a", "2025-05-01"), owner)
        create_task(store_dir, _fields("b", "2025-05-01", status="completed"), owner)
        create_task(store_dir, _fields("c", "2025-05-01", status="completed"), other)
        stats = task_stats(store_dir, creator_is(owner))
        assert stats == {"pending": 1, "in-progress": 0, "completed": 1}
        assert sum(task_stats(store_dir, match_all).values()) == 3


class TestUpdate:
    def test_partial_update(self, store_dir: Path, owner: Ref) -> None:
        snap = create_task(store_dir, _fields("A", "2025-05-01"), owner)
        updated = update_task(store_dir, snap["id"], {"status": "in-progress"}, owner)
        assert updated["status"] == "in-progress"
        assert updated["title"] == "A"
        assert updated["creator"] == owner.to_dict()
        assert read_task(store_dir, snap["id"]) == updated
        assert read_events(store_dir, snap["id"])[-1]["data"] == {"status": "in-progress"}

    def test_creator_cannot_change(self, store_dir: Path, owner: Ref) -> None:
        snap = create_task(store_dir, _fields("A", "2025-05-01"), owner)
        with pytest.raises(ValidationFailure, match="cannot be changed"):
            update_task(store_dir, snap["id"], {"creator": {"kind": "user", "id": "x"}}, owner)
        assert read_task(store_dir, snap["id"])["creator"] == owner.to_dict()

    def test_check_runs_before_not_found(self, store_dir: Path, owner: Ref) -> None:
        def _deny(snapshot: dict | None) -> None:
            raise Forbidden("update task", "user")

        with pytest.raises(Forbidden):
            update_task(store_dir, generate_task_id(), {"title": "x"}, owner, check=_deny)

    def test_check_runs_before_validation(self, store_dir: Path, owner: Ref) -> None:
        snap = create_task(store_dir, _fields("A", "2025-05-01"), owner)

        def _deny(snapshot: dict | None) -> None:
            raise Forbidden("update task", "user")

        with pytest.raises(Forbidden):
            update_task(store_dir, snap["id"], {"bogus": 1}, owner, check=_deny)

    def test_missing(self, store_dir: Path, owner: Ref) -> None:
        with pytest.raises(NotFound):
            update_task(store_dir, generate_task_id(), {"title": "x"}, owner)


class TestDelete:
    def test_delete(self, store_dir: Path, owner: Ref) -> None:
        snap = create_task(store_dir, _fields("A", "2025-05-01"), owner)
        delete_task(store_dir, snap["id"], owner)
        assert read_task(store_dir, snap["id"]) is None
        assert read_events(store_dir, snap["id"])[-1]["type"] == "task_deleted"

    def test_delete_missing(self, store_dir: Path, owner: Ref) -> None:
        with pytest.raises(NotFound):
            delete_task(store_dir, generate_task_id(), owner)
