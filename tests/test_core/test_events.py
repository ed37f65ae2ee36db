"""Tests for audit event creation and serialization."""

from __future__ import annotations

import json
import re

import pytest

from taskgate.core.events import create_event, serialize_event, utc_now
from taskgate.core.ids import generate_user_id, validate_id
from taskgate.core.principals import USER, Ref


class TestCreateEvent:
    def test_fields(self) -> None:
        actor = Ref(kind=USER, id=generate_user_id())
        ev = create_event("task_created", "task_x", actor, {"title": "T"}, ts="2025-01-01T00:00:00.000Z")
        assert validate_id(ev["id"], "ev")
        assert ev["type"] == "task_created"
        assert ev["subject_id"] == "task_x"
        assert ev["actor"] == actor.to_dict()
        assert ev["ts"] == "2025-01-01T00:00:00.000Z"
        assert ev["data"] == {"title": "T"}

    def test_bootstrap_actor_is_none(self) -> None:
        ev = create_event("principal_created", "adm_x", None, {})
        assert ev["actor"] is None

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="Unknown event type"):
            create_event("task_exploded", "task_x", None, {})


class TestSerialization:
    def test_single_line(self) -> None:
        line = serialize_event(create_event("task_deleted", "task_x", None, {"title": "T"}))
        assert line.endswith("\n")
        assert "\n" not in line[:-1]
        assert json.loads(line)["type"] == "task_deleted"


def test_utc_now_format() -> None:
    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$", utc_now())
