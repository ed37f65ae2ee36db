"""Audit event creation and serialization."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from taskgate.core.ids import generate_event_id
from taskgate.core.principals import Ref

EVENT_TYPES: frozenset[str] = frozenset(
    {
        "principal_created",
        "principal_deleted",
        "assignment_changed",
        "task_created",
        "task_updated",
        "task_deleted",
    }
)


def utc_now() -> str:
    """Return the current UTC time as an RFC 3339 string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def create_event(
    type: str,
    subject_id: str,
    actor: Ref | None,
    data: dict,
    *,
    event_id: str | None = None,
    ts: str | None = None,
) -> dict:
    """Build a complete event dict.

    *actor* is ``None`` only for the bootstrap administrator, which has no
    authenticated creator.
    """
    if type not in EVENT_TYPES:
        raise ValueError(f"Unknown event type: '{type}'")
    return {
        "schema_version": 1,
        "id": event_id if event_id is not None else generate_event_id(),
        "ts": ts if ts is not None else utc_now(),
        "type": type,
        "subject_id": subject_id,
        "actor": actor.to_dict() if actor is not None else None,
        "data": data,
    }


def serialize_event(event: dict) -> str:
    """Serialize an event to compact JSONL (one line, trailing newline)."""
    return json.dumps(event, sort_keys=True, separators=(",", ":")) + "\n"
