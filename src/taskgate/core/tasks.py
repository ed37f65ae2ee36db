"""Task field validation and snapshot construction."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone

from taskgate.core.errors import ValidationFailure
from taskgate.core.principals import Ref

STATUSES: tuple[str, ...] = ("pending", "in-progress", "completed")
DEFAULT_STATUS = "pending"

# Fields a caller may change after creation.
MUTABLE_FIELDS: frozenset[str] = frozenset(
    {"title", "description", "status", "due_date", "assignee"}
)

# Fields that are fixed once the task exists.
IMMUTABLE_FIELDS: frozenset[str] = frozenset(
    {"id", "creator", "created_at", "updated_at", "schema_version"}
)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def parse_datetime(raw: str) -> datetime:
    """Parse an ISO 8601 date or date-time.  Naive values are taken as UTC.

    Raises ``ValueError`` on malformed input.
    """
    text = raw.strip()
    if len(text) == 10:
        d = date.fromisoformat(text)
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_day(raw: str) -> date:
    """Parse a calendar day (``YYYY-MM-DD`` or the date part of a date-time)."""
    text = raw.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return parse_datetime(text).date()


def format_datetime(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds")


def validate_status(status: object) -> str:
    if status not in STATUSES:
        raise ValidationFailure(
            "status", f"Invalid status: '{status}'. Valid: {', '.join(STATUSES)}"
        )
    return status


def _require_text(fields: dict, name: str) -> str:
    raw = fields.get(name)
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationFailure(name, f"'{name}' is required.")
    return raw.strip()


def _parse_due(raw: object) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationFailure("due_date", "'due_date' is required.")
    try:
        return format_datetime(parse_datetime(raw))
    except ValueError:
        raise ValidationFailure("due_date", f"Invalid due date: '{raw}'") from None


def _parse_assignee(raw: object) -> dict | None:
    if raw is None:
        return None
    return Ref.parse(raw, "assignee").to_dict()


# ---------------------------------------------------------------------------
# Snapshot construction
# ---------------------------------------------------------------------------


def new_task(task_id: str, fields: dict, creator: Ref, ts: str) -> dict:
    """Build a brand-new task snapshot.  *creator* is set here and never again."""
    return {
        "schema_version": 1,
        "id": task_id,
        "title": _require_text(fields, "title"),
        "description": _require_text(fields, "description"),
        "status": validate_status(fields.get("status") or DEFAULT_STATUS),
        "due_date": _parse_due(fields.get("due_date")),
        "creator": creator.to_dict(),
        "assignee": _parse_assignee(fields.get("assignee")),
        "created_at": ts,
        "updated_at": ts,
    }


def validate_update(fields: dict) -> dict:
    """Validate a partial update and return the normalized changes.

    Raises ``ValidationFailure`` for immutable or unknown fields, or when
    nothing would change.
    """
    for name in fields:
        if name in IMMUTABLE_FIELDS:
            raise ValidationFailure(name, f"'{name}' cannot be changed after creation.")
        if name not in MUTABLE_FIELDS:
            raise ValidationFailure(name, f"Unknown task field: '{name}'")

    changes: dict = {}
    if "title" in fields:
        changes["title"] = _require_text(fields, "title")
    if "description" in fields:
        changes["description"] = _require_text(fields, "description")
    if "status" in fields:
        changes["status"] = validate_status(fields["status"])
    if "due_date" in fields:
        changes["due_date"] = _parse_due(fields["due_date"])
    if "assignee" in fields:
        changes["assignee"] = _parse_assignee(fields["assignee"])

    if not changes:
        raise ValidationFailure(None, "No fields to update.")
    return changes


def apply_update(snapshot: dict, changes: dict, ts: str) -> dict:
    """Return a new snapshot with *changes* applied."""
    snap = dict(snapshot)
    snap.update(changes)
    snap["updated_at"] = ts
    return snap


def creator_ref(snapshot: dict) -> Ref:
    return Ref.from_dict(snapshot["creator"])


def due_datetime(snapshot: dict) -> datetime:
    return parse_datetime(snapshot["due_date"])


def serialize_snapshot(snapshot: dict) -> str:
    """Pretty-print a snapshot as sorted JSON with trailing newline."""
    return json.dumps(snapshot, sort_keys=True, indent=2) + "\n"
