"""Composable task predicates.

Every list query is a single predicate built as

    scope AND status AND due-range AND (title-match OR description-match)

where *scope* comes from the policy engine and the rest from the caller.
Predicates are plain callables over task snapshots so they can be combined
freely and applied to any scan.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime

from taskgate.core.principals import Ref
from taskgate.core.tasks import due_datetime

TaskFilter = Callable[[dict], bool]


def match_all(snapshot: dict) -> bool:  # noqa: ARG001
    return True


def all_of(*filters: TaskFilter) -> TaskFilter:
    def _pred(snapshot: dict) -> bool:
        return all(f(snapshot) for f in filters)

    return _pred


def any_of(*filters: TaskFilter) -> TaskFilter:
    def _pred(snapshot: dict) -> bool:
        return any(f(snapshot) for f in filters)

    return _pred


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------


def creator_is(ref: Ref) -> TaskFilter:
    def _pred(snapshot: dict) -> bool:
        creator = snapshot.get("creator") or {}
        return creator.get("kind") == ref.kind and creator.get("id") == ref.id

    return _pred


def creator_in(refs: Iterable[Ref]) -> TaskFilter:
    keys = frozenset((r.kind, r.id) for r in refs)

    def _pred(snapshot: dict) -> bool:
        creator = snapshot.get("creator") or {}
        return (creator.get("kind"), creator.get("id")) in keys

    return _pred


# ---------------------------------------------------------------------------
# Caller-supplied filters
# ---------------------------------------------------------------------------


def status_is(status: str) -> TaskFilter:
    def _pred(snapshot: dict) -> bool:
        return snapshot.get("status") == status

    return _pred


def due_on(day: date) -> TaskFilter:
    """Match tasks due anywhere within *day* (00:00:00.000 to 23:59:59.999).

    The day boundary is taken in the stored value's own UTC offset.
    """

    def _pred(snapshot: dict) -> bool:
        return due_datetime(snapshot).date() == day

    return _pred


def due_between(start: datetime | None, end: datetime | None) -> TaskFilter:
    """Match tasks due within ``[start, end]``; either bound may be open."""

    def _pred(snapshot: dict) -> bool:
        due = due_datetime(snapshot)
        if start is not None and due < start:
            return False
        if end is not None and due > end:
            return False
        return True

    return _pred


def text_matches(search: str) -> TaskFilter:
    """Case-insensitive literal substring match over title or description."""
    needle = search.casefold()

    def _title(snapshot: dict) -> bool:
        return needle in (snapshot.get("title") or "").casefold()

    def _description(snapshot: dict) -> bool:
        return needle in (snapshot.get("description") or "").casefold()

    return any_of(_title, _description)


def build_task_filter(
    scope: TaskFilter,
    *,
    status: str | None = None,
    day: date | None = None,
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    search: str | None = None,
) -> TaskFilter:
    """Combine the role scope with the caller's optional filters."""
    parts: list[TaskFilter] = [scope]
    if status is not None:
        parts.append(status_is(status))
    if day is not None:
        parts.append(due_on(day))
    if due_from is not None or due_to is not None:
        parts.append(due_between(due_from, due_to))
    if search:
        parts.append(text_matches(search))
    return all_of(*parts)
