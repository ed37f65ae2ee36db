"""Status aggregation for scoped task sets."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from taskgate.core.tasks import STATUSES


def status_counts(snapshots: Iterable[dict]) -> dict[str, int]:
    """Count tasks per status.

    Every status is present in the result, including those with no tasks.
    """
    counts: Counter = Counter(snap.get("status") for snap in snapshots)
    return {status: counts.get(status, 0) for status in STATUSES}
