"""Principal Store: three disjoint partitions keyed by id and by email."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from taskgate.core.errors import ValidationFailure
from taskgate.core.events import create_event
from taskgate.core.principals import ADMIN, MANAGER, PARTITIONS, USER, Ref, kind_for_id
from taskgate.storage.fs import read_json
from taskgate.storage.locks import lock_key, multi_lock, store_lock
from taskgate.storage.operations import write_document

logger = logging.getLogger(__name__)

# Lookup order for login; mirrors the role hierarchy.
_EMAIL_LOOKUP_ORDER: tuple[str, ...] = (ADMIN, MANAGER, USER)

EMAILS_LOCK = "emails"


def locks_dir(store_dir: Path) -> Path:
    return store_dir / "locks"


def principal_lock(kind: str, principal_id: str) -> str:
    return lock_key(PARTITIONS[kind].directory, principal_id)


def principal_path(store_dir: Path, kind: str, principal_id: str) -> Path:
    return store_dir / "principals" / PARTITIONS[kind].directory / f"{principal_id}.json"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def read_principal(store_dir: Path, kind: str, principal_id: str) -> dict | None:
    """Load the principal *principal_id* from the partition for *kind*.

    Returns ``None`` when the partition has no such record, including when
    the id's prefix belongs to another partition.
    """
    partition = PARTITIONS.get(kind)
    if partition is None or kind_for_id(principal_id) != kind:
        return None
    return read_json(principal_path(store_dir, kind, principal_id))


def resolve_ref(store_dir: Path, ref: Ref) -> dict | None:
    return read_principal(store_dir, ref.kind, ref.id)


def list_principals(store_dir: Path, kind: str) -> list[dict]:
    """Return every principal in one partition, ordered by id (creation order)."""
    directory = store_dir / "principals" / PARTITIONS[kind].directory
    result: list[dict] = []
    if directory.is_dir():
        for path in sorted(directory.glob("*.json")):
            try:
                result.append(json.loads(path.read_text(encoding="utf-8")))
            except FileNotFoundError:
                # Deleted between glob and read.
                continue
    return result


def find_by_email(store_dir: Path, email: str) -> dict | None:
    """Look up a principal by (normalized) email across all partitions."""
    for kind in _EMAIL_LOOKUP_ORDER:
        for principal in list_principals(store_dir, kind):
            if principal.get("email") == email:
                return principal
    return None


def admin_exists(store_dir: Path) -> bool:
    directory = store_dir / "principals" / PARTITIONS[ADMIN].directory
    return directory.is_dir() and any(directory.glob("*.json"))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def save_principal(store_dir: Path, principal: dict, events: list[dict] | None = None) -> None:
    """Write a principal snapshot.  The caller must hold its lock."""
    path = principal_path(store_dir, principal["role"], principal["id"])
    write_document(store_dir, path, events or [], principal)


def write_new_principal(store_dir: Path, principal: dict, actor: Ref | None) -> None:
    """Check email uniqueness and write *principal* with its creation event.

    The caller must hold ``EMAILS_LOCK`` and the principal's own lock.
    """
    if find_by_email(store_dir, principal["email"]) is not None:
        raise ValidationFailure("email", "Email already exists")
    event = create_event(
        "principal_created",
        principal["id"],
        actor,
        {"role": principal["role"], "email": principal["email"]},
        ts=principal["created_at"],
    )
    save_principal(store_dir, principal, [event])


def insert_principal(
    store_dir: Path,
    principal: dict,
    actor: Ref | None,
    *,
    timeout: float = 10,
) -> dict:
    """Store a new principal, enforcing email uniqueness across partitions.

    Raises:
        ValidationFailure: If the email is already used by any principal.
    """
    keys = [EMAILS_LOCK, principal_lock(principal["role"], principal["id"])]
    with multi_lock(locks_dir(store_dir), keys, timeout=timeout):
        write_new_principal(store_dir, principal, actor)
    logger.info("Created %s %s", principal["role"], principal["id"])
    return principal


def insert_first_admin(store_dir: Path, principal: dict, *, timeout: float = 10) -> dict | None:
    """Store *principal* as the bootstrap administrator.

    Returns ``None`` (and writes nothing) if an administrator already exists.
    """
    with store_lock(locks_dir(store_dir), "admins", timeout=timeout):
        if admin_exists(store_dir):
            return None
        return insert_principal(store_dir, principal, None, timeout=timeout)
