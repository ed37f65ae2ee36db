"""Assignment registry: the bidirectional Manager <-> RegularUser link.

A RegularUser's ``manager_id`` and its Manager's ``assigned_user_ids`` live
in two documents.  Every change to the link is recorded first as an intent
in ``journal/<user_id>.json``::

    {"user_id": ..., "from": <manager id or null>, "to": <manager id or null>,
     "delete_user": bool, "actor": <ref or null>, "ts": ...}

then applied to both documents, then the journal is removed.  Applying an
intent is idempotent, so a journal left behind by a crash is simply
replayed (under the same locks) before the next registry operation on that
user, or by ``recover_pending_assignments``.

Locking is scoped to the user: the registry locks the user document plus
every manager the user's link currently touches (its ``manager_id`` and
any pending journal's endpoints) and the target manager.  Because the set
of managers is read before the locks are taken, it is re-read afterwards;
if it grew, the locks are dropped and the operation retries.
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Generator
from pathlib import Path

from taskgate.core.errors import InvariantViolation, NotFound, StoreUnavailable, ValidationFailure
from taskgate.core.events import create_event, utc_now
from taskgate.core.principals import MANAGER, USER, Ref
from taskgate.storage.fs import atomic_write, read_json, remove_file
from taskgate.storage.locks import multi_lock
from taskgate.storage.operations import delete_document
from taskgate.storage.principals import (
    EMAILS_LOCK,
    list_principals,
    locks_dir,
    principal_lock,
    principal_path,
    read_principal,
    save_principal,
    write_new_principal,
)

logger = logging.getLogger(__name__)

_MAX_LOCK_ATTEMPTS = 5


def journal_path(store_dir: Path, user_id: str) -> Path:
    return store_dir / "journal" / f"{user_id}.json"


def _read_journal(store_dir: Path, user_id: str) -> dict | None:
    return read_json(journal_path(store_dir, user_id))


# ---------------------------------------------------------------------------
# Applying intents
# ---------------------------------------------------------------------------


def _update_members(
    store_dir: Path,
    manager_id: str,
    user_id: str,
    *,
    add: bool,
    actor: Ref | None,
    ts: str,
) -> None:
    manager = read_principal(store_dir, MANAGER, manager_id)
    if manager is None:
        return
    members = set(manager.get("assigned_user_ids") or [])
    if (user_id in members) == add:
        return
    if add:
        members.add(user_id)
    else:
        members.discard(user_id)
    manager = dict(manager)
    manager["assigned_user_ids"] = sorted(members)
    manager["updated_at"] = ts
    event = create_event(
        "assignment_changed",
        manager_id,
        actor,
        {"user_id": user_id, "change": "added" if add else "removed"},
        ts=ts,
    )
    save_principal(store_dir, manager, [event])


def _apply_intent(store_dir: Path, intent: dict) -> None:
    """Bring both sides of the link to the state *intent* describes.

    The caller holds the locks for the user and both managers.
    """
    user_id = intent["user_id"]
    from_id = intent.get("from")
    to_id = intent.get("to")
    actor = Ref.from_dict(intent.get("actor"))
    ts = intent["ts"]

    if to_id is not None and read_principal(store_dir, MANAGER, to_id) is None:
        # The target manager vanished before the intent was applied.
        to_id = None

    if from_id is not None and from_id != to_id:
        _update_members(store_dir, from_id, user_id, add=False, actor=actor, ts=ts)

    user = read_principal(store_dir, USER, user_id)

    if intent.get("delete_user"):
        if user is not None:
            event = create_event("principal_deleted", user_id, actor, {"role": USER}, ts=ts)
            delete_document(store_dir, principal_path(store_dir, USER, user_id), user_id, [event])
        return

    if user is None:
        return

    if user.get("manager_id") != to_id:
        previous = user.get("manager_id")
        user = dict(user)
        user["manager_id"] = to_id
        user["updated_at"] = ts
        event = create_event(
            "assignment_changed", user_id, actor, {"from": previous, "to": to_id}, ts=ts
        )
        save_principal(store_dir, user, [event])

    if to_id is not None:
        _update_members(store_dir, to_id, user_id, add=True, actor=actor, ts=ts)


def _run_intent(store_dir: Path, intent: dict) -> None:
    path = journal_path(store_dir, intent["user_id"])
    atomic_write(path, json.dumps(intent, sort_keys=True) + "\n")
    _apply_intent(store_dir, intent)
    remove_file(path)


def _replay_journal(store_dir: Path, user_id: str) -> bool:
    intent = _read_journal(store_dir, user_id)
    if intent is None:
        return False
    logger.warning(
        "Replaying pending assignment for %s (%s -> %s)",
        user_id,
        intent.get("from"),
        intent.get("to"),
    )
    _apply_intent(store_dir, intent)
    remove_file(journal_path(store_dir, user_id))
    return True


# ---------------------------------------------------------------------------
# Locking
# ---------------------------------------------------------------------------


def _managers_touching(store_dir: Path, user_id: str) -> set[str]:
    """Managers whose sets the user's link currently involves."""
    touching: set[str] = set()
    user = read_principal(store_dir, USER, user_id)
    if user is not None and user.get("manager_id"):
        touching.add(user["manager_id"])
    intent = _read_journal(store_dir, user_id)
    if intent is not None:
        touching.update(m for m in (intent.get("from"), intent.get("to")) if m)
    return touching


@contextlib.contextmanager
def _locked_users(
    store_dir: Path,
    user_ids: list[str],
    extra_managers: set[str],
    timeout: float,
) -> Generator[None, None, None]:
    """Lock *user_ids* and every manager their links touch; replay journals.

    Retries when a concurrent change widens the manager set between the
    unlocked read and lock acquisition.  Managers seen on earlier attempts
    stay in the set, so retries converge.
    """
    managers = set(extra_managers)
    for _ in range(_MAX_LOCK_ATTEMPTS):
        for user_id in user_ids:
            managers |= _managers_touching(store_dir, user_id)
        keys = [principal_lock(USER, uid) for uid in user_ids]
        keys += [principal_lock(MANAGER, mid) for mid in managers]
        with multi_lock(locks_dir(store_dir), keys, timeout=timeout):
            current: set[str] = set()
            for user_id in user_ids:
                current |= _managers_touching(store_dir, user_id)
            if current <= managers:
                for user_id in user_ids:
                    _replay_journal(store_dir, user_id)
                yield
                return
    raise StoreUnavailable("Assignment changed concurrently; try again")


# ---------------------------------------------------------------------------
# Consistency checks
# ---------------------------------------------------------------------------


def _violation(message: str) -> InvariantViolation:
    logger.error("Assignment invariant violated: %s", message)
    return InvariantViolation(message)


def _check_current_link(store_dir: Path, user: dict) -> None:
    current_id = user.get("manager_id")
    if current_id is None:
        return
    current = read_principal(store_dir, MANAGER, current_id)
    if current is None:
        raise _violation(f"user {user['id']} points at missing manager {current_id}")
    if user["id"] not in (current.get("assigned_user_ids") or []):
        raise _violation(
            f"user {user['id']} points at manager {current_id}, which does not list it"
        )


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def assign(
    store_dir: Path,
    user_id: str,
    manager_id: str,
    actor: Ref | None,
    *,
    timeout: float = 10,
) -> dict:
    """Assign RegularUser *user_id* to Manager *manager_id*.

    Any previous manager loses the user in the same journaled step.
    Re-assigning to the current manager is a no-op.

    Raises:
        NotFound: If either principal does not exist.
        InvariantViolation: If the stored link is already inconsistent.
    """
    if read_principal(store_dir, USER, user_id) is None:
        raise NotFound("User not found")
    if read_principal(store_dir, MANAGER, manager_id) is None:
        raise NotFound("Manager not found")

    with _locked_users(store_dir, [user_id], {manager_id}, timeout):
        user = read_principal(store_dir, USER, user_id)
        if user is None:
            raise NotFound("User not found")
        target = read_principal(store_dir, MANAGER, manager_id)
        if target is None:
            raise NotFound("Manager not found")

        _check_current_link(store_dir, user)
        current_id = user.get("manager_id")
        if current_id != manager_id and user_id in (target.get("assigned_user_ids") or []):
            raise _violation(
                f"manager {manager_id} lists user {user_id}, which points at {current_id}"
            )
        if current_id == manager_id:
            return user

        _run_intent(
            store_dir,
            {
                "user_id": user_id,
                "from": current_id,
                "to": manager_id,
                "delete_user": False,
                "actor": actor.to_dict() if actor else None,
                "ts": utc_now(),
            },
        )
        logger.info("Assigned user %s to manager %s (was %s)", user_id, manager_id, current_id)
        return read_principal(store_dir, USER, user_id)


def insert_assigned_user(
    store_dir: Path,
    principal: dict,
    manager_id: str,
    actor: Ref | None,
    *,
    timeout: float = 10,
) -> dict:
    """Store a new RegularUser already assigned to *manager_id*.

    The user document and the manager's member set are written as one
    journaled intent while the email, user and manager locks are held, so a
    failure never leaves the user stored without its manager.

    Raises:
        NotFound: If the manager does not exist.
        ValidationFailure: If the email is already used by any principal.
    """
    user_id = principal["id"]
    keys = [EMAILS_LOCK, principal_lock(USER, user_id), principal_lock(MANAGER, manager_id)]
    with multi_lock(locks_dir(store_dir), keys, timeout=timeout):
        if read_principal(store_dir, MANAGER, manager_id) is None:
            raise NotFound("Manager not found")
        intent = {
            "user_id": user_id,
            "from": None,
            "to": manager_id,
            "delete_user": False,
            "actor": actor.to_dict() if actor else None,
            "ts": principal["created_at"],
        }
        path = journal_path(store_dir, user_id)
        atomic_write(path, json.dumps(intent, sort_keys=True) + "\n")
        try:
            write_new_principal(store_dir, dict(principal, manager_id=manager_id), actor)
        except ValidationFailure:
            remove_file(path)
            raise
        _apply_intent(store_dir, intent)
        remove_file(path)
    logger.info("Created user %s under manager %s", user_id, manager_id)
    return read_principal(store_dir, USER, user_id)


def unassign(store_dir: Path, user_id: str, actor: Ref | None, *, timeout: float = 10) -> dict:
    """Detach *user_id* from its manager, if it has one."""
    with _locked_users(store_dir, [user_id], set(), timeout):
        user = read_principal(store_dir, USER, user_id)
        if user is None:
            raise NotFound("User not found")
        _check_current_link(store_dir, user)
        if user.get("manager_id") is None:
            return user
        _run_intent(
            store_dir,
            {
                "user_id": user_id,
                "from": user["manager_id"],
                "to": None,
                "delete_user": False,
                "actor": actor.to_dict() if actor else None,
                "ts": utc_now(),
            },
        )
        logger.info("Unassigned user %s from manager %s", user_id, user["manager_id"])
        return read_principal(store_dir, USER, user_id)


def remove_user(store_dir: Path, user_id: str, actor: Ref | None, *, timeout: float = 10) -> dict:
    """Delete RegularUser *user_id*, removing it from its manager's set."""
    with _locked_users(store_dir, [user_id], set(), timeout):
        user = read_principal(store_dir, USER, user_id)
        if user is None:
            raise NotFound("User not found")
        _run_intent(
            store_dir,
            {
                "user_id": user_id,
                "from": user.get("manager_id"),
                "to": None,
                "delete_user": True,
                "actor": actor.to_dict() if actor else None,
                "ts": utc_now(),
            },
        )
    logger.info("Deleted user %s", user_id)
    return user


def remove_manager(
    store_dir: Path, manager_id: str, actor: Ref | None, *, timeout: float = 10
) -> dict:
    """Delete Manager *manager_id*, clearing ``manager_id`` on each of its users."""
    manager = read_principal(store_dir, MANAGER, manager_id)
    if manager is None:
        raise NotFound("Manager not found")

    members = set(manager.get("assigned_user_ids") or [])
    members |= {
        u["id"] for u in list_principals(store_dir, USER) if u.get("manager_id") == manager_id
    }
    user_ids = sorted(members)

    with _locked_users(store_dir, user_ids, {manager_id}, timeout):
        manager = read_principal(store_dir, MANAGER, manager_id)
        if manager is None:
            raise NotFound("Manager not found")
        ts = utc_now()
        for user_id in user_ids:
            user = read_principal(store_dir, USER, user_id)
            if user is None or user.get("manager_id") != manager_id:
                continue
            _run_intent(
                store_dir,
                {
                    "user_id": user_id,
                    "from": manager_id,
                    "to": None,
                    "delete_user": False,
                    "actor": actor.to_dict() if actor else None,
                    "ts": ts,
                },
            )
        remaining = set(read_principal(store_dir, MANAGER, manager_id).get("assigned_user_ids") or [])
        if remaining & set(user_ids):
            raise _violation(
                f"manager {manager_id} lists users that point elsewhere: "
                f"{', '.join(sorted(remaining & set(user_ids)))}"
            )
        if remaining:
            # Joined after the member scan; they are not locked here.
            raise StoreUnavailable("Manager gained users concurrently; try again")
        event = create_event("principal_deleted", manager_id, actor, {"role": MANAGER}, ts=ts)
        delete_document(
            store_dir, principal_path(store_dir, MANAGER, manager_id), manager_id, [event]
        )
    logger.info("Deleted manager %s and released %d user(s)", manager_id, len(user_ids))
    return manager


def recover_pending_assignments(store_dir: Path, *, timeout: float = 10) -> list[str]:
    """Replay every journal left behind by an interrupted registry operation.

    Returns the ids of the users whose journals were replayed.
    """
    journal_dir = store_dir / "journal"
    if not journal_dir.is_dir():
        return []
    replayed: list[str] = []
    for path in sorted(journal_dir.glob("*.json")):
        user_id = path.stem
        with _locked_users(store_dir, [user_id], set(), timeout):
            # _locked_users replays on entry; the file is gone if it ran.
            pass
        if not path.exists():
            replayed.append(user_id)
    return replayed


def check_assignment_invariant(store_dir: Path) -> list[dict]:
    """Scan every manager and user; return findings for broken links.

    Pending journals are reported but not replayed here.
    """
    findings: list[dict] = []
    managers = {m["id"]: m for m in list_principals(store_dir, MANAGER)}
    users = {u["id"]: u for u in list_principals(store_dir, USER)}

    holders: dict[str, list[str]] = {}
    for manager_id, manager in managers.items():
        for user_id in manager.get("assigned_user_ids") or []:
            holders.setdefault(user_id, []).append(manager_id)
            if user_id not in users:
                findings.append({
                    "check": "dangling_member",
                    "message": f"Manager {manager_id} lists missing user {user_id}",
                    "manager_id": manager_id,
                    "user_id": user_id,
                })
            elif users[user_id].get("manager_id") != manager_id:
                findings.append({
                    "check": "member_disagrees",
                    "message": (
                        f"Manager {manager_id} lists user {user_id}, which points at "
                        f"{users[user_id].get('manager_id')}"
                    ),
                    "manager_id": manager_id,
                    "user_id": user_id,
                })

    for user_id, manager_ids in sorted(holders.items()):
        if len(manager_ids) > 1:
            findings.append({
                "check": "multiple_managers",
                "message": f"User {user_id} is listed by {', '.join(sorted(manager_ids))}",
                "manager_id": None,
                "user_id": user_id,
            })

    for user_id, user in users.items():
        manager_id = user.get("manager_id")
        if manager_id is None:
            continue
        if manager_id not in managers:
            findings.append({
                "check": "dangling_manager",
                "message": f"User {user_id} points at missing manager {manager_id}",
                "manager_id": manager_id,
                "user_id": user_id,
            })
        elif user_id not in (managers[manager_id].get("assigned_user_ids") or []):
            findings.append({
                "check": "missing_member",
                "message": f"User {user_id} points at {manager_id}, which does not list it",
                "manager_id": manager_id,
                "user_id": user_id,
            })

    journal_dir = store_dir / "journal"
    if journal_dir.is_dir():
        for path in sorted(journal_dir.glob("*.json")):
            findings.append({
                "check": "pending_journal",
                "message": f"Assignment for user {path.stem} was interrupted and is pending replay",
                "manager_id": None,
                "user_id": path.stem,
            })

    return findings
