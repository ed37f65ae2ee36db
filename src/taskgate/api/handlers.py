"""Use cases shared by the HTTP server and the CLI.

Each function takes the ``.taskgate/`` directory, the loaded config, the
resolved caller (where the route is authenticated), and the already-parsed
request input.  Functions return plain JSON-ready data and raise
``TaskgateError`` subclasses for every failure the caller should see.
"""

from __future__ import annotations

import logging
from pathlib import Path

from taskgate.auth.identity import ResolvedPrincipal
from taskgate.auth.passwords import check_password, hash_password
from taskgate.auth.tokens import sign
from taskgate.core import policy
from taskgate.core.config import bcrypt_rounds, lock_timeout, token_ttl
from taskgate.core.errors import Forbidden, NotFound, Unauthenticated, ValidationFailure
from taskgate.core.events import utc_now
from taskgate.core.ids import validate_id
from taskgate.core.principals import (
    ADMIN,
    MANAGER,
    USER,
    Ref,
    kind_for_id,
    new_principal,
    normalize_email,
    normalize_name,
    public_view,
    summary_view,
    validate_password,
)
from taskgate.core.tasks import creator_ref, parse_datetime, parse_day, validate_status
from taskgate.storage import assignments
from taskgate.storage import tasks as task_store
from taskgate.storage.principals import (
    find_by_email,
    insert_first_admin,
    insert_principal,
    list_principals,
    resolve_ref,
)

logger = logging.getLogger(__name__)


def _field(body: dict, *names: str) -> object:
    """Return the first present value among *names* (snake_case or camelCase)."""
    for name in names:
        if name in body:
            return body[name]
    return None


def _issue_token(config: dict, principal: dict) -> str:
    return sign(
        principal["id"],
        principal["role"],
        secret=config["auth"]["token_secret"],
        ttl_seconds=token_ttl(config),
    )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def login(store_dir: Path, config: dict, body: dict) -> dict:
    email = _field(body, "email")
    password = _field(body, "password")
    if not email or not password:
        raise ValidationFailure(
            "email" if not email else "password", "Please provide email and password"
        )
    if not isinstance(email, str) or not isinstance(password, str):
        raise Unauthenticated("Invalid credentials")

    principal = find_by_email(store_dir, email.strip().lower())
    # Same failure for unknown email and wrong password.
    if principal is None or not check_password(password, principal["password_hash"]):
        raise Unauthenticated("Invalid credentials")

    return {"token": _issue_token(config, principal), "user": summary_view(principal)}


def me(caller: ResolvedPrincipal) -> dict:
    return caller.principal


def create_initial_admin(store_dir: Path, config: dict, body: dict) -> dict:
    """Create the first Administrator; refused once any Administrator exists."""
    name = normalize_name(_field(body, "name"))
    email = normalize_email(_field(body, "email"))
    password = validate_password(_field(body, "password"))

    principal = new_principal(
        ADMIN,
        name=name,
        email=email,
        password_hash=hash_password(password, rounds=bcrypt_rounds(config)),
        created_by=None,
        ts=utc_now(),
    )
    stored = insert_first_admin(store_dir, principal, timeout=lock_timeout(config))
    if stored is None:
        raise Forbidden("create-admin", "anonymous", "an administrator already exists")
    logger.info("Bootstrap administrator %s created", stored["id"])
    return {"token": _issue_token(config, stored), "user": summary_view(stored)}


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def _check_assignee(store_dir: Path, body: dict) -> None:
    raw = body.get("assignee")
    if raw is None:
        return
    ref = Ref.parse(raw, "assignee")
    if resolve_ref(store_dir, ref) is None:
        raise ValidationFailure("assignee", "Assignee not found")


def _task_input(body: dict) -> dict:
    """Map request keys (camelCase accepted) onto task field names."""
    fields = dict(body)
    if "dueDate" in fields:
        fields["due_date"] = fields.pop("dueDate")
    if "assignedTo" in fields:
        fields["assignee"] = fields.pop("assignedTo")
    return fields


def _load_for(caller: ResolvedPrincipal, store_dir: Path, task_id: str, action: str) -> dict:
    """Load a task and authorize *action* before disclosing whether it exists."""
    snapshot = task_store.read_task(store_dir, task_id) if validate_id(task_id, "task") else None
    policy.require(caller.principal, action, snapshot)
    if snapshot is None:
        raise NotFound("Task not found")
    return snapshot


def _authorizer(caller: ResolvedPrincipal, action: str):  # noqa: ANN202
    def _check(snapshot: dict | None) -> None:
        policy.require(caller.principal, action, snapshot)

    return _check


def _with_creator(store_dir: Path, snapshot: dict, cache: dict[str, dict | None]) -> dict:
    creator_id = snapshot["creator"]["id"]
    if creator_id not in cache:
        found = resolve_ref(store_dir, creator_ref(snapshot))
        cache[creator_id] = summary_view(found) if found is not None else None
    result = dict(snapshot)
    result["creator_profile"] = cache[creator_id]
    return result


def create_task(store_dir: Path, config: dict, caller: ResolvedPrincipal, body: dict) -> dict:
    policy.require(caller.principal, policy.CREATE_TASK)
    fields = _task_input(body)
    _check_assignee(store_dir, fields)
    return task_store.create_task(store_dir, fields, caller.ref, timeout=lock_timeout(config))


def _parse_list_query(query: dict[str, str]) -> dict:
    params: dict = {}
    status = query.get("status")
    if status:
        params["status"] = validate_status(status)
    day = query.get("dueDate") or query.get("due_date")
    if day:
        try:
            params["day"] = parse_day(day)
        except ValueError:
            raise ValidationFailure("due_date", f"Invalid due date: '{day}'") from None
    for key in ("due_from", "due_to"):
        raw = query.get(key)
        if raw:
            try:
                params[key] = parse_datetime(raw)
            except ValueError:
                raise ValidationFailure(key, f"Invalid date-time: '{raw}'") from None
    search = query.get("search")
    if search:
        params["search"] = search
    return params


def list_tasks(
    store_dir: Path, config: dict, caller: ResolvedPrincipal, query: dict[str, str]
) -> list[dict]:
    allow = policy.require(caller.principal, policy.LIST_TASKS)
    params = _parse_list_query(query)
    cache: dict[str, dict | None] = {}
    return [
        _with_creator(store_dir, snap, cache)
        for snap in task_store.list_tasks(store_dir, allow.scope, **params)
    ]


def task_stats(store_dir: Path, config: dict, caller: ResolvedPrincipal) -> dict[str, int]:
    allow = policy.require(caller.principal, policy.LIST_TASKS)
    return task_store.task_stats(store_dir, allow.scope)


def get_task(store_dir: Path, config: dict, caller: ResolvedPrincipal, task_id: str) -> dict:
    snapshot = _load_for(caller, store_dir, task_id, policy.VIEW_TASK)
    return _with_creator(store_dir, snapshot, {})


def update_task(
    store_dir: Path, config: dict, caller: ResolvedPrincipal, task_id: str, body: dict
) -> dict:
    if not validate_id(task_id, "task"):
        _load_for(caller, store_dir, task_id, policy.UPDATE_TASK)
    return task_store.update_task(
        store_dir,
        task_id,
        _task_input(body),
        caller.ref,
        check=_authorizer(caller, policy.UPDATE_TASK),
        validate=lambda fields: _check_assignee(store_dir, fields),
        timeout=lock_timeout(config),
    )


def delete_task(store_dir: Path, config: dict, caller: ResolvedPrincipal, task_id: str) -> dict:
    if not validate_id(task_id, "task"):
        _load_for(caller, store_dir, task_id, policy.DELETE_TASK)
    task_store.delete_task(
        store_dir,
        task_id,
        caller.ref,
        check=_authorizer(caller, policy.DELETE_TASK),
        timeout=lock_timeout(config),
    )
    return {"message": "Task deleted successfully"}


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------


def _new_account(config: dict, kind: str, body: dict, created_by: Ref) -> dict:
    return new_principal(
        kind,
        name=normalize_name(_field(body, "name")),
        email=normalize_email(_field(body, "email")),
        password_hash=hash_password(
            validate_password(_field(body, "password")), rounds=bcrypt_rounds(config)
        ),
        created_by=created_by,
        ts=utc_now(),
    )


def create_manager(store_dir: Path, config: dict, caller: ResolvedPrincipal, body: dict) -> dict:
    policy.require(caller.principal, policy.CREATE_MANAGER)
    principal = _new_account(config, MANAGER, body, caller.ref)
    insert_principal(store_dir, principal, caller.ref, timeout=lock_timeout(config))
    return summary_view(principal)


def create_regular_user(
    store_dir: Path, config: dict, caller: ResolvedPrincipal, body: dict
) -> dict:
    """Create a RegularUser.

    A manager creating a user becomes its manager; an administrator may name
    any existing manager (or none).
    """
    policy.require(caller.principal, policy.CREATE_USER)
    if caller.role == MANAGER:
        manager_id = caller.ref.id
    else:
        manager_id = _field(body, "manager_id", "managerId") or None
        if manager_id is not None and not isinstance(manager_id, str):
            raise NotFound("Manager not found")

    principal = _new_account(config, USER, body, caller.ref)
    timeout = lock_timeout(config)
    if manager_id is None:
        insert_principal(store_dir, principal, caller.ref, timeout=timeout)
    else:
        principal = assignments.insert_assigned_user(
            store_dir, principal, manager_id, caller.ref, timeout=timeout
        )
    result = summary_view(principal)
    result["manager_id"] = principal.get("manager_id")
    return result


def list_managers(store_dir: Path, config: dict, caller: ResolvedPrincipal) -> list[dict]:
    policy.require(caller.principal, policy.LIST_MANAGERS)
    users = {u["id"]: u for u in list_principals(store_dir, USER)}
    result: list[dict] = []
    for manager in list_principals(store_dir, MANAGER):
        view = public_view(manager)
        view["assigned_users"] = [
            summary_view(users[uid])
            for uid in manager.get("assigned_user_ids") or []
            if uid in users
        ]
        result.append(view)
    return result


def list_regular_users(store_dir: Path, config: dict, caller: ResolvedPrincipal) -> list[dict]:
    allow = policy.require(caller.principal, policy.LIST_USERS)
    return [public_view(u) for u in list_principals(store_dir, USER) if allow.scope(u)]


def assign_manager(store_dir: Path, config: dict, caller: ResolvedPrincipal, body: dict) -> dict:
    """Assign (or, with a null manager, unassign) a RegularUser."""
    policy.require(caller.principal, policy.ASSIGN_MANAGER)
    user_id = _field(body, "user_id", "userId")
    if not isinstance(user_id, str) or not user_id:
        raise ValidationFailure("user_id", "'user_id' is required.")
    if kind_for_id(user_id) != USER:
        raise NotFound("User not found")

    manager_id = _field(body, "manager_id", "managerId")
    timeout = lock_timeout(config)
    if manager_id is None:
        user = assignments.unassign(store_dir, user_id, caller.ref, timeout=timeout)
    else:
        if not isinstance(manager_id, str) or kind_for_id(manager_id) != MANAGER:
            raise NotFound("Manager not found")
        user = assignments.assign(store_dir, user_id, manager_id, caller.ref, timeout=timeout)
    return public_view(user)


def delete_principal(
    store_dir: Path, config: dict, caller: ResolvedPrincipal, principal_id: str
) -> dict:
    policy.require(caller.principal, policy.DELETE_PRINCIPAL)
    kind = kind_for_id(principal_id)
    timeout = lock_timeout(config)
    if kind == MANAGER:
        assignments.remove_manager(store_dir, principal_id, caller.ref, timeout=timeout)
        return {"message": "manager deleted successfully"}
    if kind == USER:
        assignments.remove_user(store_dir, principal_id, caller.ref, timeout=timeout)
        return {"message": "user deleted successfully"}
    raise NotFound("User not found")
