"""Authorization policy engine.

``authorize(principal, action, target)`` is a pure function of the caller's
principal document (as loaded by the identity resolver for this request)
and, for single-task actions, the loaded task snapshot.  It returns
``Allow`` (optionally carrying a scope predicate for list actions) or
``Deny``.

Capability table:

    action              admin   manager                          user
    list tasks          all     own ∪ created by assigned users  own
    view/update/delete  any     same scope as list               own
    create task         yes     yes                              yes
    create manager      yes     no                               no
    create user         yes     yes (self becomes manager)       no
    list managers       yes     no                               no
    list users          all     own assigned users               no
    assign manager      yes     no                               no
    delete principal    yes     no                               no

Single-task checks re-derive the list scope against the task's creator
reference; they never rely on a task having appeared in an earlier list.
A missing task (``target=None``) is outside every non-admin scope, so
managers and users are denied before existence is disclosed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from taskgate.core import filters
from taskgate.core.errors import Forbidden
from taskgate.core.principals import ADMIN, MANAGER, USER, Ref, ref_of

logger = logging.getLogger(__name__)

LIST_TASKS = "list tasks"
VIEW_TASK = "view task"
CREATE_TASK = "create task"
UPDATE_TASK = "update task"
DELETE_TASK = "delete task"
CREATE_MANAGER = "create manager"
CREATE_USER = "create regular user"
LIST_MANAGERS = "list managers"
LIST_USERS = "list regular users"
ASSIGN_MANAGER = "assign manager"
DELETE_PRINCIPAL = "delete principal"

SINGLE_TASK_ACTIONS: frozenset[str] = frozenset({VIEW_TASK, UPDATE_TASK, DELETE_TASK})

# Role-gated actions that need no target.
_ROLE_GATES: dict[str, frozenset[str]] = {
    CREATE_TASK: frozenset({ADMIN, MANAGER, USER}),
    CREATE_MANAGER: frozenset({ADMIN}),
    CREATE_USER: frozenset({ADMIN, MANAGER}),
    LIST_MANAGERS: frozenset({ADMIN}),
    ASSIGN_MANAGER: frozenset({ADMIN}),
    DELETE_PRINCIPAL: frozenset({ADMIN}),
}

Scope = Callable[[dict], bool]


@dataclass(frozen=True)
class Allow:
    scope: Scope | None = None


@dataclass(frozen=True)
class Deny:
    reason: str


Decision = Allow | Deny


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------


def assigned_user_refs(principal: dict) -> list[Ref]:
    return [Ref(kind=USER, id=uid) for uid in principal.get("assigned_user_ids") or []]


def task_scope(principal: dict) -> Scope:
    """Return the predicate selecting the tasks *principal* may see."""
    role = principal["role"]
    if role == ADMIN:
        return filters.match_all
    own = filters.creator_is(ref_of(principal))
    if role == MANAGER:
        # Union: the manager's own tasks plus those of currently assigned users.
        return filters.any_of(own, filters.creator_in(assigned_user_refs(principal)))
    return own


def user_scope(principal: dict) -> Scope:
    """Return the predicate selecting the RegularUsers *principal* may list."""
    if principal["role"] == ADMIN:
        return lambda user: True
    manager_id = principal["id"]
    return lambda user: user.get("manager_id") == manager_id


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


def authorize(principal: dict, action: str, target: dict | None = None) -> Decision:
    role = principal["role"]

    if action == LIST_TASKS:
        return Allow(scope=task_scope(principal))

    if action in SINGLE_TASK_ACTIONS:
        if role == ADMIN:
            return Allow()
        if target is not None and task_scope(principal)(target):
            return Allow()
        if role == MANAGER:
            return Deny("task is neither yours nor created by one of your assigned users")
        return Deny("task was not created by you")

    if action == LIST_USERS:
        if role in (ADMIN, MANAGER):
            return Allow(scope=user_scope(principal))
        return Deny("regular users cannot list users")

    allowed_roles = _ROLE_GATES.get(action)
    if allowed_roles is None:
        raise ValueError(f"Unknown action: '{action}'")
    if role in allowed_roles:
        return Allow()
    return Deny(f"requires role {' or '.join(sorted(allowed_roles))}")


def require(principal: dict, action: str, target: dict | None = None) -> Allow:
    """Like ``authorize`` but raise ``Forbidden`` on denial."""
    decision = authorize(principal, action, target)
    if isinstance(decision, Deny):
        logger.info(
            "Denied %s for %s %s: %s",
            action,
            principal["role"],
            principal["id"],
            decision.reason,
        )
        raise Forbidden(action, principal["role"])
    return decision
