"""Principal primitives: roles, polymorphic references, and documents.

A principal is exactly one of three variants, each stored in its own
partition of the Principal Store:

    admin    – Administrator (``adm_`` ids)
    manager  – Manager (``mgr_`` ids), owns a set of assigned RegularUsers
    user     – RegularUser (``usr_`` ids), optionally assigned to one Manager

A ``Ref`` is the tagged union ``{kind, id}`` used everywhere a document
points at a principal (task creator, task assignee, ``created_by``).  The
``PARTITIONS`` table is the single place that maps a kind to its storage
partition; nothing else branches on role to find a document.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from taskgate.core import ids
from taskgate.core.errors import ValidationFailure

ADMIN = "admin"
MANAGER = "manager"
USER = "user"

ROLES: tuple[str, ...] = (ADMIN, MANAGER, USER)

# Display names used in messages and in the public view.
ROLE_DISPLAY: dict[str, str] = {
    ADMIN: "Administrator",
    MANAGER: "Manager",
    USER: "RegularUser",
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MIN_PASSWORD_LENGTH = 6
# bcrypt only hashes the first 72 bytes.
MAX_PASSWORD_BYTES = 72


@dataclass(frozen=True)
class Partition:
    """Where one principal variant lives and how its ids are minted."""

    kind: str
    directory: str
    id_prefix: str
    new_id: Callable[[], str]


PARTITIONS: dict[str, Partition] = {
    ADMIN: Partition(ADMIN, "admins", ids.ADMIN_PREFIX, ids.generate_admin_id),
    MANAGER: Partition(MANAGER, "managers", ids.MANAGER_PREFIX, ids.generate_manager_id),
    USER: Partition(USER, "users", ids.USER_PREFIX, ids.generate_user_id),
}

_KIND_BY_PREFIX: dict[str, str] = {p.id_prefix: p.kind for p in PARTITIONS.values()}


@dataclass(frozen=True)
class Ref:
    """Polymorphic reference to a principal."""

    kind: str
    id: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "id": self.id}

    @classmethod
    def from_dict(cls, d: dict | None) -> Ref | None:
        if d is None:
            return None
        return cls(kind=d["kind"], id=d["id"])

    @classmethod
    def parse(cls, raw: object, field: str) -> Ref:
        """Build a Ref from untrusted input, raising ``ValidationFailure``.

        Accepts ``{"kind": ..., "id": ...}`` or a bare principal id whose
        prefix determines the kind.
        """
        if isinstance(raw, str):
            kind = kind_for_id(raw)
            if kind is None:
                raise ValidationFailure(field, f"'{raw}' is not a principal id")
            return cls(kind=kind, id=raw)
        if not isinstance(raw, dict):
            raise ValidationFailure(field, f"'{field}' must be a principal reference")
        kind = raw.get("kind")
        ref_id = raw.get("id")
        if kind not in PARTITIONS:
            raise ValidationFailure(field, f"Unknown principal kind: '{kind}'")
        if not ids.validate_id(ref_id, PARTITIONS[kind].id_prefix):
            raise ValidationFailure(field, f"Invalid {kind} id: '{ref_id}'")
        return cls(kind=kind, id=ref_id)


def kind_for_id(principal_id: str) -> str | None:
    """Return the principal kind encoded in *principal_id*'s prefix."""
    kind = _KIND_BY_PREFIX.get(ids.id_prefix(principal_id) or "")
    if kind is None or not ids.validate_id(principal_id, PARTITIONS[kind].id_prefix):
        return None
    return kind


def ref_of(principal: dict) -> Ref:
    """Return the reference that points at *principal*."""
    return Ref(kind=principal["role"], id=principal["id"])


# ---------------------------------------------------------------------------
# Field normalization
# ---------------------------------------------------------------------------


def normalize_name(raw: object) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationFailure("name", "Name is required.")
    return raw.strip()


def normalize_email(raw: object) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationFailure("email", "Email is required.")
    email = raw.strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationFailure("email", f"Invalid email address: '{email}'")
    return email


def validate_password(raw: object) -> str:
    if not isinstance(raw, str) or not raw:
        raise ValidationFailure("password", "Password is required.")
    if len(raw) < MIN_PASSWORD_LENGTH:
        raise ValidationFailure(
            "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
        )
    if len(raw.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationFailure(
            "password", f"Password must be at most {MAX_PASSWORD_BYTES} bytes."
        )
    return raw


# ---------------------------------------------------------------------------
# Document construction
# ---------------------------------------------------------------------------


def new_principal(
    kind: str,
    *,
    name: str,
    email: str,
    password_hash: str,
    created_by: Ref | None,
    ts: str,
) -> dict:
    """Build a brand-new principal document of the given *kind*.

    ``role`` is written once here and never changed afterwards.
    """
    partition = PARTITIONS[kind]
    doc: dict = {
        "schema_version": 1,
        "id": partition.new_id(),
        "role": kind,
        "name": name,
        "email": email,
        "password_hash": password_hash,
        "created_at": ts,
        "updated_at": ts,
    }
    if kind == MANAGER:
        doc["assigned_user_ids"] = []
        doc["created_by"] = created_by.to_dict() if created_by else None
    elif kind == USER:
        doc["manager_id"] = None
        doc["created_by"] = created_by.to_dict() if created_by else None
    return doc


def public_view(principal: dict) -> dict:
    """Return *principal* without its credential hash."""
    view = {k: v for k, v in principal.items() if k != "password_hash"}
    view.pop("schema_version", None)
    return view


def summary_view(principal: dict) -> dict:
    """Return the short ``{id, name, email, role}`` form."""
    return {
        "id": principal["id"],
        "name": principal["name"],
        "email": principal["email"],
        "role": principal["role"],
    }
