"""ULID generation and validation."""

from __future__ import annotations

import re

from ulid import ULID

# Crockford Base32 alphabet: 0-9 A-Z excluding I, L, O, U
_CROCKFORD_B32_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$", re.IGNORECASE)

# Principal id prefixes.  The prefix alone identifies the principal variant.
ADMIN_PREFIX = "adm"
MANAGER_PREFIX = "mgr"
USER_PREFIX = "usr"
TASK_PREFIX = "task"
EVENT_PREFIX = "ev"


def generate_admin_id() -> str:
    """Generate a new Administrator ID with the adm_ prefix."""
    return f"{ADMIN_PREFIX}_{ULID()}"


def generate_manager_id() -> str:
    """Generate a new Manager ID with the mgr_ prefix."""
    return f"{MANAGER_PREFIX}_{ULID()}"


def generate_user_id() -> str:
    """Generate a new RegularUser ID with the usr_ prefix."""
    return f"{USER_PREFIX}_{ULID()}"


def generate_task_id() -> str:
    """Generate a new task ID with the task_ prefix."""
    return f"{TASK_PREFIX}_{ULID()}"


def generate_event_id() -> str:
    """Generate a new event ID with the ev_ prefix."""
    return f"{EVENT_PREFIX}_{ULID()}"


def id_prefix(id_str: str) -> str | None:
    """Return the prefix portion of ``<prefix>_<ulid>``, or ``None``."""
    if not isinstance(id_str, str) or "_" not in id_str:
        return None
    return id_str.split("_", maxsplit=1)[0]


def validate_id(id_str: str, expected_prefix: str) -> bool:
    """Validate a ``<prefix>_<ulid>`` identifier.

    The ULID portion must be exactly 26 characters of valid Crockford
    Base32 (0-9, A-Z excluding I, L, O, U -- case insensitive).
    """
    if not isinstance(id_str, str) or not isinstance(expected_prefix, str):
        return False

    parts = id_str.split("_", maxsplit=1)
    if len(parts) != 2:
        return False

    prefix, ulid_part = parts
    if prefix != expected_prefix:
        return False

    return bool(_CROCKFORD_B32_RE.match(ulid_part))
