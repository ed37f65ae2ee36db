"""Secret hasher backed by bcrypt."""

from __future__ import annotations

import bcrypt


def hash_password(plaintext: str, *, rounds: int = 12) -> str:
    return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def check_password(plaintext: str, digest: str) -> bool:
    """Return ``True`` if *plaintext* matches *digest*.  Malformed digests never match."""
    try:
        return bcrypt.checkpw(plaintext.encode("utf-8"), digest.encode("ascii"))
    except ValueError:
        return False
