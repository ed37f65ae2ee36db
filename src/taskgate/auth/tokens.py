"""Credential verifier: signed bearer tokens asserting ``{id, role}``."""

from __future__ import annotations

import time
from dataclasses import dataclass

import jwt

from taskgate.core.principals import ROLES

ALGORITHM = "HS256"


class InvalidToken(Exception):
    """The token is malformed, tampered with, or carries bad claims."""


class ExpiredToken(InvalidToken):
    """The token's signature is valid but it has expired."""


@dataclass(frozen=True)
class TokenClaims:
    principal_id: str
    role: str


def sign(principal_id: str, role: str, *, secret: str, ttl_seconds: int) -> str:
    now = int(time.time())
    payload = {"id": principal_id, "role": role, "iat": now, "exp": now + ttl_seconds}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify(token: str, *, secret: str) -> TokenClaims:
    """Check signature and expiry and return the asserted claims.

    Raises:
        ExpiredToken: If the token has expired.
        InvalidToken: For any other problem with the token.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise ExpiredToken("Token has expired") from None
    except jwt.InvalidTokenError as exc:
        raise InvalidToken(str(exc)) from None

    principal_id = payload.get("id")
    role = payload.get("role")
    if not isinstance(principal_id, str) or not principal_id:
        raise InvalidToken("Token is missing the principal id")
    if role not in ROLES:
        raise InvalidToken(f"Token carries an unknown role: '{role}'")
    return TokenClaims(principal_id=principal_id, role=role)
