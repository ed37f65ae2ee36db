"""Identity resolver: bearer credential -> typed principal."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from taskgate.auth.tokens import ExpiredToken, InvalidToken, verify
from taskgate.core.errors import Unauthenticated
from taskgate.core.principals import Ref, public_view
from taskgate.storage.principals import read_principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPrincipal:
    """The caller of one request.  ``principal`` never holds the credential hash."""

    ref: Ref
    principal: dict

    @property
    def role(self) -> str:
        return self.ref.kind


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_token(store_dir: Path, config: dict, token: str | None) -> ResolvedPrincipal:
    """Verify *token* and load the principal it names.

    Raises:
        Unauthenticated: If the token is missing, invalid, expired, or names
            a principal that no longer exists in its role's partition.
    """
    if not token:
        raise Unauthenticated("Not authorized to access this route")
    try:
        claims = verify(token, secret=config["auth"]["token_secret"])
    except ExpiredToken:
        raise Unauthenticated("Token has expired") from None
    except InvalidToken as exc:
        logger.debug("Rejected token: %s", exc)
        raise Unauthenticated("Not authorized, token failed") from None

    # Roles are immutable, so a missing record means the token is stale or forged.
    principal = read_principal(store_dir, claims.role, claims.principal_id)
    if principal is None:
        raise Unauthenticated("Not authorized, token failed")
    return ResolvedPrincipal(
        ref=Ref(kind=claims.role, id=claims.principal_id),
        principal=public_view(principal),
    )


def resolve_credential(
    store_dir: Path, config: dict, authorization: str | None
) -> ResolvedPrincipal:
    return resolve_token(store_dir, config, bearer_token(authorization))
