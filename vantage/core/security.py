"""
Security utilities.

Identity-provider token verification and invite token helpers. Passwords and
sessions belong to the identity provider; this service only verifies the
bearer tokens it issues.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from jose import JWTError, jwt

from vantage.core.config import settings


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Principal:
    """An already-authenticated caller as asserted by the identity provider."""

    sub: str
    email: str
    display_name: str


def decode_identity_token(token: str) -> Principal:
    """
    Verify an identity-provider JWT and extract the principal.

    Raises:
        JWTError: If the token is invalid, expired, or lacks sub/email.
    """
    options: dict[str, Any] = {"verify_aud": settings.IDP_JWT_AUDIENCE is not None}
    payload = jwt.decode(
        token,
        settings.IDP_JWT_SECRET,
        algorithms=[settings.IDP_JWT_ALGORITHM],
        audience=settings.IDP_JWT_AUDIENCE,
        issuer=settings.IDP_JWT_ISSUER,
        options=options,
    )
    sub = payload.get("sub")
    email = payload.get("email")
    if not sub or not email:
        raise JWTError("Token is missing sub or email claims")
    name = payload.get("name") or email.split("@")[0]
    return Principal(sub=sub, email=email.lower(), display_name=name)


# ---------------------------------------------------------------------------
# Invite tokens
# ---------------------------------------------------------------------------

def generate_invite_token() -> str:
    """256 bits from the OS CSPRNG, URL-safe."""
    return secrets.token_urlsafe(32)


def tokens_match(stored: str, presented: str) -> bool:
    return secrets.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))


def build_invite_link(token: str) -> str:
    """Redemption link embedded in invitation emails."""
    return f"{settings.FRONTEND_URL}/invitations/accept?{urlencode({'token': token})}"


def build_heartbeat_link(node_type: str, node_id: str) -> str:
    """Deep link to the heartbeat entry page of one tree node."""
    return f"{settings.FRONTEND_URL}/heartbeats/{node_type}/{node_id}"
