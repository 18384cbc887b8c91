"""Module: security.

Client-side view of the backend's bearer token. Claims are decoded without
verifying the signature: the backend is the verifier, the web tier only
needs ``sub`` (user id) and ``exp`` (expiry, seconds since epoch) to decide
whether a held token is still worth sending.
"""

import time
from datetime import UTC, datetime
from typing import Any

from jose import jwt
from jose.exceptions import JOSEError

from medtrack.core.errors import Unauthorized


def decode_claims(token: str) -> dict[str, Any]:
    """Return the token payload or raise ``Unauthorized`` if it is not a JWT."""
    if not token or token.count(".") != 2:
        raise Unauthorized("Malformed session token")
    try:
        claims = jwt.get_unverified_claims(token)
    except JOSEError:
        raise Unauthorized("Malformed session token")
    if not isinstance(claims, dict):
        raise Unauthorized("Malformed session token")
    return claims


def subject_user_id(claims: dict[str, Any]) -> int:
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthorized("Session token has no usable subject")


def expires_at(claims: dict[str, Any]) -> datetime | None:
    exp = claims.get("exp")
    if exp is None:
        return None
    try:
        return datetime.fromtimestamp(int(exp), tz=UTC)
    except (TypeError, ValueError, OverflowError):
        return None


def is_expired(claims: dict[str, Any], now: float | None = None) -> bool:
    """A token without a readable ``exp`` counts as expired."""
    expiry = expires_at(claims)
    if expiry is None:
        return True
    current = time.time() if now is None else now
    return expiry.timestamp() <= current
