"""Module: session_authority.

Owns the authenticated identity of one browser session. Routes never read
the session store directly: they receive a ``SessionAuthority`` through
dependency injection and ask it who the caller is and what they may do.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from medtrack.core import rbac
from medtrack.core.errors import (
    Forbidden,
    InvalidCredentials,
    NotFound,
    SessionExpired,
    Unauthorized,
    ValidationError,
)
from medtrack.core.rbac import Role
from medtrack.core.security import decode_claims, expires_at, is_expired, subject_user_id
from medtrack.services.backend_client import MedTrackClient
from medtrack.services.entities import AuthApi
from medtrack.services.session_store import (
    EMAIL_KEY,
    NAME_KEY,
    REQUIRED_KEYS,
    ROLE_KEY,
    TOKEN_KEY,
    USER_ID_KEY,
    SessionStore,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Authenticated principal. Immutable: a new login yields a new Identity."""

    token: str = field(repr=False)
    role: Role
    user_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[datetime] = None


class SessionAuthority:
    def __init__(
        self,
        store: SessionStore,
        backend: MedTrackClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.backend = backend
        self.clock = clock

    async def authenticate(self, email: str, password: str) -> Identity:
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError("Email and password are required")
        if self.backend is None:
            raise RuntimeError("SessionAuthority.authenticate needs a backend client")

        # Any previous identity is gone the moment a new login is attempted.
        self.store.clear()

        try:
            body = await AuthApi(self.backend).login(email, password)
        except (Unauthorized, Forbidden, NotFound, ValidationError) as exc:
            logger.info("Login rejected for %s: %s", email, exc.message)
            raise InvalidCredentials("Invalid email or password")

        if not isinstance(body, dict):
            raise InvalidCredentials("Unexpected login response")
        token = body.get("token") or body.get("access_token")
        if not token:
            raise InvalidCredentials("Login response carries no token")

        claims = decode_claims(token)
        user_id = subject_user_id(claims)
        if is_expired(claims, self.clock()):
            raise SessionExpired("Issued token is already expired")

        claim_role = rbac.parse_role(claims["role"]) if claims.get("role") else None
        body_role = rbac.parse_role(body["role"]) if body.get("role") else None
        if claim_role and body_role and claim_role != body_role:
            logger.warning("Login for %s returned role %s but token says %s", email, body_role, claim_role)
            raise Unauthorized("Login response role disagrees with the issued token")
        role = claim_role or body_role
        if role is None:
            raise ValidationError("Login response carries no usable role")

        identity = Identity(
            token=token,
            role=role,
            user_id=user_id,
            name=body.get("name"),
            email=body.get("email") or email,
            expires_at=expires_at(claims),
        )
        self.store.write(
            {
                TOKEN_KEY: identity.token,
                ROLE_KEY: identity.role.value,
                USER_ID_KEY: str(identity.user_id),
                NAME_KEY: identity.name,
                EMAIL_KEY: identity.email,
            }
        )
        logger.info("User %s logged in as %s", identity.user_id, identity.role.value)
        return identity

    def _restore(self) -> tuple[Optional[Identity], bool]:
        """Return (identity, expired). Any inconsistency clears the store."""
        values = self.store.read()
        if not values:
            return None, False
        if any(not values.get(k) for k in REQUIRED_KEYS):
            logger.warning("Discarding partial session %s", self.store.sid)
            self.store.clear()
            return None, False

        try:
            claims = decode_claims(values[TOKEN_KEY])
            user_id = subject_user_id(claims)
        except Unauthorized:
            self.store.clear()
            return None, False

        if is_expired(claims, self.clock()):
            logger.info("Session for user %s expired", user_id)
            self.store.clear()
            return None, True

        role = rbac.parse_role(values[ROLE_KEY])
        claim_role = rbac.parse_role(claims["role"]) if claims.get("role") else None
        if (
            role is None
            or str(user_id) != values[USER_ID_KEY]
            or (claim_role is not None and claim_role != role)
        ):
            logger.warning("Persisted session disagrees with its token, clearing it")
            self.store.clear()
            return None, False

        return (
            Identity(
                token=values[TOKEN_KEY],
                role=role,
                user_id=user_id,
                name=values.get(NAME_KEY),
                email=values.get(EMAIL_KEY),
                expires_at=expires_at(claims),
            ),
            False,
        )

    def restore_session(self) -> Optional[Identity]:
        identity, _ = self._restore()
        return identity

    def current(self) -> Identity:
        """Identity for this request; expiry is re-checked on every call."""
        identity, expired = self._restore()
        if identity is None:
            if expired:
                raise SessionExpired("Session expired, please log in again")
            raise Unauthorized("Not authenticated")
        return identity

    def token(self) -> str:
        return self.current().token

    def authorize(self, identity: Optional[Identity], resource: str, action: str) -> bool:
        return rbac.authorize(identity, resource, action)

    def require(self, identity: Optional[Identity], resource: str, action: str) -> None:
        if not rbac.authorize(identity, resource, action):
            logger.info(
                "Denied %s:%s for user %s (%s)",
                resource,
                action,
                getattr(identity, "user_id", None),
                getattr(getattr(identity, "role", None), "value", None),
            )
            raise Forbidden(f"Your role does not permit {action} on {resource}")

    def invalidate(self, identity: Optional[Identity] = None) -> None:
        self.store.clear()
        if identity is not None:
            logger.info("Session invalidated for user %s", identity.user_id)
        else:
            logger.info("Session %s invalidated", self.store.sid)
