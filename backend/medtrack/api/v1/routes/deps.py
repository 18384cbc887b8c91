"""Module: deps.

Request-scoped wiring. Every route gets its session authority, backend
client and identity from here; nothing else reads the session store.
"""

from typing import AsyncGenerator, Generator

import httpx
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from medtrack.core.config import settings
from medtrack.db.session import SessionLocal
from medtrack.services.backend_client import MedTrackClient
from medtrack.services.request_guard import RequestGuard
from medtrack.services.session_authority import Identity, SessionAuthority
from medtrack.services.session_store import SessionStore
from medtrack.services.visit_lifecycle import VisitLifecycleManager


# Dependency provider: one DB session per request lifecycle.
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Overridden in tests to route backend calls to the in-process mock.
def get_backend_transport() -> httpx.AsyncBaseTransport | None:
    return None


def get_request_guard(request: Request) -> RequestGuard:
    return request.app.state.request_guard


def get_session_authority(request: Request, db: Session = Depends(get_db)) -> SessionAuthority:
    sid = request.cookies.get(settings.session_cookie_name)
    authority = SessionAuthority(SessionStore(db, sid))
    # Exception handlers use this to invalidate the session on a 401.
    request.state.session_authority = authority
    return authority


async def get_backend(
    authority: SessionAuthority = Depends(get_session_authority),
    transport: httpx.AsyncBaseTransport | None = Depends(get_backend_transport),
) -> AsyncGenerator[MedTrackClient, None]:
    async with MedTrackClient(
        settings.medtrack_api_base_url,
        token_provider=authority.token,
        timeout=settings.backend_timeout_seconds,
        transport=transport,
    ) as client:
        authority.backend = client
        yield client


def get_identity(authority: SessionAuthority = Depends(get_session_authority)) -> Identity:
    return authority.current()


def require_capability(resource: str, action: str):
    """Route gate: resolves the identity and asks the role matrix once."""

    def dependency(
        identity: Identity = Depends(get_identity),
        authority: SessionAuthority = Depends(get_session_authority),
    ) -> Identity:
        authority.require(identity, resource, action)
        return identity

    return dependency


def get_lifecycle(
    backend: MedTrackClient = Depends(get_backend),
    authority: SessionAuthority = Depends(get_session_authority),
) -> VisitLifecycleManager:
    return VisitLifecycleManager(backend, authority)


def session_scope(request: Request, view: str) -> tuple[str, str]:
    return (request.cookies.get(settings.session_cookie_name) or "anonymous", view)
