"""Module: auth."""

from datetime import timedelta
from secrets import token_urlsafe

from fastapi import APIRouter, Depends, Response

from medtrack.core.config import settings
from medtrack.core.rbac import ENTITY_RESOURCES, ROLE_DESCRIPTIONS, affordances
from medtrack.schemas.auth import IdentityPayload, LoginRequest, RegisterRequest
from medtrack.services.backend_client import MedTrackClient
from medtrack.services.entities import AuthApi
from medtrack.services.session_authority import Identity, SessionAuthority
from medtrack.services.session_store import purge_stale_sessions
from medtrack.api.v1.routes.deps import (
    get_backend,
    get_identity,
    get_session_authority,
    require_capability,
)

router = APIRouter()


def _as_identity_payload(identity: Identity) -> IdentityPayload:
    return IdentityPayload(
        user_id=identity.user_id,
        role=identity.role,
        role_description=ROLE_DESCRIPTIONS.get(identity.role),
        name=identity.name,
        email=identity.email,
        expires_at=identity.expires_at.isoformat() if identity.expires_at else None,
        capabilities={
            resource: affordances(identity, resource)
            for resource in (*ENTITY_RESOURCES, "dashboard")
        },
    )


def _set_session_cookie(response: Response, sid: str) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        sid,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


@router.post("/login", response_model=IdentityPayload)
async def login(
    payload: LoginRequest,
    response: Response,
    authority: SessionAuthority = Depends(get_session_authority),
    backend: MedTrackClient = Depends(get_backend),
):
    # Fresh session id on every login; the old one (if any) is emptied.
    if authority.store.sid:
        authority.invalidate()
    authority.store.sid = token_urlsafe(32)

    identity = await authority.authenticate(payload.email, payload.password)
    _set_session_cookie(response, authority.store.sid)
    purge_stale_sessions(authority.store.db, timedelta(hours=settings.session_max_age_hours))
    return _as_identity_payload(identity)


@router.post("/logout")
def logout(response: Response, authority: SessionAuthority = Depends(get_session_authority)):
    authority.invalidate(authority.restore_session())
    response.delete_cookie(settings.session_cookie_name)
    return {"status": "logged_out", "redirect": settings.login_path}


@router.get("/me", response_model=IdentityPayload)
def me(identity: Identity = Depends(get_identity)):
    return _as_identity_payload(identity)


@router.post("/register", status_code=201)
async def register(
    payload: RegisterRequest,
    identity: Identity = Depends(require_capability("user", "register")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await AuthApi(backend).register(payload.model_dump(mode="json"))
