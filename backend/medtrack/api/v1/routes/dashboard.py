"""Module: dashboard."""

from fastapi import APIRouter, Depends

from medtrack.core.rbac import ENTITY_RESOURCES, affordances
from medtrack.services.backend_client import MedTrackClient
from medtrack.services.entities import DashboardApi
from medtrack.services.session_authority import Identity, SessionAuthority
from medtrack.services.visit_lifecycle import VisitLifecycleManager
from medtrack.api.v1.routes.deps import (
    get_backend,
    get_lifecycle,
    get_session_authority,
    require_capability,
)

router = APIRouter()


# Endpoint: landing page data; navigation is rendered from the capability map.
@router.get("", summary="Dashboard for the signed-in user")
async def dashboard(
    identity: Identity = Depends(require_capability("dashboard", "read")),
    authority: SessionAuthority = Depends(get_session_authority),
    lifecycle: VisitLifecycleManager = Depends(get_lifecycle),
):
    active = None
    if authority.authorize(identity, "visit", "start"):
        active = await lifecycle.get_active_visit(identity.user_id)
    return {
        "user": {"user_id": identity.user_id, "name": identity.name, "role": identity.role},
        "active_visit": active,
        "navigation": {
            resource: affordances(identity, resource)
            for resource in (*ENTITY_RESOURCES, "dashboard")
        },
    }


@router.get("/stats", summary="Admin statistics")
async def admin_stats(
    identity: Identity = Depends(require_capability("dashboard", "admin")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await DashboardApi(backend).admin_stats()
