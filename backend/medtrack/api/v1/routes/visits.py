"""Module: visits."""

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from medtrack.core.rbac import affordances
from medtrack.schemas.visit import CancelVisitPayload, EndVisitPayload, StartVisitPayload, Visit
from medtrack.services.request_guard import RequestGuard
from medtrack.services.session_authority import Identity, SessionAuthority
from medtrack.services.visit_lifecycle import VisitLifecycleManager
from medtrack.api.v1.routes.deps import (
    get_identity,
    get_lifecycle,
    get_request_guard,
    get_session_authority,
    session_scope,
)

router = APIRouter()


def _visit_view(visit: Visit, identity: Identity, authority: SessionAuthority) -> dict[str, Any]:
    """Visit plus the actions the browser may offer on it."""
    owns = visit.user_id == identity.user_id or authority.authorize(identity, "visit", "manage_any")
    actions = affordances(identity, "visit")
    actions["end"] = actions["end"] and visit.is_active and owns
    actions["cancel"] = actions["cancel"] and visit.is_active
    return {"visit": visit, "actions": actions}


# Endpoint: handles HTTP request/response mapping for this route.
@router.get("", summary="List visits")
async def list_visits(
    request: Request,
    user_id: Optional[int] = Query(default=None),
    doctor_id: Optional[int] = Query(default=None),
    location_id: Optional[int] = Query(default=None),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    identity: Identity = Depends(get_identity),
    lifecycle: VisitLifecycleManager = Depends(get_lifecycle),
    guard: RequestGuard = Depends(get_request_guard),
):
    visits = await guard.run(
        session_scope(request, "visits"),
        lifecycle.list_visits(identity, user_id, doctor_id, location_id, start_date, end_date),
    )
    return {"items": visits, "affordances": affordances(identity, "visit")}


# Endpoint: the "Start Visit" affordance is gated on this.
@router.get("/active", summary="Active visit for a user")
async def active_visit(
    user_id: Optional[int] = Query(default=None),
    identity: Identity = Depends(get_identity),
    authority: SessionAuthority = Depends(get_session_authority),
    lifecycle: VisitLifecycleManager = Depends(get_lifecycle),
):
    authority.require(identity, "visit", "read")
    target = user_id or identity.user_id
    visit = await lifecycle.get_active_visit(target)
    can_start = (
        visit is None
        and authority.authorize(identity, "visit", "start")
        and (target == identity.user_id or authority.authorize(identity, "visit", "manage_any"))
    )
    return {"visit": visit, "can_start": can_start}


@router.get("/{visit_id}", summary="Visit detail")
async def get_visit(
    visit_id: int,
    identity: Identity = Depends(get_identity),
    authority: SessionAuthority = Depends(get_session_authority),
    lifecycle: VisitLifecycleManager = Depends(get_lifecycle),
):
    visit = await lifecycle.get_visit(identity, visit_id)
    return _visit_view(visit, identity, authority)


@router.post("/start", summary="Start a visit", status_code=201, response_model=Visit)
async def start_visit(
    payload: StartVisitPayload,
    identity: Identity = Depends(get_identity),
    lifecycle: VisitLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.start_visit(
        identity,
        payload.user_id or identity.user_id,
        payload.doctor_id,
        payload.location_id,
        payload.notes,
    )


@router.put("/{visit_id}/end", summary="End a visit", response_model=Visit)
async def end_visit(
    visit_id: int,
    payload: EndVisitPayload,
    identity: Identity = Depends(get_identity),
    lifecycle: VisitLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.end_visit(identity, visit_id, payload.notes)


@router.post("/{visit_id}/cancel", summary="Cancel an active visit", response_model=Visit)
async def cancel_visit(
    visit_id: int,
    payload: CancelVisitPayload,
    identity: Identity = Depends(get_identity),
    lifecycle: VisitLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.cancel_visit(identity, visit_id, payload.reason)


@router.patch("/{visit_id}", summary="Correct visit metadata", response_model=Visit)
async def edit_visit(
    visit_id: int,
    fields: dict[str, Any] = Body(...),
    identity: Identity = Depends(get_identity),
    lifecycle: VisitLifecycleManager = Depends(get_lifecycle),
):
    return await lifecycle.edit_visit(identity, visit_id, fields)


@router.delete("/{visit_id}", summary="Delete a visit")
async def delete_visit(
    visit_id: int,
    identity: Identity = Depends(get_identity),
    lifecycle: VisitLifecycleManager = Depends(get_lifecycle),
):
    await lifecycle.delete_visit(identity, visit_id)
    return {"deleted": True, "visit_id": visit_id}
