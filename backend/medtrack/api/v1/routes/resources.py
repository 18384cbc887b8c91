"""Module: resources.

CRUD routes for the plain entities (doctors, products, users, samples,
orders, locations). They share one shape: authorize, forward to the
backend, return JSON plus the affordances the browser may render.
"""

from datetime import date
from typing import Any, Callable, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from medtrack.core.errors import ValidationError
from medtrack.core.rbac import affordances
from medtrack.services.backend_client import MedTrackClient
from medtrack.services.entities import (
    DoctorApi,
    LocationApi,
    OrderApi,
    ProductApi,
    ResourceApi,
    SampleApi,
    UserApi,
)
from medtrack.services.request_guard import RequestGuard
from medtrack.services.session_authority import Identity, SessionAuthority
from medtrack.api.v1.routes.deps import (
    get_backend,
    get_identity,
    get_request_guard,
    get_session_authority,
    require_capability,
    session_scope,
)


def _check_range(start_date: Optional[date], end_date: Optional[date]) -> bool:
    if start_date is None and end_date is None:
        return False
    if start_date is None or end_date is None:
        raise ValidationError("Both start date and end date are required for a date range")
    if start_date > end_date:
        raise ValidationError("Start date cannot be after end date")
    return True


# Query parameter -> (api method, value parser). Each maps onto one backend lookup.
LIST_FILTERS: dict[str, dict[str, tuple[str, Callable[[str], Any]]]] = {
    "doctor": {"specialty": ("by_specialty", str), "hospital": ("by_hospital", str)},
    "user": {"role": ("by_role", str.upper), "location_id": ("by_location", int)},
    "sample": {"doctor_id": ("by_doctor", int), "product_id": ("by_product", int)},
    "order": {
        "doctor_id": ("by_doctor", int),
        "visit_id": ("by_visit", int),
        "status": ("by_status", str.upper),
        "payment_status": ("by_payment_status", str.upper),
    },
    "location": {"city": ("by_city", str)},
}


def _select_filter(resource: str, request: Request) -> Optional[tuple[str, Any]]:
    chosen = []
    for param, (method, cast) in LIST_FILTERS.get(resource, {}).items():
        raw = (request.query_params.get(param) or "").strip()
        if not raw:
            continue
        try:
            chosen.append((method, cast(raw)))
        except ValueError:
            raise ValidationError(f"Invalid {param}")
    if len(chosen) > 1:
        raise ValidationError("Filter by one field at a time")
    return chosen[0] if chosen else None


def build_resource_router(resource: str, api_cls: type[ResourceApi]) -> APIRouter:
    router = APIRouter()
    filter_names = ", ".join(LIST_FILTERS.get(resource, {})) or "none"

    @router.get(
        "",
        summary=f"List {resource}s",
        description=f"Optional single-field filters: {filter_names}.",
    )
    async def list_items(
        request: Request,
        q: Optional[str] = Query(default=None, description="Free-text search"),
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        identity: Identity = Depends(require_capability(resource, "list")),
        backend: MedTrackClient = Depends(get_backend),
        guard: RequestGuard = Depends(get_request_guard),
    ):
        api = api_cls(backend)
        query = (q or "").strip()
        if query and not hasattr(api, "search"):
            raise ValidationError(f"Search is not supported for {resource}s")
        in_range = _check_range(start_date, end_date)
        if in_range and not hasattr(api, "by_date_range"):
            raise ValidationError(f"Date ranges are not supported for {resource}s")
        selected = _select_filter(resource, request)
        if sum(map(bool, (query, in_range, selected))) > 1:
            raise ValidationError("Use either search, a date range or one filter")

        if query:
            pending = api.search(query)
        elif in_range:
            pending = api.by_date_range(start_date, end_date)
        elif selected:
            method, value = selected
            pending = getattr(api, method)(value)
        else:
            pending = api.list()
        items = await guard.run(session_scope(request, resource), pending)
        return {"items": items, "affordances": affordances(identity, resource)}

    # Numeric ids only, so fixed paths added to the router later (e.g. /recent) still match.
    @router.get("/{item_id:int}", summary=f"Get one {resource}")
    async def get_item(
        item_id: int,
        identity: Identity = Depends(require_capability(resource, "read")),
        backend: MedTrackClient = Depends(get_backend),
    ):
        item = await api_cls(backend).get(item_id)
        return {"item": item, "affordances": affordances(identity, resource)}

    @router.post("", summary=f"Create a {resource}", status_code=201)
    async def create_item(
        payload: dict[str, Any] = Body(...),
        identity: Identity = Depends(require_capability(resource, "create")),
        backend: MedTrackClient = Depends(get_backend),
    ):
        return await api_cls(backend).create(payload)

    @router.put("/{item_id:int}", summary=f"Update a {resource}")
    async def update_item(
        item_id: int,
        payload: dict[str, Any] = Body(...),
        identity: Identity = Depends(require_capability(resource, "update")),
        backend: MedTrackClient = Depends(get_backend),
    ):
        return await api_cls(backend).update(item_id, payload)

    @router.delete("/{item_id:int}", summary=f"Delete a {resource}")
    async def delete_item(
        item_id: int,
        identity: Identity = Depends(require_capability(resource, "delete")),
        backend: MedTrackClient = Depends(get_backend),
    ):
        await api_cls(backend).delete(item_id)
        return {"deleted": True, "id": item_id}

    return router


doctors_router = build_resource_router("doctor", DoctorApi)
products_router = build_resource_router("product", ProductApi)
samples_router = build_resource_router("sample", SampleApi)
orders_router = build_resource_router("order", OrderApi)
users_router = build_resource_router("user", UserApi)
locations_router = build_resource_router("location", LocationApi)


@samples_router.get("/visit/{visit_id}", summary="Samples handed out during a visit")
async def samples_for_visit(
    visit_id: int,
    identity: Identity = Depends(require_capability("sample", "list")),
    backend: MedTrackClient = Depends(get_backend),
):
    return {"items": await SampleApi(backend).by_visit(visit_id)}


@orders_router.get("/reports/total-revenue", summary="Total revenue")
async def orders_total_revenue(
    identity: Identity = Depends(require_capability("order", "reports")),
    backend: MedTrackClient = Depends(get_backend),
):
    return {"total_revenue": await OrderApi(backend).total_revenue()}


@users_router.put("/{user_id}/activate", summary="Activate a user")
async def activate_user(
    user_id: int,
    identity: Identity = Depends(require_capability("user", "activate")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await UserApi(backend).activate(user_id)


@users_router.put("/{user_id}/deactivate", summary="Deactivate a user")
async def deactivate_user(
    user_id: int,
    identity: Identity = Depends(require_capability("user", "activate")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await UserApi(backend).deactivate(user_id)


# Reps read their own assigned locations (visit start form); others need user:read.
@users_router.get("/{user_id}/locations", summary="Locations assigned to a user")
async def user_locations(
    user_id: int,
    identity: Identity = Depends(get_identity),
    authority: SessionAuthority = Depends(get_session_authority),
    backend: MedTrackClient = Depends(get_backend),
):
    if user_id == identity.user_id:
        authority.require(identity, "location", "list")
    else:
        authority.require(identity, "user", "read")
    return {"items": await UserApi(backend).locations(user_id)}


@users_router.put("/{user_id}/locations", summary="Replace a user's locations")
async def set_user_locations(
    user_id: int,
    location_ids: list[int] = Body(...),
    identity: Identity = Depends(require_capability("user", "assign_locations")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await UserApi(backend).set_locations(user_id, location_ids)


@locations_router.post("/bulk", summary="Create many locations", status_code=201)
async def bulk_create_locations(
    locations: list[dict[str, Any]] = Body(..., embed=True),
    identity: Identity = Depends(require_capability("location", "bulk_create")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await LocationApi(backend).bulk_create(locations)


@locations_router.put("/{location_id}/activate", summary="Activate a location")
async def activate_location(
    location_id: int,
    identity: Identity = Depends(require_capability("location", "activate")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await LocationApi(backend).activate(location_id)


@locations_router.put("/{location_id}/deactivate", summary="Deactivate a location")
async def deactivate_location(
    location_id: int,
    identity: Identity = Depends(require_capability("location", "activate")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await LocationApi(backend).deactivate(location_id)


@samples_router.get("/reports/product/{product_id}/total-quantity", summary="Samples issued for a product")
async def samples_total_for_product(
    product_id: int,
    identity: Identity = Depends(require_capability("sample", "reports")),
    backend: MedTrackClient = Depends(get_backend),
):
    return {"product_id": product_id, "total_quantity": await SampleApi(backend).total_quantity_for_product(product_id)}


@samples_router.get("/reports/doctor/{doctor_id}/total-quantity", summary="Samples issued to a doctor")
async def samples_total_for_doctor(
    doctor_id: int,
    identity: Identity = Depends(require_capability("sample", "reports")),
    backend: MedTrackClient = Depends(get_backend),
):
    return {"doctor_id": doctor_id, "total_quantity": await SampleApi(backend).total_quantity_for_doctor(doctor_id)}


@orders_router.get("/recent", summary="Most recent orders")
async def recent_orders(
    limit: int = Query(default=10, ge=1, le=100),
    identity: Identity = Depends(require_capability("order", "list")),
    backend: MedTrackClient = Depends(get_backend),
):
    return {"items": await OrderApi(backend).recent(limit)}


@orders_router.get("/reports/doctor/{doctor_id}/total-revenue", summary="Revenue for one doctor")
async def orders_revenue_for_doctor(
    doctor_id: int,
    identity: Identity = Depends(require_capability("order", "reports")),
    backend: MedTrackClient = Depends(get_backend),
):
    return {"doctor_id": doctor_id, "total_revenue": await OrderApi(backend).total_revenue_for_doctor(doctor_id)}


@users_router.post("/{user_id}/locations/{location_id}", summary="Assign one location to a user")
async def add_user_location(
    user_id: int,
    location_id: int,
    identity: Identity = Depends(require_capability("user", "assign_locations")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await UserApi(backend).add_location(user_id, location_id)


@users_router.delete("/{user_id}/locations/{location_id}", summary="Unassign one location from a user")
async def remove_user_location(
    user_id: int,
    location_id: int,
    identity: Identity = Depends(require_capability("user", "assign_locations")),
    backend: MedTrackClient = Depends(get_backend),
):
    return await UserApi(backend).remove_location(user_id, location_id)
