"""Mock MedTrack REST backend for local development and tests.

In-memory stand-in for the real backend: same paths, camelCase JSON, JWT
bearer auth and role rules. Starting a visit checks and inserts inside one
uninterrupted step of the event loop, which is what makes the single active
visit per user hold under concurrent starts.
"""

import itertools
import time
from datetime import UTC, date, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from jose import ExpiredSignatureError, JWTError, jwt

SECRET_KEY = "mock-medtrack-secret-key-change-me"
ALGORITHM = "HS256"
TOKEN_TTL_SECONDS = 2 * 60 * 60

ALL_ROLES = ("ADMIN", "MANAGER", "REP")


def issue_token(user_id: int, role: str, ttl_seconds: int = TOKEN_TTL_SECONDS, now: float | None = None) -> str:
    issued = int(time.time() if now is None else now)
    payload = {"sub": str(user_id), "role": role, "iat": issued, "exp": issued + ttl_seconds}
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


class MockState:
    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.token_ttl_seconds = TOKEN_TTL_SECONDS
        self.users: dict[int, dict] = {
            1: {"id": 1, "name": "Ada Admin", "email": "admin@medtrack.test", "password": "admin123",
                "role": "ADMIN", "isActive": True, "locationIds": [1, 2]},
            2: {"id": 2, "name": "Maya Manager", "email": "manager@medtrack.test", "password": "manager123",
                "role": "MANAGER", "isActive": True, "locationIds": [1]},
            7: {"id": 7, "name": "Ravi Rep", "email": "rep@medtrack.test", "password": "rep123",
                "role": "REP", "isActive": True, "locationIds": [1, 2]},
            8: {"id": 8, "name": "Rosa Rep", "email": "rep2@medtrack.test", "password": "rep123",
                "role": "REP", "isActive": True, "locationIds": [2]},
        }
        self.doctors: dict[int, dict] = {
            3: {"id": 3, "name": "Dr. Kim Hale", "specialty": "Cardiology", "hospital": "St. Mary"},
            5: {"id": 5, "name": "Dr. Omar Lutz", "specialty": "Dermatology", "hospital": "City General"},
        }
        self.products: dict[int, dict] = {
            11: {"id": 11, "name": "Cardiozen 10mg", "category": "Cardiology", "price": 24.5},
            12: {"id": 12, "name": "Dermalux Cream", "category": "Dermatology", "price": 12.0},
        }
        self.locations: dict[int, dict] = {
            1: {"id": 1, "name": "North Clinic", "city": "Springfield", "isActive": True},
            2: {"id": 2, "name": "Harbor Hospital", "city": "Shelbyville", "isActive": True},
        }
        self.visits: dict[int, dict] = {}
        self.samples: dict[int, dict] = {}
        self.orders: dict[int, dict] = {}
        self._ids = itertools.count(101)
        self._entity_ids = itertools.count(1000)

    def next_visit_id(self) -> int:
        return next(self._ids)

    def next_entity_id(self) -> int:
        return next(self._entity_ids)


state = MockState()

app = FastAPI(title="Mock MedTrack Backend", version="0.1.0")


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


def principal(authorization: str | None = Header(default=None)) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        claims = jwt.decode(authorization[7:], SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = state.users.get(int(claims["sub"]))
    if not user or not user["isActive"]:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def roles(*allowed: str):
    def dependency(user: dict = Depends(principal)) -> dict:
        if user["role"] not in allowed:
            raise HTTPException(status_code=403, detail="Access forbidden")
        return user

    return dependency


def _public_user(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != "password"}


def _visit_dto(visit: dict) -> dict:
    user = state.users.get(visit["userId"], {})
    doctor = state.doctors.get(visit["doctorId"], {})
    location = state.locations.get(visit["locationId"], {}) if visit.get("locationId") else {}
    return {
        **visit,
        "userName": user.get("name"),
        "doctorName": doctor.get("name"),
        "locationName": location.get("name"),
    }


def _get_or_404(table: dict[int, dict], item_id: int, label: str) -> dict:
    item = table.get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"{label} not found with id: {item_id}")
    return item


def _in_range(value: Any, start: date, end: date) -> bool:
    if value is None:
        return False
    day = value if isinstance(value, date) else date.fromisoformat(str(value)[:10])
    if isinstance(day, datetime):
        day = day.date()
    return start <= day <= end


def _check_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="Start date cannot be after end date")


@app.get("/ping")
def ping():
    return {"status": "ok", "service": "mock-medtrack", "time": datetime.now(UTC).isoformat()}


api = APIRouter()


# ---- auth ----------------------------------------------------------------

@api.post("/auth/login")
def login(payload: dict = Body(...)):
    email = str(payload.get("email", "")).strip().lower()
    user = next((u for u in state.users.values() if u["email"] == email), None)
    if not user or user["password"] != payload.get("password"):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user["isActive"]:
        raise HTTPException(status_code=401, detail="Account is deactivated")
    token = issue_token(user["id"], user["role"], ttl_seconds=state.token_ttl_seconds)
    return {"token": token, "role": user["role"], "name": user["name"], "email": user["email"]}


@api.post("/auth/register", status_code=201)
def register(payload: dict = Body(...), user: dict = Depends(roles("ADMIN"))):
    email = str(payload.get("email", "")).strip().lower()
    if any(u["email"] == email for u in state.users.values()):
        raise HTTPException(status_code=409, detail="Email already registered")
    new_id = state.next_entity_id()
    state.users[new_id] = {
        "id": new_id,
        "name": payload.get("name"),
        "email": email,
        "password": payload.get("password"),
        "role": str(payload.get("role") or "REP").upper(),
        "isActive": True,
        "locationIds": [],
    }
    return _public_user(state.users[new_id])


# ---- visits --------------------------------------------------------------
# Fixed paths are registered before "/visits/{visit_id}".

@api.get("/visits")
def list_visits(user: dict = Depends(principal)):
    return [_visit_dto(v) for v in state.visits.values()]


@api.get("/visits/date-range")
def visits_by_date_range(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    user: dict = Depends(principal),
):
    _check_range(start_date, end_date)
    return [_visit_dto(v) for v in state.visits.values() if _in_range(v["visitDate"], start_date, end_date)]


@api.get("/visits/user/{user_id}/active")
def active_visits(user_id: int, user: dict = Depends(principal)):
    _get_or_404(state.users, user_id, "User")
    return [
        _visit_dto(v)
        for v in state.visits.values()
        if v["userId"] == user_id and v["status"] == "IN_PROGRESS"
    ]


@api.get("/visits/user/{user_id}/date-range")
def visits_by_user_and_range(
    user_id: int,
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    user: dict = Depends(principal),
):
    _get_or_404(state.users, user_id, "User")
    _check_range(start_date, end_date)
    return [
        _visit_dto(v)
        for v in state.visits.values()
        if v["userId"] == user_id and _in_range(v["visitDate"], start_date, end_date)
    ]


@api.get("/visits/user/{user_id}")
def visits_by_user(user_id: int, user: dict = Depends(principal)):
    _get_or_404(state.users, user_id, "User")
    return [_visit_dto(v) for v in state.visits.values() if v["userId"] == user_id]


@api.get("/visits/doctor/{doctor_id}")
def visits_by_doctor(doctor_id: int, user: dict = Depends(principal)):
    _get_or_404(state.doctors, doctor_id, "Doctor")
    return [_visit_dto(v) for v in state.visits.values() if v["doctorId"] == doctor_id]


@api.get("/visits/location/{location_id}")
def visits_by_location(location_id: int, user: dict = Depends(principal)):
    _get_or_404(state.locations, location_id, "Location")
    return [_visit_dto(v) for v in state.visits.values() if v.get("locationId") == location_id]


@api.post("/visits/start", status_code=201)
async def start_visit(payload: dict = Body(...), user: dict = Depends(roles("ADMIN", "REP"))):
    user_id = int(payload.get("userId") or user["id"])
    owner = _get_or_404(state.users, user_id, "User")
    _get_or_404(state.doctors, int(payload["doctorId"]), "Doctor")
    location_id = payload.get("locationId")
    if location_id is not None:
        _get_or_404(state.locations, int(location_id), "Location")
        if int(location_id) not in owner["locationIds"]:
            raise HTTPException(
                status_code=400,
                detail=f"User does not have access to location with id: {location_id}",
            )

    # No await between the check and the insert.
    active = next(
        (v for v in state.visits.values() if v["userId"] == user_id and v["status"] == "IN_PROGRESS"),
        None,
    )
    if active is not None:
        return JSONResponse(
            status_code=409,
            content={"detail": "User already has an active visit", "visit_id": active["id"]},
        )

    now = _now()
    visit = {
        "id": state.next_visit_id(),
        "userId": user_id,
        "doctorId": int(payload["doctorId"]),
        "locationId": int(location_id) if location_id is not None else None,
        "visitDate": now.date().isoformat(),
        "checkInTime": now.isoformat(),
        "checkOutTime": None,
        "status": "IN_PROGRESS",
        "notes": payload.get("notes"),
        "createdAt": now.isoformat(),
        "updatedAt": now.isoformat(),
    }
    state.visits[visit["id"]] = visit
    return _visit_dto(visit)


# Body notes are appended to the stored notes on a new line.
@api.put("/visits/{visit_id}/end")
def end_visit(visit_id: int, payload: dict = Body(default={}), user: dict = Depends(roles("ADMIN", "REP"))):
    visit = _get_or_404(state.visits, visit_id, "Visit")
    if visit["status"] != "IN_PROGRESS":
        raise HTTPException(status_code=400, detail=f"Visit is not in progress. Current status: {visit['status']}")
    now = _now()
    visit["status"] = "COMPLETED"
    visit["checkOutTime"] = max(now, datetime.fromisoformat(visit["checkInTime"])).isoformat()
    notes = payload.get("notes")
    if notes:
        visit["notes"] = f"{visit['notes']}\n{notes}" if visit.get("notes") else notes
    visit["updatedAt"] = now.isoformat()
    return _visit_dto(visit)


@api.get("/visits/{visit_id}")
def get_visit(visit_id: int, user: dict = Depends(principal)):
    return _visit_dto(_get_or_404(state.visits, visit_id, "Visit"))


@api.post("/visits", status_code=201)
def create_visit(payload: dict = Body(...), user: dict = Depends(roles("ADMIN", "REP"))):
    _get_or_404(state.doctors, int(payload["doctorId"]), "Doctor")
    visit_id = state.next_visit_id()
    now = _now()
    state.visits[visit_id] = {
        "id": visit_id,
        "userId": int(payload.get("userId") or user["id"]),
        "doctorId": int(payload["doctorId"]),
        "locationId": payload.get("locationId"),
        "visitDate": payload.get("visitDate") or now.date().isoformat(),
        "checkInTime": payload.get("checkInTime"),
        "checkOutTime": payload.get("checkOutTime"),
        "status": payload.get("status") or "COMPLETED",
        "notes": payload.get("notes"),
        "createdAt": now.isoformat(),
        "updatedAt": now.isoformat(),
    }
    return _visit_dto(state.visits[visit_id])


@api.put("/visits/{visit_id}")
def update_visit(visit_id: int, payload: dict = Body(...), user: dict = Depends(roles("ADMIN", "MANAGER"))):
    visit = _get_or_404(state.visits, visit_id, "Visit")
    if payload.get("status") == "IN_PROGRESS" and visit["status"] != "IN_PROGRESS":
        other = next(
            (
                v for v in state.visits.values()
                if v["userId"] == visit["userId"] and v["status"] == "IN_PROGRESS" and v["id"] != visit_id
            ),
            None,
        )
        if other is not None:
            return JSONResponse(
                status_code=409,
                content={"detail": "User already has an active visit", "visit_id": other["id"]},
            )
    for key in ("notes", "status", "checkInTime", "checkOutTime", "visitDate"):
        if key in payload:
            visit[key] = payload[key]
    visit["updatedAt"] = _now().isoformat()
    return _visit_dto(visit)


@api.delete("/visits/{visit_id}", status_code=204)
def delete_visit(visit_id: int, user: dict = Depends(roles("ADMIN"))):
    _get_or_404(state.visits, visit_id, "Visit")
    del state.visits[visit_id]


# ---- plain entities -------------------------------------------------------

def _table(name: str) -> dict[int, dict]:
    return getattr(state, name)


def _register_crud(path: str, table: str, label: str, write_roles: tuple, delete_roles: tuple,
                   read_roles: tuple = ALL_ROLES, update_method: str = "PUT") -> None:
    @api.get(path, name=f"list_{table}")
    def list_items(user: dict = Depends(roles(*read_roles))):
        items = _table(table).values()
        return [_public_user(i) for i in items] if table == "users" else list(items)

    @api.post(path, status_code=201, name=f"create_{table}")
    def create_item(payload: dict = Body(...), user: dict = Depends(roles(*write_roles))):
        item_id = state.next_entity_id()
        _table(table)[item_id] = {**payload, "id": item_id}
        return _table(table)[item_id]

    @api.get(f"{path}/{{item_id}}", name=f"get_{table}")
    def get_item(item_id: int, user: dict = Depends(roles(*read_roles))):
        item = _get_or_404(_table(table), item_id, label)
        return _public_user(item) if table == "users" else item

    @api.api_route(f"{path}/{{item_id}}", methods=[update_method], name=f"update_{table}")
    def update_item(item_id: int, payload: dict = Body(...), user: dict = Depends(roles(*write_roles))):
        item = _get_or_404(_table(table), item_id, label)
        item.update({k: v for k, v in payload.items() if k != "id"})
        return _public_user(item) if table == "users" else item

    @api.delete(f"{path}/{{item_id}}", status_code=204, name=f"delete_{table}")
    def delete_item(item_id: int, user: dict = Depends(roles(*delete_roles))):
        _get_or_404(_table(table), item_id, label)
        del _table(table)[item_id]


@api.get("/doctors/search")
def search_doctors(name: str, user: dict = Depends(principal)):
    return [d for d in state.doctors.values() if name.lower() in d["name"].lower()]


@api.get("/products/search")
def search_products(name: str, user: dict = Depends(principal)):
    return [p for p in state.products.values() if name.lower() in p["name"].lower()]


@api.get("/locations/search")
def search_locations(q: str, active_only: bool = Query(default=False, alias="activeOnly"),
                     user: dict = Depends(principal)):
    return [
        loc for loc in state.locations.values()
        if q.lower() in loc["name"].lower() and (loc["isActive"] or not active_only)
    ]


@api.post("/locations/bulk", status_code=201)
def bulk_locations(payload: dict = Body(...), user: dict = Depends(roles("ADMIN"))):
    created = []
    for item in payload.get("locations", []):
        item_id = state.next_entity_id()
        state.locations[item_id] = {"isActive": True, **item, "id": item_id}
        created.append(state.locations[item_id])
    return created


@api.get("/samples/date-range")
def samples_by_date_range(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    user: dict = Depends(principal),
):
    _check_range(start_date, end_date)
    return [s for s in state.samples.values() if _in_range(s.get("sampleDate"), start_date, end_date)]


@api.get("/samples/visit/{visit_id}")
def samples_by_visit(visit_id: int, user: dict = Depends(principal)):
    return [s for s in state.samples.values() if s.get("visitId") == visit_id]


@api.get("/orders/date-range")
def orders_by_date_range(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    user: dict = Depends(principal),
):
    _check_range(start_date, end_date)
    return [o for o in state.orders.values() if _in_range(o.get("orderDate"), start_date, end_date)]


@api.get("/orders/reports/total-revenue")
def total_revenue(user: dict = Depends(roles("ADMIN", "MANAGER"))):
    return sum(float(o.get("totalAmount") or 0) for o in state.orders.values())


@api.get("/users/{user_id}/locations")
def user_locations(user_id: int, user: dict = Depends(principal)):
    owner = _get_or_404(state.users, user_id, "User")
    return [state.locations[i] for i in owner["locationIds"] if i in state.locations]


@api.put("/users/{user_id}/locations")
def set_user_locations(user_id: int, location_ids: list[int] = Body(...), user: dict = Depends(roles("ADMIN"))):
    owner = _get_or_404(state.users, user_id, "User")
    owner["locationIds"] = [i for i in location_ids if i in state.locations]
    return _public_user(owner)


@api.put("/users/{user_id}/activate")
def activate_user(user_id: int, user: dict = Depends(roles("ADMIN"))):
    owner = _get_or_404(state.users, user_id, "User")
    owner["isActive"] = True
    return _public_user(owner)


@api.put("/users/{user_id}/deactivate")
def deactivate_user(user_id: int, user: dict = Depends(roles("ADMIN"))):
    owner = _get_or_404(state.users, user_id, "User")
    owner["isActive"] = False
    return _public_user(owner)


# ---- lookups and reports --------------------------------------------------

@api.get("/doctors/specialty/{specialty}")
def doctors_by_specialty(specialty: str, user: dict = Depends(principal)):
    return [d for d in state.doctors.values() if d.get("specialty", "").lower() == specialty.lower()]


@api.get("/doctors/hospital/{hospital}")
def doctors_by_hospital(hospital: str, user: dict = Depends(principal)):
    return [d for d in state.doctors.values() if d.get("hospital", "").lower() == hospital.lower()]


@api.get("/locations/city/{city}")
def locations_by_city(city: str, user: dict = Depends(principal)):
    return [loc for loc in state.locations.values() if loc.get("city", "").lower() == city.lower()]


@api.get("/users/role/{role}")
def users_by_role(role: str, user: dict = Depends(roles("ADMIN", "MANAGER"))):
    return [_public_user(u) for u in state.users.values() if u["role"] == role.upper()]


@api.get("/users/by-location/{location_id}")
def users_by_location(location_id: int, user: dict = Depends(roles("ADMIN", "MANAGER"))):
    return [_public_user(u) for u in state.users.values() if location_id in u.get("locationIds", [])]


@api.post("/users/{user_id}/locations/{location_id}")
def add_user_location(user_id: int, location_id: int, user: dict = Depends(roles("ADMIN"))):
    owner = _get_or_404(state.users, user_id, "User")
    _get_or_404(state.locations, location_id, "Location")
    if location_id not in owner["locationIds"]:
        owner["locationIds"].append(location_id)
    return _public_user(owner)


@api.delete("/users/{user_id}/locations/{location_id}")
def remove_user_location(user_id: int, location_id: int, user: dict = Depends(roles("ADMIN"))):
    owner = _get_or_404(state.users, user_id, "User")
    owner["locationIds"] = [i for i in owner["locationIds"] if i != location_id]
    return _public_user(owner)


@api.get("/samples/doctor/{doctor_id}")
def samples_by_doctor(doctor_id: int, user: dict = Depends(principal)):
    return [s for s in state.samples.values() if s.get("doctorId") == doctor_id]


@api.get("/samples/product/{product_id}")
def samples_by_product(product_id: int, user: dict = Depends(principal)):
    return [s for s in state.samples.values() if s.get("productId") == product_id]


@api.get("/samples/reports/product/{product_id}/total-quantity")
def sample_quantity_for_product(product_id: int, user: dict = Depends(principal)):
    return sum(int(s.get("quantity") or 0) for s in state.samples.values() if s.get("productId") == product_id)


@api.get("/samples/reports/doctor/{doctor_id}/total-quantity")
def sample_quantity_for_doctor(doctor_id: int, user: dict = Depends(principal)):
    return sum(int(s.get("quantity") or 0) for s in state.samples.values() if s.get("doctorId") == doctor_id)


def _orders_where(key: str, value: Any) -> list[dict]:
    return [o for o in state.orders.values() if o.get(key) == value]


@api.get("/orders/doctor/{doctor_id}")
def orders_by_doctor(doctor_id: int, user: dict = Depends(principal)):
    return _orders_where("doctorId", doctor_id)


@api.get("/orders/visit/{visit_id}")
def orders_by_visit(visit_id: int, user: dict = Depends(principal)):
    return _orders_where("visitId", visit_id)


@api.get("/orders/status/{status}")
def orders_by_status(status: str, user: dict = Depends(principal)):
    return _orders_where("status", status.upper())


@api.get("/orders/payment-status/{payment_status}")
def orders_by_payment_status(payment_status: str, user: dict = Depends(principal)):
    return _orders_where("paymentStatus", payment_status.upper())


@api.get("/orders/recent")
def recent_orders(limit: int = 10, user: dict = Depends(principal)):
    return sorted(state.orders.values(), key=lambda o: o["id"], reverse=True)[:limit]


@api.get("/orders/reports/doctor/{doctor_id}/total-revenue")
def revenue_for_doctor(doctor_id: int, user: dict = Depends(roles("ADMIN", "MANAGER"))):
    return sum(float(o.get("totalAmount") or 0) for o in _orders_where("doctorId", doctor_id))


_register_crud("/doctors", "doctors", "Doctor", write_roles=("ADMIN",), delete_roles=("ADMIN",))
_register_crud("/products", "products", "Product", write_roles=("ADMIN",), delete_roles=("ADMIN",))
_register_crud("/locations", "locations", "Location", write_roles=("ADMIN",), delete_roles=("ADMIN",))
_register_crud("/samples", "samples", "Sample", write_roles=("ADMIN", "REP"), delete_roles=("ADMIN",))
_register_crud("/orders", "orders", "Order", write_roles=("ADMIN", "MANAGER", "REP"),
               delete_roles=("ADMIN", "MANAGER"), update_method="PATCH")
_register_crud("/users", "users", "User", write_roles=("ADMIN",), delete_roles=("ADMIN",),
               read_roles=("ADMIN", "MANAGER"))


@api.get("/dashboard/admin/stats")
def admin_stats(user: dict = Depends(roles("ADMIN"))):
    return {
        "totalUsers": len(state.users),
        "totalDoctors": len(state.doctors),
        "totalProducts": len(state.products),
        "totalVisits": len(state.visits),
        "activeVisits": sum(1 for v in state.visits.values() if v["status"] == "IN_PROGRESS"),
    }


app.include_router(api, prefix="/api")
