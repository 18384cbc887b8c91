"""Module: entities.

One small API object per backend resource. Each returns the backend's JSON
as-is; validation of the shapes that carry invariants (visits) happens in
the lifecycle manager.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from medtrack.services.backend_client import MedTrackClient


def _date_range(start_date: date, end_date: date) -> dict[str, str]:
    return {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()}


class ResourceApi:
    path = ""

    def __init__(self, client: MedTrackClient):
        self.client = client

    async def list(self, **params) -> Any:
        return await self.client.get(self.path, params=params)

    async def get(self, item_id: int) -> Any:
        return await self.client.get(f"{self.path}/{item_id}")

    async def create(self, data: dict) -> Any:
        return await self.client.post(self.path, json=data)

    async def update(self, item_id: int, data: dict) -> Any:
        return await self.client.put(f"{self.path}/{item_id}", json=data)

    async def delete(self, item_id: int) -> Any:
        return await self.client.delete(f"{self.path}/{item_id}")


class AuthApi:
    def __init__(self, client: MedTrackClient):
        self.client = client

    async def login(self, email: str, password: str) -> dict:
        return await self.client.post(
            "/auth/login", json={"email": email, "password": password}, authenticated=False
        )

    async def register(self, data: dict) -> dict:
        return await self.client.post("/auth/register", json=data)


class DoctorApi(ResourceApi):
    path = "/doctors"

    async def search(self, name: str) -> Any:
        return await self.client.get(f"{self.path}/search", params={"name": name})

    async def by_specialty(self, specialty: str) -> Any:
        return await self.client.get(f"{self.path}/specialty/{specialty}")

    async def by_hospital(self, hospital: str) -> Any:
        return await self.client.get(f"{self.path}/hospital/{hospital}")


class ProductApi(ResourceApi):
    path = "/products"

    async def search(self, name: str) -> Any:
        return await self.client.get(f"{self.path}/search", params={"name": name})


class UserApi(ResourceApi):
    path = "/users"

    async def by_role(self, role: str) -> Any:
        return await self.client.get(f"{self.path}/role/{role}")

    async def activate(self, user_id: int) -> Any:
        return await self.client.put(f"{self.path}/{user_id}/activate")

    async def deactivate(self, user_id: int) -> Any:
        return await self.client.put(f"{self.path}/{user_id}/deactivate")

    async def locations(self, user_id: int) -> Any:
        return await self.client.get(f"{self.path}/{user_id}/locations")

    async def set_locations(self, user_id: int, location_ids: list[int]) -> Any:
        return await self.client.put(f"{self.path}/{user_id}/locations", json=location_ids)

    async def add_location(self, user_id: int, location_id: int) -> Any:
        return await self.client.post(f"{self.path}/{user_id}/locations/{location_id}")

    async def remove_location(self, user_id: int, location_id: int) -> Any:
        return await self.client.delete(f"{self.path}/{user_id}/locations/{location_id}")

    async def by_location(self, location_id: int) -> Any:
        return await self.client.get(f"{self.path}/by-location/{location_id}")


class SampleApi(ResourceApi):
    path = "/samples"

    async def by_doctor(self, doctor_id: int) -> Any:
        return await self.client.get(f"{self.path}/doctor/{doctor_id}")

    async def by_product(self, product_id: int) -> Any:
        return await self.client.get(f"{self.path}/product/{product_id}")

    async def by_visit(self, visit_id: int) -> Any:
        return await self.client.get(f"{self.path}/visit/{visit_id}")

    async def by_date_range(self, start_date: date, end_date: date) -> Any:
        return await self.client.get(f"{self.path}/date-range", params=_date_range(start_date, end_date))

    async def total_quantity_for_product(self, product_id: int) -> Any:
        return await self.client.get(f"{self.path}/reports/product/{product_id}/total-quantity")

    async def total_quantity_for_doctor(self, doctor_id: int) -> Any:
        return await self.client.get(f"{self.path}/reports/doctor/{doctor_id}/total-quantity")


class OrderApi(ResourceApi):
    path = "/orders"

    # Orders are partially updated by the backend.
    async def update(self, item_id: int, data: dict) -> Any:
        return await self.client.patch(f"{self.path}/{item_id}", json=data)

    async def by_doctor(self, doctor_id: int) -> Any:
        return await self.client.get(f"{self.path}/doctor/{doctor_id}")

    async def by_visit(self, visit_id: int) -> Any:
        return await self.client.get(f"{self.path}/visit/{visit_id}")

    async def by_status(self, status: str) -> Any:
        return await self.client.get(f"{self.path}/status/{status}")

    async def by_payment_status(self, payment_status: str) -> Any:
        return await self.client.get(f"{self.path}/payment-status/{payment_status}")

    async def by_date_range(self, start_date: date, end_date: date) -> Any:
        return await self.client.get(f"{self.path}/date-range", params=_date_range(start_date, end_date))

    async def recent(self, limit: int = 10) -> Any:
        return await self.client.get(f"{self.path}/recent", params={"limit": limit})

    async def total_revenue(self) -> Any:
        return await self.client.get(f"{self.path}/reports/total-revenue")

    async def total_revenue_for_doctor(self, doctor_id: int) -> Any:
        return await self.client.get(f"{self.path}/reports/doctor/{doctor_id}/total-revenue")


class LocationApi(ResourceApi):
    path = "/locations"

    async def list(self, active_only: bool = False, **params) -> Any:
        return await self.client.get(self.path, params={"activeOnly": active_only, **params})

    async def search(self, query: str, active_only: bool = False) -> Any:
        return await self.client.get(
            f"{self.path}/search", params={"q": query, "activeOnly": active_only}
        )

    async def by_city(self, city: str) -> Any:
        return await self.client.get(f"{self.path}/city/{city}")

    async def bulk_create(self, locations: list[dict]) -> Any:
        return await self.client.post(f"{self.path}/bulk", json={"locations": locations})

    async def activate(self, location_id: int) -> Any:
        return await self.client.put(f"{self.path}/{location_id}/activate")

    async def deactivate(self, location_id: int) -> Any:
        return await self.client.put(f"{self.path}/{location_id}/deactivate")


class VisitApi(ResourceApi):
    path = "/visits"

    async def start(self, payload: dict) -> Any:
        return await self.client.post(f"{self.path}/start", json=payload)

    async def end(self, visit_id: int, notes: str | None) -> Any:
        return await self.client.put(f"{self.path}/{visit_id}/end", json={"notes": notes})

    async def active_for_user(self, user_id: int) -> Any:
        return await self.client.get(f"{self.path}/user/{user_id}/active")

    async def by_user(self, user_id: int) -> Any:
        return await self.client.get(f"{self.path}/user/{user_id}")

    async def by_doctor(self, doctor_id: int) -> Any:
        return await self.client.get(f"{self.path}/doctor/{doctor_id}")

    async def by_location(self, location_id: int) -> Any:
        return await self.client.get(f"{self.path}/location/{location_id}")

    async def by_date_range(self, start_date: date, end_date: date) -> Any:
        return await self.client.get(f"{self.path}/date-range", params=_date_range(start_date, end_date))

    async def by_user_and_date_range(self, user_id: int, start_date: date, end_date: date) -> Any:
        return await self.client.get(
            f"{self.path}/user/{user_id}/date-range", params=_date_range(start_date, end_date)
        )


class DashboardApi:
    def __init__(self, client: MedTrackClient):
        self.client = client

    async def admin_stats(self) -> Any:
        return await self.client.get("/dashboard/admin/stats")

