"""Module: api."""

# backend/medtrack/api/v1/api.py
from fastapi import APIRouter

# Core operational routes (health/auth).
from medtrack.api.v1.routes.health import router as health_router
from medtrack.api.v1.routes.auth import router as auth_router

# Domain routes used by the browser pages.
from medtrack.api.v1.routes.visits import router as visits_router
from medtrack.api.v1.routes.dashboard import router as dashboard_router
from medtrack.api.v1.routes.resources import (
    doctors_router,
    locations_router,
    orders_router,
    products_router,
    samples_router,
    users_router,
)


api_router = APIRouter()

# Register operational endpoints first for service-level concerns.
api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])

# Register business/domain endpoints consumed by the application UI.
api_router.include_router(visits_router, prefix="/visits", tags=["visits"])
api_router.include_router(doctors_router, prefix="/doctors", tags=["doctors"])
api_router.include_router(products_router, prefix="/products", tags=["products"])
api_router.include_router(users_router, prefix="/users", tags=["users"])
api_router.include_router(samples_router, prefix="/samples", tags=["samples"])
api_router.include_router(orders_router, prefix="/orders", tags=["orders"])
api_router.include_router(locations_router, prefix="/locations", tags=["locations"])
api_router.include_router(dashboard_router, prefix="/dashboard", tags=["dashboard"])
