"""Module: health."""

import httpx
from fastapi import APIRouter, Depends

from medtrack.core.config import settings
from medtrack.core.errors import MedTrackError
from medtrack.services.backend_client import MedTrackClient
from medtrack.api.v1.routes.deps import get_backend_transport

router = APIRouter()


# Endpoint: liveness of the web tier; the backend probe never fails the check.
@router.get("")
async def health(transport: httpx.AsyncBaseTransport | None = Depends(get_backend_transport)):
    backend_status = "ok"
    # The backend serves /ping next to /api, not under it.
    root_url = settings.medtrack_api_base_url.rstrip("/").removesuffix("/api")
    async with MedTrackClient(root_url, timeout=2.0, transport=transport) as client:
        try:
            await client.get("/ping", authenticated=False)
        except MedTrackError as exc:
            backend_status = f"unavailable: {exc.message}"
    return {"status": "ok", "service": "medtrack-web", "backend": backend_status}
