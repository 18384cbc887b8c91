"""Module: main.

The request guard on ``app.state`` is per process: "latest request wins" for a
view only holds when the web tier runs a single worker (or sticky sessions).
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medtrack.api.v1.api import api_router
from medtrack.core.config import settings
from medtrack.core.errors import InvalidCredentials, MedTrackError, Unauthorized
from medtrack.core.log import configure_logging
from medtrack.db.init_db import init_db
from medtrack.db.session import SessionLocal
from medtrack.services.request_guard import RequestGuard
from medtrack.services.session_store import purge_stale_sessions

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    with SessionLocal() as db:
        purge_stale_sessions(db, timedelta(hours=settings.session_max_age_hours))
    logger.info("MedTrack web tier up, backend at %s", settings.medtrack_api_base_url)
    yield


app = FastAPI(title="MedTrack Pro Web", version="0.1.0", lifespan=lifespan)
app.state.request_guard = RequestGuard()

app.include_router(api_router, prefix="/api/v1")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MedTrackError)
async def medtrack_error_handler(request: Request, exc: MedTrackError):
    payload = exc.to_payload()
    if not isinstance(exc, (Unauthorized, InvalidCredentials)):
        # 403 and friends leave the session exactly as it was.
        return JSONResponse(status_code=exc.status_code, content=payload)

    # Any 401, whichever page triggered it, ends the session.
    authority = getattr(request.state, "session_authority", None)
    if authority is not None:
        authority.invalidate()
    payload["redirect"] = settings.login_path
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.delete_cookie(settings.session_cookie_name)
    return response
