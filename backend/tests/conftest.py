import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medtrack.api.v1.routes.deps import get_backend_transport, get_db
from medtrack.db.base import Base
from medtrack.db.models.session_entry import SessionEntry  # noqa: F401
from medtrack.main import app
from medtrack.services.backend_client import MedTrackClient
from medtrack.services.request_guard import RequestGuard
from medtrack.services.session_authority import SessionAuthority
from medtrack.services.session_store import SessionStore
from medtrack.services.visit_lifecycle import VisitLifecycleManager
from mock_medtrack.app.main import app as mock_app
from mock_medtrack.app.main import state as mock_state

MOCK_API_URL = "http://mock-medtrack/api"

CREDENTIALS = {
    "admin": ("admin@medtrack.test", "admin123"),
    "manager": ("manager@medtrack.test", "manager123"),
    "rep": ("rep@medtrack.test", "rep123"),
    "rep2": ("rep2@medtrack.test", "rep123"),
}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def backend_state():
    mock_state.reset()
    yield mock_state
    mock_state.reset()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def mock_transport() -> httpx.AsyncBaseTransport:
    return httpx.ASGITransport(app=mock_app)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_backend_transport] = mock_transport
    app.state.request_guard = RequestGuard()
    # No context manager: the lifespan would create the on-disk database.
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


def login(client: TestClient, who: str):
    email, password = CREDENTIALS[who]
    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response


class SessionHandle:
    def __init__(self, authority: SessionAuthority, backend: MedTrackClient):
        self.authority = authority
        self.backend = backend
        self.identity = None
        self.lifecycle = VisitLifecycleManager(backend, authority)


@pytest.fixture
async def open_session(db):
    """Factory for authenticated authorities talking to the mock backend."""
    handles = []

    async def _open(who: str | None = None, sid: str | None = None) -> SessionHandle:
        authority = SessionAuthority(SessionStore(db, sid or f"sid-{len(handles)}"))
        backend = MedTrackClient(MOCK_API_URL, token_provider=authority.token, transport=mock_transport())
        authority.backend = backend
        handle = SessionHandle(authority, backend)
        handles.append(handle)
        if who is not None:
            handle.identity = await authority.authenticate(*CREDENTIALS[who])
        return handle

    yield _open
    for handle in handles:
        await handle.backend.aclose()
