import httpx
import pytest

from medtrack.core.errors import (
    ApiConflict,
    Forbidden,
    NetworkError,
    NotFound,
    SessionExpired,
    Unauthorized,
    ValidationError,
)
from medtrack.services.backend_client import MedTrackClient

pytestmark = pytest.mark.anyio

BASE_URL = "http://backend.test/api"


def client_for(handler, token_provider=None) -> MedTrackClient:
    return MedTrackClient(BASE_URL, token_provider=token_provider, transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    "status, error",
    [
        (401, Unauthorized),
        (403, Forbidden),
        (404, NotFound),
        (409, ApiConflict),
        (400, ValidationError),
        (422, ValidationError),
        (500, NetworkError),
        (503, NetworkError),
    ],
)
async def test_status_codes_map_onto_the_error_taxonomy(status, error):
    def handler(request):
        return httpx.Response(status, json={"detail": "nope", "visit_id": 101})

    async with client_for(handler) as client:
        with pytest.raises(error):
            await client.get("/visits/1")


async def test_conflict_keeps_the_response_body():
    def handler(request):
        return httpx.Response(409, json={"detail": "busy", "visit_id": 101})

    async with client_for(handler) as client:
        with pytest.raises(ApiConflict) as excinfo:
            await client.post("/visits/start", json={})

    assert excinfo.value.body["visit_id"] == 101
    assert excinfo.value.message == "busy"


async def test_transport_failure_is_a_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with client_for(handler) as client:
        with pytest.raises(NetworkError):
            await client.get("/doctors")


async def test_bearer_token_is_attached_only_when_authenticated():
    seen = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200, json=[])

    async with client_for(handler, token_provider=lambda: "tok") as client:
        await client.get("/doctors")
        await client.post("/auth/login", json={}, authenticated=False)

    assert seen == ["Bearer tok", None]


async def test_expired_session_fails_before_sending():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=[])

    def expired():
        raise SessionExpired("Session expired, please log in again")

    async with client_for(handler, token_provider=expired) as client:
        with pytest.raises(SessionExpired):
            await client.get("/doctors")

    assert calls == []


async def test_empty_responses_are_none():
    def handler(request):
        return httpx.Response(204)

    async with client_for(handler) as client:
        assert await client.delete("/visits/101") is None


async def test_none_params_are_dropped():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json=[])

    async with client_for(handler) as client:
        await client.get("/locations/search", params={"q": "north", "activeOnly": None})

    assert seen == [{"q": "north"}]
