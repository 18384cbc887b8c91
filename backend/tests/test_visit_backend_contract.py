"""Lifecycle manager against the production backend's visit contract.

The production backend rejects lifecycle conflicts with
``400 {"error": ...}`` and appends end-notes to the stored notes itself.
"""

import json

import httpx
import pytest

from medtrack.core.errors import ActiveVisitExists, ValidationError, VisitNotActive
from medtrack.schemas.visit import VisitStatus
from medtrack.services.backend_client import MedTrackClient
from medtrack.services.session_authority import SessionAuthority
from medtrack.services.session_store import ROLE_KEY, TOKEN_KEY, USER_ID_KEY, SessionStore
from medtrack.services.visit_lifecycle import VisitLifecycleManager
from mock_medtrack.app.main import issue_token

pytestmark = pytest.mark.anyio

BASE_URL = "http://medtrack.test/api"
ACTIVE_VISIT_ERROR = "User already has an active visit. Please complete it before starting a new one."


class ProductionVisitBackend:
    def __init__(self):
        self.visits: dict[int, dict] = {}
        self.next_id = 101
        # Lookups answered from a stale replica, to reproduce lost races.
        self.missed_active_lookups = 0
        self.stale_visit_reads = 0
        self.end_bodies: list[dict] = []

    def add(self, **fields) -> dict:
        visit = {
            "id": self.next_id,
            "userId": 7,
            "doctorId": 3,
            "locationId": 1,
            "visitDate": "2026-10-19",
            "checkInTime": "2026-10-19T09:00:00",
            "checkOutTime": None,
            "status": "IN_PROGRESS",
            "notes": None,
            **fields,
        }
        self.visits[visit["id"]] = visit
        self.next_id += 1
        return visit

    def _active(self, user_id: int) -> list[dict]:
        return [v for v in self.visits.values() if v["userId"] == user_id and v["status"] == "IN_PROGRESS"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        parts = request.url.path.removeprefix("/api/").split("/")
        body = json.loads(request.content) if request.content else {}

        if request.method == "POST" and parts == ["visits", "start"]:
            if body.get("locationId") == 99:
                return httpx.Response(400, json={"error": "User does not have access to location with id: 99"})
            if self._active(body["userId"]):
                return httpx.Response(400, json={"error": ACTIVE_VISIT_ERROR})
            visit = self.add(userId=body["userId"], doctorId=body["doctorId"], notes=body.get("notes"))
            return httpx.Response(201, json=visit)

        if request.method == "PUT" and len(parts) == 3 and parts[2] == "end":
            self.end_bodies.append(body)
            visit = self.visits[int(parts[1])]
            if visit["status"] != "IN_PROGRESS":
                return httpx.Response(
                    400, json={"error": f"Visit is not in progress. Current status: {visit['status']}"}
                )
            notes = body.get("notes")
            if notes:
                visit["notes"] = f"{visit['notes']}\n{notes}" if visit["notes"] else notes
            visit["status"] = "COMPLETED"
            visit["checkOutTime"] = "2026-10-19T10:00:00"
            return httpx.Response(200, json=visit)

        if request.method == "GET" and parts[:2] == ["visits", "user"] and parts[-1] == "active":
            if self.missed_active_lookups:
                self.missed_active_lookups -= 1
                return httpx.Response(200, json=[])
            return httpx.Response(200, json=self._active(int(parts[2])))

        if request.method == "GET" and len(parts) == 2 and parts[0] == "visits":
            visit = self.visits[int(parts[1])]
            if self.stale_visit_reads:
                self.stale_visit_reads -= 1
                return httpx.Response(200, json={**visit, "status": "IN_PROGRESS", "checkOutTime": None})
            return httpx.Response(200, json=dict(visit))

        return httpx.Response(404, json={"error": "Not found"})


@pytest.fixture
def production():
    return ProductionVisitBackend()


@pytest.fixture
def rep_authority(db):
    store = SessionStore(db, "contract")
    store.write({TOKEN_KEY: issue_token(7, "REP"), ROLE_KEY: "REP", USER_ID_KEY: "7"})
    return SessionAuthority(store)


@pytest.fixture
async def lifecycle(rep_authority, production):
    transport = httpx.MockTransport(production)
    async with MedTrackClient(BASE_URL, token_provider=rep_authority.token, transport=transport) as client:
        yield VisitLifecycleManager(client, rep_authority)


async def test_end_notes_are_appended_once(lifecycle, rep_authority, production):
    production.add(notes="Intro call")

    ended = await lifecycle.end_visit(rep_authority.current(), 101, "  Left brochures ")

    assert ended.status is VisitStatus.COMPLETED
    assert ended.notes == "Intro call\nLeft brochures"
    assert production.end_bodies == [{"notes": "Left brochures"}]


async def test_blank_end_notes_keep_existing_notes(lifecycle, rep_authority, production):
    production.add(notes="Intro call")

    ended = await lifecycle.end_visit(rep_authority.current(), 101, "   ")

    assert ended.notes == "Intro call"
    assert production.end_bodies == [{"notes": None}]


async def test_end_notes_become_the_notes_when_none_exist(lifecycle, rep_authority, production):
    production.add()

    ended = await lifecycle.end_visit(rep_authority.current(), 101, "Left brochures")

    assert ended.notes == "Left brochures"


async def test_lost_start_race_reported_as_active_visit(lifecycle, rep_authority, production):
    production.add()
    production.missed_active_lookups = 1

    with pytest.raises(ActiveVisitExists) as excinfo:
        await lifecycle.start_visit(rep_authority.current(), 7, 5, 1)

    assert excinfo.value.visit_id == 101
    assert list(production.visits) == [101]


async def test_other_start_rejections_stay_validation_errors(lifecycle, rep_authority):
    with pytest.raises(ValidationError) as excinfo:
        await lifecycle.start_visit(rep_authority.current(), 7, 3, 99)

    assert not isinstance(excinfo.value, ActiveVisitExists)


async def test_lost_end_race_reported_as_not_active(lifecycle, rep_authority, production):
    production.add(status="COMPLETED", notes="Done", checkOutTime="2026-10-19T09:30:00")
    production.stale_visit_reads = 1

    with pytest.raises(VisitNotActive) as excinfo:
        await lifecycle.end_visit(rep_authority.current(), 101, "again")

    assert excinfo.value.status == "COMPLETED"
    assert production.visits[101]["notes"] == "Done"
