from conftest import login


def start(client, doctor_id=3, location_id=1, **extra):
    return client.post(
        "/api/v1/visits/start",
        json={"doctorId": doctor_id, "locationId": location_id, **extra},
    )


def test_rep_start_then_conflict(client):
    login(client, "rep")

    first = start(client, notes="Intro call")
    assert first.status_code == 201
    assert first.json()["id"] == 101
    assert first.json()["status"] == "IN_PROGRESS"

    second = start(client, doctor_id=5)
    assert second.status_code == 409
    body = second.json()
    assert body["error"] == "ActiveVisitExists"
    assert body["visit_id"] == 101
    assert body["visit_url"] == "/visits/101"


def test_active_visit_gates_start(client):
    login(client, "rep")
    assert client.get("/api/v1/visits/active").json() == {"visit": None, "can_start": True}

    start(client)
    active = client.get("/api/v1/visits/active").json()

    assert active["visit"]["id"] == 101
    assert active["can_start"] is False


def test_end_visit_over_http(client):
    login(client, "rep")
    start(client, notes="Intro call")

    response = client.put("/api/v1/visits/101/end", json={"notes": "Left brochures"})

    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"
    assert response.json()["notes"] == "Intro call\nLeft brochures"

    again = client.put("/api/v1/visits/101/end", json={"notes": "x"})
    assert again.status_code == 409
    assert again.json()["error"] == "VisitNotActive"


def test_detail_exposes_actions(client):
    login(client, "rep")
    start(client)

    body = client.get("/api/v1/visits/101").json()

    assert body["visit"]["id"] == 101
    assert body["actions"]["end"] is True
    assert body["actions"]["cancel"] is False
    assert body["actions"]["delete"] is False


def test_manager_delete_is_forbidden_and_session_survives(client):
    login(client, "rep")
    start(client)
    login(client, "manager")

    response = client.delete("/api/v1/visits/101")

    assert response.status_code == 403
    assert client.get("/api/v1/auth/me").json()["role"] == "MANAGER"


def test_manager_lists_but_cannot_start(client):
    login(client, "rep")
    start(client)
    login(client, "manager")

    listing = client.get("/api/v1/visits")
    assert listing.status_code == 200
    assert [v["id"] for v in listing.json()["items"]] == [101]
    assert listing.json()["affordances"]["start"] is False
    assert listing.json()["affordances"]["edit"] is True

    assert start(client).status_code == 403


def test_manager_edits_and_admin_deletes(client, backend_state):
    login(client, "rep")
    start(client)
    login(client, "manager")

    edited = client.patch("/api/v1/visits/101", json={"notes": "Fixed typo"})
    assert edited.status_code == 200
    assert edited.json()["notes"] == "Fixed typo"

    assert client.patch("/api/v1/visits/101", json={"doctorId": 5}).status_code == 400

    login(client, "admin")
    response = client.delete("/api/v1/visits/101")
    assert response.json() == {"deleted": True, "visit_id": 101}
    assert backend_state.visits == {}


def test_admin_cancels(client):
    login(client, "rep")
    start(client)
    login(client, "admin")

    response = client.post("/api/v1/visits/101/cancel", json={"reason": "Clinic closed"})

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["notes"] == "Cancelled: Clinic closed"


def test_bad_date_range(client):
    login(client, "rep")

    response = client.get(
        "/api/v1/visits", params={"start_date": "2026-03-01", "end_date": "2026-02-01"}
    )

    assert response.status_code == 400
