"""
HTTP surface: geofence administration, punches, verification, position
reports and compliance, with auth and shared state overridden.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from core.deps import (
    get_breach_alerts,
    get_current_user,
    get_position_board,
    get_store,
    get_tracker_registry,
)
from core.exceptions import LocationPermissionDenied
from main import app
from models.presence_record import PresenceRecord
from services.alerts import BreachAlertFeed
from services.location_provider import PositionReportBoard
from services.presence_tracker import TrackerRegistry
from utils.geofence import destination_point

HQ_CENTER = {"center_lat": 38.9931538759034, "center_lng": -76.9428334513501}


@pytest.fixture
def user():
    return {
        "uid": "emp-1",
        "name": "Test Employee",
        "email": "employee@example.com",
        "branches": ["HQ", "NOFENCE"],
        "role": "employee",
        "device_id": "device-1",
    }


@pytest.fixture
def board():
    return PositionReportBoard()


@pytest.fixture
def client(store, user, board):
    registry = TrackerRegistry(store, board.provider_for)
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_position_board] = lambda: board
    app.dependency_overrides[get_tracker_registry] = lambda: registry
    alerts = BreachAlertFeed()
    app.dependency_overrides[get_breach_alerts] = lambda: alerts
    yield TestClient(app)
    registry.stop_all()
    app.dependency_overrides.clear()


@pytest.fixture
def hq_configured(local_store, hq_fence):
    local_store.save_geofence_definition("HQ", hq_fence)
    return hq_fence


def _at(fence, meters, bearing=0):
    point = destination_point(fence.center, bearing, meters)
    return {"latitude": point.latitude, "longitude": point.longitude}


# --- Geofence administration ---


def test_branch_geofence_requires_admin(client, user):
    body = {**HQ_CENTER, "name": "Head Office", "radius_meters": 250}
    assert client.put("/geofences/branch/HQ", json=body).status_code == 403

    user["role"] = "admin"
    response = client.put("/geofences/branch/HQ", json=body)
    assert response.status_code == 200
    assert response.json()["source"] == "branch"
    assert client.get("/geofences/branch/HQ").json()["radius_meters"] == 250


def test_branch_geofence_validation(client, user):
    user["role"] = "owner"
    bad_center = {"center_lat": 95, "center_lng": 0, "radius_meters": 100}
    assert client.put("/geofences/branch/HQ", json=bad_center).status_code == 400
    bad_radius = {**HQ_CENTER, "radius_meters": 0}
    assert client.put("/geofences/branch/HQ", json=bad_radius).status_code == 422
    assert client.get("/geofences/branch/UNKNOWN").status_code == 404


def test_custom_premise_belongs_to_device(client, user):
    body = {"center_lat": 38.9, "center_lng": -77.03}
    response = client.put("/geofences/custom/device-1", json=body)
    assert response.status_code == 200
    assert response.json()["name"] == "Custom Premise"
    assert response.json()["radius_meters"] == 250

    user["device_id"] = "device-2"
    assert client.get("/geofences/custom/device-1").status_code == 403

    user["device_id"] = "device-1"
    assert client.delete("/geofences/custom/device-1").status_code == 204
    assert client.get("/geofences/custom/device-1").status_code == 404


# --- Verification ---


def test_check_uses_branch_fence(client, hq_configured):
    inside = client.post("/geofences/check", json=_at(hq_configured, 100))
    assert inside.status_code == 200
    assert inside.json()["is_within"] is True
    assert inside.json()["geofence_name"] == "Head Office"

    outside = client.post("/geofences/check", json=_at(hq_configured, 400))
    assert outside.json()["is_within"] is False
    assert outside.json()["distance_meters"] == pytest.approx(400, abs=0.5)


def test_custom_premise_overrides_branch(client, hq_configured, home_premise):
    client.put(
        "/geofences/custom/device-1",
        json={
            "name": "Home Office",
            "center_lat": home_premise.center.latitude,
            "center_lng": home_premise.center.longitude,
            "radius_meters": 100,
        },
    )
    at_home = client.post("/geofences/check", json=_at(home_premise, 20)).json()
    assert at_home["is_within"] is True
    assert at_home["source"] == "custom"

    # The branch no longer applies to this device
    at_hq = client.post("/geofences/check", json=_at(hq_configured, 0)).json()
    assert at_hq["is_within"] is False
    assert at_hq["geofence_name"] == "Home Office"


def test_check_errors(client, hq_configured):
    assert client.post("/geofences/check", json={"latitude": 0, "longitude": 200}).status_code == 400
    unassigned = {**_at(hq_configured, 0), "branch_id": "OTHER"}
    assert client.post("/geofences/check", json=unassigned).status_code == 403
    no_fence = {**_at(hq_configured, 0), "branch_id": "NOFENCE"}
    assert client.post("/geofences/check", json=no_fence).status_code == 404


# --- Punches ---


def test_check_in_inside_then_out(client, hq_configured):
    response = client.post("/time/check-in", json=_at(hq_configured, 50))
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["punch_type"] == "clock_in"
    assert body["data"]["branch_id"] == "HQ"
    assert body["containment"]["is_within"] is True

    assert client.post("/time/check-in", json=_at(hq_configured, 50)).status_code == 409

    out = client.post("/time/check-out", json=_at(hq_configured, 10))
    assert out.status_code == 200
    assert out.json()["data"]["branch_id"] == "HQ"

    last = client.get("/time/last-punch").json()
    assert last["data"]["punch_type"] == "clock_out"
    assert len(client.get("/time/logs").json()["data"]) == 2
    assert len(client.get("/time/today").json()["data"]) == 2


def test_check_in_outside_is_refused(client, hq_configured):
    response = client.post("/time/check-in", json=_at(hq_configured, 300))
    assert response.status_code == 400
    assert "Head Office" in response.json()["detail"]
    assert client.get("/time/last-punch").json()["data"] is None


def test_punch_errors(client, hq_configured):
    assert client.post("/time/check-in", json={}).status_code == 400
    assert client.post("/time/check-out", json=_at(hq_configured, 0)).status_code == 409
    wrong_branch = {**_at(hq_configured, 0), "branch_id": "OTHER"}
    assert client.post("/time/check-in", json=wrong_branch).status_code == 403
    no_fence = {**_at(hq_configured, 0), "branch_id": "NOFENCE"}
    assert client.post("/time/check-in", json=no_fence).status_code == 404


# --- Position reports & tracking ---


def test_position_report_feeds_board(client, board, hq_configured):
    response = client.post("/presence/position", json={**_at(hq_configured, 0), "accuracy": 8})
    assert response.status_code == 202
    assert board.latest("emp-1").accuracy == 8

    failure = client.post("/presence/position", json={"error": "permission_denied"})
    assert failure.status_code == 202
    with pytest.raises(LocationPermissionDenied):
        board.latest("emp-1")

    assert client.post("/presence/position", json={}).status_code == 400
    assert client.post("/presence/position", json={"latitude": 91, "longitude": 0}).status_code == 400


def test_tracking_needs_a_fence(client, user):
    user["branches"] = ["NOFENCE"]
    assert client.post("/presence/emp-1/start", json={}).status_code == 404
    status = client.get("/presence/emp-1/status").json()
    assert status["state"] == "idle"
    assert client.post("/presence/emp-1/stop").json()["data"] == []


def test_presence_routes_are_per_employee(client):
    assert client.get("/presence/emp-2/status").status_code == 403
    assert client.get("/presence/alerts").status_code == 403


# --- Compliance ---


def test_compliance_endpoint(client, local_store):
    start = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)
    for i, within in enumerate([True, True, False, None]):
        local_store.append_presence_record(
            PresenceRecord(
                employee_id="emp-1",
                timestamp=start + timedelta(minutes=15 * i),
                is_within_geofence=within,
                geofence_name="Head Office",
                interval_minutes=15,
                error="timeout" if within is None else None,
            )
        )

    params = {"start": "2025-06-02T00:00:00Z", "end": "2025-06-02T23:59:59Z"}
    response = client.get("/presence/emp-1/compliance", params=params)
    assert response.status_code == 200
    summary = response.json()
    assert summary["record_count"] == 3
    assert summary["breach_count"] == 1
    assert summary["gap_count"] == 1
    assert summary["total_hours"] == pytest.approx(0.75)
    assert summary["compliance_percentage"] == pytest.approx(200 / 3)

    log = client.get("/presence/emp-1/log", params=params).json()
    assert len(log) == 4

    reversed_range = {"start": params["end"], "end": params["start"]}
    assert client.get("/presence/emp-1/compliance", params=reversed_range).status_code == 400


# --- Administrator overviews ---


def test_geofence_overview_is_admin_only(client, user, hq_configured, local_store, home_premise):
    local_store.save_geofence_definition("device-1", home_premise)
    assert client.get("/geofences").status_code == 403

    user["role"] = "admin"
    entries = client.get("/geofences").json()
    assert [(e["scope_key"], e["source"]) for e in entries] == [
        ("HQ", "branch"),
        ("device-1", "custom"),
    ]
    assert entries[0]["radius_meters"] == 250

    custom_only = client.get("/geofences", params={"source": "custom"}).json()
    assert [e["name"] for e in custom_only] == ["Home Office"]


def test_running_trackers_overview(client, user, board, hq_configured):
    assert client.get("/presence/trackers").status_code == 403

    board.report_position("emp-1", hq_configured.center)
    started = client.post("/presence/emp-1/start", json={"interval_minutes": 60})
    assert started.status_code == 200
    assert started.json()["state"] == "running"

    user["role"] = "admin"
    trackers = client.get("/presence/trackers").json()
    assert [t["employee_id"] for t in trackers] == ["emp-1"]
    assert trackers[0]["geofence"]["name"] == "Head Office"

    client.post("/presence/emp-1/stop")
    assert client.get("/presence/trackers").json() == []
