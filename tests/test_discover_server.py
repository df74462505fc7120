import threading
import time
from datetime import datetime, timezone

import pytest

from office_discovery.core.presenter import present
from office_discovery.jobs import discover, discover_server
from office_discovery.models import CandidateOffice, DiscoverySession


def _presentation():
    session = DiscoverySession(
        id="s1",
        user_id="u1",
        clinic_id="c1",
        search_distance=10.0,
        search_lat=40.7,
        search_lng=-74.0,
        created_at=datetime(2024, 3, 5, tzinfo=timezone.utc),
        external_call_made=True,
    )
    return present(session, [CandidateOffice(place_id="p1", name="Acme", distance=2.0)])


class DummyWorkflow:
    def __init__(self):
        self.calls = []
        self.outcome = discover.DiscoveryOutcome(
            notification=discover.Notification("Offices Found", "Found 1 new offices nearby"),
            presentation=_presentation(),
        )
        self.session = _presentation()

    def search(self, user_id, params, **options):
        self.calls.append(("search", user_id, params, options))
        return self.outcome

    def resume(self, user_id, **options):
        self.calls.append(("resume", user_id, options))
        return self.session

    def start_over(self, user_id):
        self.calls.append(("start_over", user_id))

    def mark_imported(self, user_id, place_id):
        self.calls.append(("mark_imported", user_id, place_id))
        if place_id == "missing":
            return None
        return CandidateOffice(place_id=place_id, name="Acme", imported=True)

    def save_group(self, user_id, name, office_ids):
        self.calls.append(("save_group", user_id, name, office_ids))
        if "bad" in office_ids:
            raise ValueError("offices not in the current session: bad")
        return "g1"


@pytest.fixture(autouse=True)
def workflow(monkeypatch):
    dummy = DummyWorkflow()
    monkeypatch.setattr(discover_server, "_workflow", dummy)
    return dummy


@pytest.fixture
def client():
    return discover_server.app.test_client()


HEADERS = {"X-User-Id": "u1"}


def test_health_endpoint(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_discover_requires_user(client):
    assert client.post("/discover", json={"distance": 10}).status_code == 401


def test_discover_validates_payload(client):
    assert client.post("/discover", json={"distance": -1}, headers=HEADERS).status_code == 400
    assert client.post("/discover", json={"distance": "far"}, headers=HEADERS).status_code == 400
    raw = '{"distance": Infinity}'
    assert client.post("/discover", data=raw, content_type="application/json", headers=HEADERS).status_code == 400
    assert client.post("/discover", json={"distance": 10, "sort_by": "phone"}, headers=HEADERS).status_code == 400


def test_discover_passes_parameters(client, workflow):
    payload = {
        "distance": 15,
        "zip_code_override": "10001",
        "office_type_filter": "Pediatric",
        "sort_by": "type",
        "show_already_added": True,
    }

    response = client.post("/discover", json=payload, headers=HEADERS)

    assert response.status_code == 200
    body = response.get_json()["data"]
    assert body["success"] is True
    assert body["presentation"]["offices"][0]["place_id"] == "p1"
    _, user_id, params, options = workflow.calls[0]
    assert user_id == "u1"
    assert params.distance == 15.0
    assert params.zip_code_override == "10001"
    assert params.office_type_filter == "Pediatric"
    assert options == {"sort_by": "office_type_label", "show_already_added": True}


@pytest.mark.parametrize(
    "kind,status",
    [("missing_clinic_location", 409), ("rate_limited", 429), ("provider_error", 502), ("unexpected_error", 500)],
)
def test_discover_maps_failures_to_status(client, workflow, kind, status):
    workflow.outcome = discover.DiscoveryOutcome(
        notification=discover.Notification("Error", "nope", "destructive", kind)
    )

    response = client.post("/discover", json={"distance": 10}, headers=HEADERS)

    assert response.status_code == status
    assert response.get_json()["error"] == "nope"


def test_discover_reports_superseded_search(client, workflow):
    workflow.outcome = discover.DiscoveryOutcome(notification=None, discarded=True)

    assert client.post("/discover", json={"distance": 10}, headers=HEADERS).status_code == 409


def test_get_session_reads_query_options(client, workflow):
    response = client.get("/session?sort_by=rating&show_already_added=true", headers=HEADERS)

    assert response.status_code == 200
    assert response.get_json()["data"]["session"]["id"] == "s1"
    assert workflow.calls[0] == ("resume", "u1", {"sort_by": "rating", "show_already_added": True})


def test_get_session_without_snapshot(client, workflow):
    workflow.session = None

    response = client.get("/session", headers=HEADERS)

    assert response.get_json() == {"data": None}


def test_delete_session_starts_over(client, workflow):
    response = client.delete("/session", headers=HEADERS)

    assert response.status_code == 204
    assert workflow.calls == [("start_over", "u1")]


def test_import_office(client):
    assert client.post("/offices/p1/import", headers=HEADERS).get_json()["data"]["imported"] is True
    assert client.post("/offices/missing/import", headers=HEADERS).status_code == 404


def test_create_group(client, workflow):
    assert client.post("/groups", json={"name": "Wave"}, headers=HEADERS).status_code == 400
    assert client.post("/groups", json={"name": "Wave", "office_ids": ["bad"]}, headers=HEADERS).status_code == 400

    response = client.post("/groups", json={"name": "Wave", "office_ids": ["p1"]}, headers=HEADERS)

    assert response.status_code == 201
    assert response.get_json()["data"]["group_id"] == "g1"


def test_workflow_is_built_once_under_concurrent_first_requests(monkeypatch):
    built = []

    def fake_build_workflow():
        time.sleep(0.05)
        built.append(DummyWorkflow())
        return built[-1]

    monkeypatch.setattr(discover_server, "_workflow", None)
    monkeypatch.setattr(discover_server, "build_workflow", fake_build_workflow)
    results = []
    threads = [threading.Thread(target=lambda: results.append(discover_server._get_workflow())) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(built) == 1
    assert all(result is built[0] for result in results)
