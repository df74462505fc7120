import pytest
import requests

from office_discovery.core.errors import ProviderError, RateLimited
from office_discovery.models import SearchOrigin
from office_discovery.vendors import google_places


class DummyResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError("http error")

    def json(self):
        return self._payload


class DummySession:
    def __init__(self):
        self.calls = []
        self.responses = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def patch_session(monkeypatch):
    session = DummySession()
    monkeypatch.setattr(google_places, "_SESSION", session)
    monkeypatch.setattr(google_places.time, "sleep", lambda _: None)
    return session


ORIGIN = SearchOrigin(latitude=40.7128, longitude=-74.0060)


def _place(place_id, name="Bright Smiles Dental", **extra):
    place = {
        "place_id": place_id,
        "name": name,
        "vicinity": "1 Main St",
        "rating": 4.6,
        "types": ["dentist", "health"],
        "geometry": {"location": {"lat": 40.73, "lng": -73.99}},
    }
    place.update(extra)
    return place


def test_nearby_search_builds_location_query(patch_session):
    patch_session.responses.append(DummyResponse(payload={"status": "OK", "results": []}))

    payload = google_places.nearby_search(40.0, -74.0, 16093.4, "key")

    assert payload["status"] == "OK"
    url, params, timeout = patch_session.calls[0]
    assert "nearbysearch" in url
    assert params["location"] == "40.0,-74.0"
    assert params["type"] == "dentist"
    assert timeout == 10


def test_nearby_search_with_page_token_only_sends_token(patch_session):
    patch_session.responses.append(DummyResponse(payload={"status": "OK", "results": []}))

    google_places.nearby_search(40.0, -74.0, 100, "key", pagetoken="tok")

    _, params, _ = patch_session.calls[0]
    assert params == {"pagetoken": "tok", "key": "key"}


def test_error_status_carries_structured_status(patch_session):
    patch_session.responses.append(DummyResponse(payload={"status": "OVER_QUERY_LIMIT", "error_message": "limit"}))

    with pytest.raises(google_places.GooglePlacesError) as excinfo:
        google_places.place_details("pid", "key")

    assert excinfo.value.status == "OVER_QUERY_LIMIT"
    assert excinfo.value.rate_limited is True


def test_http_429_is_rate_limited(patch_session):
    patch_session.responses.append(DummyResponse(status_code=429))

    with pytest.raises(google_places.GooglePlacesError) as excinfo:
        google_places.nearby_search(40.0, -74.0, 100, "key")

    assert excinfo.value.http_status == 429
    assert excinfo.value.rate_limited is True


def test_provider_requires_api_key():
    with pytest.raises(RuntimeError):
        google_places.GooglePlacesProvider("")


def test_provider_search_merges_details_and_follows_pages(patch_session):
    patch_session.responses.extend([
        DummyResponse(payload={"status": "OK", "results": [_place("p1"), {"name": "No id"}], "next_page_token": "n"}),
        DummyResponse(payload={"status": "OK", "result": {"formatted_phone_number": "555-0100", "website": "https://a.test"}}),
        DummyResponse(payload={"status": "OK", "results": [_place("p2", name="Kids Dental Care")]}),
        DummyResponse(payload={"status": "OK", "result": {}}),
    ])
    provider = google_places.GooglePlacesProvider("key", max_pages=3)

    records = provider.search(ORIGIN, 10)

    assert [record["place_id"] for record in records] == ["p1", "p2"]
    assert records[0]["phone"] == "555-0100"
    assert records[0]["website"] == "https://a.test"
    assert records[0]["raw_type_label"] == "General Dentist"
    assert records[1]["raw_type_label"] == "Pediatric"
    _, first_params, _ = patch_session.calls[0]
    assert first_params["radius"] == pytest.approx(16093.4)


def test_provider_clamps_radius(patch_session):
    patch_session.responses.append(DummyResponse(payload={"status": "ZERO_RESULTS", "results": []}))
    provider = google_places.GooglePlacesProvider("key")

    assert provider.search(ORIGIN, 40) == []
    _, params, _ = patch_session.calls[0]
    assert params["radius"] == google_places.MAX_RADIUS_METERS


def test_provider_keeps_candidate_when_details_fail(patch_session):
    patch_session.responses.extend([
        DummyResponse(payload={"status": "OK", "results": [_place("p1")]}),
        DummyResponse(payload={"status": "INVALID_REQUEST"}),
    ])
    provider = google_places.GooglePlacesProvider("key")

    records = provider.search(ORIGIN, 5)

    assert records[0]["place_id"] == "p1"
    assert records[0]["phone"] is None


def test_provider_maps_quota_to_rate_limited_without_retry(patch_session):
    patch_session.responses.append(DummyResponse(payload={"status": "OVER_QUERY_LIMIT"}))
    provider = google_places.GooglePlacesProvider("key")

    with pytest.raises(RateLimited):
        provider.search(ORIGIN, 5)
    assert len(patch_session.calls) == 1


def test_provider_generic_failure_is_raised_after_one_call(patch_session):
    patch_session.responses.extend([
        DummyResponse(payload={"status": "UNKNOWN_ERROR"}),
        DummyResponse(payload={"status": "OK", "results": []}),
    ])
    provider = google_places.GooglePlacesProvider("key")

    with pytest.raises(ProviderError) as excinfo:
        provider.search(ORIGIN, 5)
    assert excinfo.value.status == "UNKNOWN_ERROR"
    assert len(patch_session.calls) == 1


def test_provider_connection_error_is_raised_after_one_call(patch_session):
    patch_session.responses.extend([
        requests.ConnectionError("down"),
        DummyResponse(payload={"status": "OK", "results": []}),
    ])
    provider = google_places.GooglePlacesProvider("key")

    with pytest.raises(ProviderError):
        provider.search(ORIGIN, 5)
    assert len(patch_session.calls) == 1


def test_geocoder_returns_coordinates(patch_session):
    patch_session.responses.append(
        DummyResponse(payload={"status": "OK", "results": [{"geometry": {"location": {"lat": 40.75, "lng": -73.99}}}]})
    )

    assert google_places.GoogleGeocoder("key").geocode_zip("10001") == (40.75, -73.99)
    _, params, _ = patch_session.calls[0]
    assert params["components"] == "postal_code:10001"


def test_geocoder_unknown_zip_is_provider_error(patch_session):
    patch_session.responses.append(DummyResponse(payload={"status": "ZERO_RESULTS", "results": []}))

    with pytest.raises(ProviderError):
        google_places.GoogleGeocoder("key").geocode_zip("00000")
