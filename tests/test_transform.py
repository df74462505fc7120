from office_discovery.etl import transform
from office_discovery.models import CandidateOffice, DiscoverySession


def test_infer_office_type():
    assert transform.infer_office_type("Happy Kids Dentistry", []) == "Pediatric"
    assert transform.infer_office_type("Downtown Orthodontics", []) == "Multi-specialty"
    assert transform.infer_office_type("Smile Studio", ["periodontist"]) == "Multi-specialty"
    assert transform.infer_office_type("Smile Studio", ["dentist"]) == "General Dentist"
    assert transform.infer_office_type(None, None) == "General Dentist"


def test_to_office_record_merges_details():
    place = {
        "place_id": "pid",
        "name": " Acme Dental ",
        "vicinity": "Main St",
        "rating": "4.5",
        "types": ["dentist"],
        "geometry": {"location": {"lat": 40.1, "lng": -74.2}},
    }

    record = transform.to_office_record(place, {"formatted_phone_number": "123", "website": ""})

    assert record["name"] == "Acme Dental"
    assert record["address"] == "Main St"
    assert record["phone"] == "123"
    assert record["website"] is None
    assert record["rating"] == 4.5
    assert record["lat"] == 40.1
    assert record["raw_type_label"] == "General Dentist"


def test_record_without_geometry_has_no_coordinates():
    record = transform.to_office_record({"place_id": "pid", "name": "Acme"})
    candidate = transform.candidate_from_record(record)

    assert candidate.latitude is None
    assert candidate.has_coordinates is False
    assert candidate.office_type_label == "General Dentist"


def test_candidate_from_row_reads_stored_columns():
    row = {
        "id": 7,
        "place_id": "pid",
        "name": "Acme",
        "rating": None,
        "lat": "40.5",
        "lng": "-74.5",
        "office_type": "Pediatric",
        "imported": True,
        "discovery_session_id": "s1",
        "fetched_at": "2024-05-01T12:00:00+00:00",
    }

    candidate = transform.candidate_from_row(row)

    assert candidate.id == "7"
    assert candidate.latitude == 40.5
    assert candidate.imported is True
    assert candidate.office_type_label == "Pediatric"
    assert candidate.fetched_at.year == 2024
    assert candidate.distance is None


def test_to_discovered_row_records_search_context():
    session = DiscoverySession(
        id="s1",
        user_id="u1",
        clinic_id="c1",
        search_distance=10.0,
        search_lat=40.0,
        search_lng=-74.0,
        zip_code_override="10001",
    )
    candidate = CandidateOffice(place_id="pid", name="Acme", latitude=40.1, longitude=-74.1, distance=3.2)

    row = transform.to_discovered_row(candidate, session)

    assert row["discovered_by"] == "u1"
    assert row["search_distance"] == 10.0
    assert row["search_zip_code"] == "10001"
    assert row["discovery_session_id"] == "s1"
    assert "distance" not in row
