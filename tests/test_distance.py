import pytest

from office_discovery.core import distance
from office_discovery.models import CandidateOffice, SearchOrigin

NYC = SearchOrigin(latitude=40.7128, longitude=-74.0060)


def _office(place_id, lat=None, lng=None, rating=None, name=None, office_type="General Dentist"):
    return CandidateOffice(
        place_id=place_id,
        name=name or place_id,
        latitude=lat,
        longitude=lng,
        rating=rating,
        office_type_label=office_type,
    )


def test_haversine_known_distance():
    miles = distance.haversine_miles(40.7128, -74.0060, 40.7306, -73.9352)
    assert miles == pytest.approx(3.9, abs=0.05)


def test_haversine_is_symmetric_and_non_negative():
    points = [(40.7128, -74.0060), (34.0522, -118.2437), (-33.8688, 151.2093), (40.7306, -73.9352)]
    for lat1, lng1 in points:
        for lat2, lng2 in points:
            forward = distance.haversine_miles(lat1, lng1, lat2, lng2)
            backward = distance.haversine_miles(lat2, lng2, lat1, lng1)
            assert forward >= 0
            assert forward == pytest.approx(backward)


def test_haversine_same_point_is_zero():
    assert distance.haversine_miles(40.0, -74.0, 40.0, -74.0) == 0


def test_annotate_distances_leaves_missing_coordinates_unset():
    near = _office("near", 40.7306, -73.9352)
    unknown = _office("unknown")

    annotated = distance.annotate_distances(NYC, [near, unknown])

    assert [office.place_id for office in annotated] == ["near", "unknown"]
    assert near.distance == pytest.approx(3.9, abs=0.05)
    assert unknown.distance is None


def test_sort_by_distance_puts_unlocated_last():
    offices = distance.annotate_distances(
        NYC,
        [_office("none"), _office("far", 40.80, -73.90), _office("near", 40.715, -74.0)],
    )

    ordered = distance.sort_candidates(offices, "distance")

    assert [office.place_id for office in ordered] == ["near", "far", "none"]


def test_sort_by_rating_descending_with_unrated_last():
    offices = [
        _office("a", rating=None),
        _office("b", rating=4.1),
        _office("c", rating=4.9),
        _office("d", rating=None),
        _office("e", rating=4.1),
    ]

    ordered = distance.sort_candidates(offices, "rating")

    assert [office.place_id for office in ordered] == ["c", "b", "e", "a", "d"]
    ratings = [office.rating for office in ordered if office.rating is not None]
    assert ratings == sorted(ratings, reverse=True)


def test_sort_by_name_and_type_is_stable():
    offices = [
        _office("1", name="beta", office_type="Pediatric"),
        _office("2", name="Alpha", office_type="General Dentist"),
        _office("3", name="alpha", office_type="Pediatric"),
    ]

    assert [o.place_id for o in distance.sort_candidates(offices, "name")] == ["2", "3", "1"]
    assert [o.place_id for o in distance.sort_candidates(offices, "type")] == ["2", "1", "3"]


def test_sort_rejects_unknown_key():
    with pytest.raises(ValueError):
        distance.sort_candidates([], "phone")
