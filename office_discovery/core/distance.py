"""Great-circle distances and result ordering for discovered offices."""

import math
from typing import Iterable, List, Sequence

from office_discovery.models import CandidateOffice, SearchOrigin

EARTH_RADIUS_MILES = 3959.0
SORT_KEYS = ("distance", "rating", "name", "office_type_label")


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in miles between two latitude/longitude points."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def annotate_distances(origin: SearchOrigin, candidates: Iterable[CandidateOffice]) -> List[CandidateOffice]:
    """Attach ``distance`` (miles, one decimal) to every candidate with coordinates.

    Candidates without coordinates get ``None``; order is left untouched.
    """
    annotated = []
    for candidate in candidates:
        if candidate.has_coordinates:
            miles = haversine_miles(origin.latitude, origin.longitude, candidate.latitude, candidate.longitude)
            candidate.distance = round(miles, 1)
        else:
            candidate.distance = None
        annotated.append(candidate)
    return annotated


def sort_candidates(candidates: Sequence[CandidateOffice], sort_by: str = "distance") -> List[CandidateOffice]:
    """Return a stably sorted copy.

    distance, name and office_type_label sort ascending, rating descending.
    Entries missing the sort value always go last in upstream order.
    """
    if sort_by == "type":
        sort_by = "office_type_label"
    if sort_by not in SORT_KEYS:
        raise ValueError(f"unsupported sort key: {sort_by}")

    if sort_by in ("name", "office_type_label"):
        return sorted(candidates, key=lambda c: (getattr(c, sort_by) or "").casefold())

    present = [c for c in candidates if getattr(c, sort_by) is not None]
    missing = [c for c in candidates if getattr(c, sort_by) is None]
    if sort_by == "rating":
        ordered = sorted(present, key=lambda c: -c.rating)
    else:
        ordered = sorted(present, key=lambda c: c.distance)
    return ordered + missing
