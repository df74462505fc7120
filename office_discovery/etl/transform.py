"""Utilities for transforming Google Places responses into offices and database rows."""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from office_discovery.models import CandidateOffice, DiscoverySession

logger = logging.getLogger(__name__)

PEDIATRIC = "Pediatric"
MULTI_SPECIALTY = "Multi-specialty"
GENERAL_DENTIST = "General Dentist"

_PEDIATRIC_WORDS = ("PEDIATRIC", "CHILDREN", "KIDS", "CHILD")
_SPECIALTY_WORDS = (
    "ENDODONTIC",
    "ORAL SURGERY",
    "ORTHODONTIC",
    "PERIODONTIC",
    "PROSTHODONTIC",
    "MAXILLOFACIAL",
)
_SPECIALTY_TYPES = {"orthodontist", "oral_surgeon", "periodontist"}


def infer_office_type(name: Optional[str], types: Iterable[str]) -> str:
    name_upper = (name or "").upper()
    if any(word in name_upper for word in _PEDIATRIC_WORDS):
        return PEDIATRIC
    if any(word in name_upper for word in _SPECIALTY_WORDS):
        return MULTI_SPECIALTY
    if _SPECIALTY_TYPES.intersection(types or []):
        return MULTI_SPECIALTY
    return GENERAL_DENTIST


def to_office_record(place: Dict[str, Any], details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge a nearby-search result with its details lookup into a raw office record."""
    details = details or {}
    location = place.get("geometry", {}).get("location", {})
    name = _strip_or_none(place.get("name"))
    return {
        "place_id": place.get("place_id"),
        "name": name,
        "address": _strip_or_none(place.get("vicinity") or place.get("formatted_address")),
        "phone": _strip_or_none(details.get("formatted_phone_number")),
        "website": _strip_or_none(details.get("website")),
        "rating": _safe_float(place.get("rating")),
        "lat": _safe_float(location.get("lat")),
        "lng": _safe_float(location.get("lng")),
        "raw_type_label": infer_office_type(name, place.get("types", [])),
    }


def candidate_from_record(record: Dict[str, Any]) -> CandidateOffice:
    return CandidateOffice(
        place_id=record["place_id"],
        name=record.get("name") or "",
        address=record.get("address"),
        phone=record.get("phone"),
        website=record.get("website"),
        rating=_safe_float(record.get("rating")),
        latitude=_safe_float(record.get("lat")),
        longitude=_safe_float(record.get("lng")),
        office_type_label=record.get("raw_type_label") or GENERAL_DENTIST,
    )


def candidate_from_row(row: Dict[str, Any]) -> CandidateOffice:
    """Build a candidate from a stored ``discovered_offices`` row."""
    latitude = row.get("lat", row.get("latitude"))
    longitude = row.get("lng", row.get("longitude"))
    session_id = row.get("discovery_session_id")
    fetched_at = row.get("fetched_at")
    if isinstance(fetched_at, str):
        fetched_at = datetime.fromisoformat(fetched_at)

    return CandidateOffice(
        id=str(row["id"]) if row.get("id") is not None else None,
        place_id=row["place_id"],
        name=row.get("name") or "",
        address=row.get("address"),
        phone=row.get("phone"),
        website=row.get("website"),
        rating=_safe_float(row.get("rating")),
        latitude=_safe_float(latitude),
        longitude=_safe_float(longitude),
        office_type_label=row.get("office_type") or GENERAL_DENTIST,
        imported=bool(row.get("imported")),
        discovery_session_id=str(session_id) if session_id is not None else None,
        fetched_at=fetched_at,
    )


def to_discovered_row(candidate: CandidateOffice, session: DiscoverySession) -> Dict[str, Any]:
    return {
        "place_id": candidate.place_id,
        "name": candidate.name,
        "address": candidate.address,
        "phone": candidate.phone,
        "website": candidate.website,
        "rating": candidate.rating,
        "lat": candidate.latitude,
        "lng": candidate.longitude,
        "office_type": candidate.office_type_label,
        "discovered_by": session.user_id,
        "clinic_id": session.clinic_id,
        "source": "google",
        "search_distance": session.search_distance,
        "search_location_lat": session.search_lat,
        "search_location_lng": session.search_lng,
        "search_zip_code": session.zip_code_override,
        "discovery_session_id": session.id,
    }


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None
