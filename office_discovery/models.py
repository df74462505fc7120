"""Core data models shared by the office discovery workflow."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class SearchOrigin:
    """Latitude/longitude the distances of one search are measured from."""

    latitude: float
    longitude: float
    zip_code: Optional[str] = None

    @property
    def from_zip_override(self) -> bool:
        return self.zip_code is not None


@dataclass(frozen=True, slots=True)
class DiscoveryParameters:
    distance: float
    zip_code_override: Optional[str] = None
    office_type_filter: Optional[str] = None

    def __post_init__(self) -> None:
        try:
            distance = float(self.distance)
        except (TypeError, ValueError):
            raise ValueError("distance must be numeric") from None
        if not math.isfinite(distance) or distance <= 0:
            raise ValueError("distance must be a positive number of miles")
        object.__setattr__(self, "distance", distance)

        zip_code = (self.zip_code_override or "").strip() or None
        object.__setattr__(self, "zip_code_override", zip_code)

        office_type = (self.office_type_filter or "").strip()
        if office_type.lower() == "all":
            office_type = ""
        object.__setattr__(self, "office_type_filter", office_type or None)


@dataclass(slots=True)
class CandidateOffice:
    """One externally discovered business location.

    ``distance`` is derived from the current search origin and is never
    persisted with the row.
    """

    place_id: str
    name: str
    id: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    office_type_label: str = "General Dentist"
    already_in_network: bool = False
    imported: bool = False
    distance: Optional[float] = None
    network_tier: Optional[str] = None
    discovery_session_id: Optional[str] = None
    fetched_at: Optional[datetime] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def is_new_opportunity(self) -> bool:
        return not (self.already_in_network or self.imported)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.fetched_at is not None:
            data["fetched_at"] = self.fetched_at.isoformat()
        if self.distance is None:
            data.pop("distance")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateOffice":
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        fetched_at = values.get("fetched_at")
        if isinstance(fetched_at, str):
            values["fetched_at"] = datetime.fromisoformat(fetched_at)
        return cls(**values)


@dataclass(slots=True)
class DiscoverySession:
    """One complete search execution."""

    id: str
    user_id: str
    clinic_id: str
    search_distance: float
    search_lat: float
    search_lng: float
    office_type_filter: Optional[str] = None
    zip_code_override: Optional[str] = None
    results_count: int = 0
    external_call_made: bool = False
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoverySession":
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        created_at = values.get("created_at")
        if isinstance(created_at, str):
            values["created_at"] = datetime.fromisoformat(created_at)
        return cls(**values)


@dataclass(frozen=True, slots=True)
class ClinicProfile:
    clinic_id: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    name: Optional[str] = None
    google_place_id: Optional[str] = None


@dataclass(slots=True)
class NetworkMember:
    """An office the user already tracks as a referral source."""

    id: str
    name: str
    google_place_id: Optional[str] = None
    tier: Optional[str] = None


@dataclass(frozen=True, slots=True)
class WeeklyUsage:
    used: int
    limit: int

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit
