"""Capabilities the discovery workflow depends on.

Each external interaction is injected so the workflow can run against fakes.
Concrete implementations live in ``backends`` (Postgres) and
``vendors.google_places`` (Google Maps web APIs).
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from office_discovery.models import (
    CandidateOffice,
    ClinicProfile,
    DiscoverySession,
    NetworkMember,
    SearchOrigin,
    WeeklyUsage,
)


class ClinicProfileReader(Protocol):
    def get_clinic_profile(self, user_id: str) -> Optional[ClinicProfile]:
        ...


class Geocoder(Protocol):
    def geocode_zip(self, zip_code: str) -> Tuple[float, float]:
        ...


class CachedResultsReader(Protocol):
    def read_cached(
        self,
        user_id: str,
        clinic_id: str,
        search_distance: float,
        zip_code_override: Optional[str],
    ) -> List[Dict[str, Any]]:
        """Return stored ``discovered_offices`` rows, newest first."""
        ...


class PlacesProvider(Protocol):
    def search(
        self,
        origin: SearchOrigin,
        distance: float,
        office_type_filter: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return raw office records: place_id, name, address, phone, website,
        rating, lat, lng and raw_type_label."""
        ...


class NetworkReader(Protocol):
    def list_members(self, user_id: str) -> List[NetworkMember]:
        ...


class TierReader(Protocol):
    def get_tier(self, member_id: str) -> Optional[str]:
        ...


class SessionRecorder(Protocol):
    def record(self, session: DiscoverySession, offices: Sequence[CandidateOffice]) -> None:
        ...

    def mark_imported(self, user_id: str, place_id: str) -> None:
        ...

    def clear(self, user_id: str) -> None:
        ...

    def create_group(self, user_id: str, name: str, place_ids: Sequence[str]) -> str:
        ...


class UsageReader(Protocol):
    def weekly_usage(self, user_id: str) -> WeeklyUsage:
        ...
