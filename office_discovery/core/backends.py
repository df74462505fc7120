"""Postgres-backed implementations of the discovery capabilities."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from office_discovery.core import db
from office_discovery.etl.transform import to_discovered_row
from office_discovery.models import (
    CandidateOffice,
    ClinicProfile,
    DiscoverySession,
    NetworkMember,
    WeeklyUsage,
)

logger = logging.getLogger(__name__)


class PostgresClinicProfiles:
    def get_clinic_profile(self, user_id: str) -> Optional[ClinicProfile]:
        row = db.fetch_clinic_profile(user_id)
        if not row or not row.get("clinic_id"):
            return None
        return ClinicProfile(
            clinic_id=str(row["clinic_id"]),
            latitude=row.get("latitude"),
            longitude=row.get("longitude"),
            name=row.get("name"),
            google_place_id=row.get("google_place_id"),
        )


class PostgresDiscoveryCache:
    def read_cached(
        self,
        user_id: str,
        clinic_id: str,
        search_distance: float,
        zip_code_override: Optional[str],
    ) -> List[Dict[str, Any]]:
        return db.fetch_cached_offices(user_id, clinic_id, search_distance, zip_code_override)


class PostgresNetwork:
    def list_members(self, user_id: str) -> List[NetworkMember]:
        return [
            NetworkMember(id=str(row["id"]), name=row.get("name") or "", google_place_id=row.get("google_place_id"))
            for row in db.fetch_network_sources(user_id)
        ]

    def get_tier(self, member_id: str) -> Optional[str]:
        return db.calculate_source_score(member_id)


class PostgresSessionRecorder:
    def record(self, session: DiscoverySession, offices: Sequence[CandidateOffice]) -> None:
        payload = session.to_dict()
        payload["api_call_made"] = payload.pop("external_call_made")
        db.insert_discovery_session(payload)
        if session.external_call_made:
            db.upsert_discovered_offices([to_discovered_row(office, session) for office in offices])

    def mark_imported(self, user_id: str, place_id: str) -> None:
        if not db.mark_office_imported(user_id, place_id):
            logger.warning("No discovered office %s for user=%s to mark imported", place_id, user_id)

    def clear(self, user_id: str) -> None:
        db.delete_discovered_offices(user_id)

    def create_group(self, user_id: str, name: str, place_ids: Sequence[str]) -> str:
        return db.insert_office_group(user_id, name, place_ids)


class PostgresUsage:
    def __init__(self, weekly_limit: int) -> None:
        self.weekly_limit = weekly_limit

    def weekly_usage(self, user_id: str) -> WeeklyUsage:
        since = datetime.now(timezone.utc) - timedelta(days=7)
        return WeeklyUsage(used=db.count_api_calls_since(user_id, since), limit=self.weekly_limit)
