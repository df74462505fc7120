"""Discovery workflow: locate, reuse or fetch, rank, dedupe and present nearby offices."""

import argparse
import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from office_discovery.core.backends import (
    PostgresClinicProfiles,
    PostgresDiscoveryCache,
    PostgresNetwork,
    PostgresSessionRecorder,
    PostgresUsage,
)
from office_discovery.core.cache import lookup_cached
from office_discovery.core.config import Settings, get_settings
from office_discovery.core.db import init_pool
from office_discovery.core.dedupe import mark_network_membership
from office_discovery.core.distance import SORT_KEYS, annotate_distances
from office_discovery.core.enrichment import enrich_tiers
from office_discovery.core.errors import MissingClinicLocation, ProviderError, RateLimited
from office_discovery.core.interfaces import (
    CachedResultsReader,
    ClinicProfileReader,
    Geocoder,
    NetworkReader,
    PlacesProvider,
    SessionRecorder,
    TierReader,
    UsageReader,
)
from office_discovery.core.locator import locate_origin
from office_discovery.core.presenter import Presentation, present, select_for_group
from office_discovery.core.session_store import SessionStore
from office_discovery.etl.transform import candidate_from_record
from office_discovery.models import (
    CandidateOffice,
    ClinicProfile,
    DiscoveryParameters,
    DiscoverySession,
    WeeklyUsage,
)
from office_discovery.vendors.google_places import GoogleGeocoder, GooglePlacesProvider

logger = logging.getLogger(__name__)


class SearchState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    CACHE_HIT = "cache_hit"
    AWAITING_EXTERNAL_CALL = "awaiting_external_call"
    RANKED = "ranked"
    PRESENTED = "presented"
    FAILED = "failed"


_TRANSITIONS = {
    SearchState.IDLE: {SearchState.SEARCHING},
    SearchState.SEARCHING: {SearchState.CACHE_HIT, SearchState.AWAITING_EXTERNAL_CALL, SearchState.FAILED},
    SearchState.CACHE_HIT: {SearchState.RANKED, SearchState.FAILED},
    SearchState.AWAITING_EXTERNAL_CALL: {SearchState.RANKED, SearchState.FAILED},
    SearchState.RANKED: {SearchState.PRESENTED, SearchState.FAILED},
    SearchState.PRESENTED: {SearchState.IDLE},
    SearchState.FAILED: {SearchState.IDLE},
}


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: str = "default"
    kind: Optional[str] = None


@dataclass
class DiscoveryOutcome:
    notification: Optional[Notification]
    presentation: Optional[Presentation] = None
    usage: Optional[WeeklyUsage] = None
    discarded: bool = False

    @property
    def ok(self) -> bool:
        return self.presentation is not None

    def to_dict(self) -> Dict[str, Any]:
        presentation = self.presentation
        return {
            "success": self.ok,
            "cached": bool(presentation and not presentation.session.external_call_made),
            "discarded": self.discarded,
            "notification": asdict(self.notification) if self.notification else None,
            "usage": asdict(self.usage) if self.usage else None,
            "presentation": presentation.to_dict() if presentation else None,
        }


@dataclass
class _SearchSlot:
    state: SearchState = SearchState.IDLE
    generation: int = 0


class _Superseded(Exception):
    """A newer search started for the same user."""


def _filter_by_type(candidates: Sequence[CandidateOffice], office_type: Optional[str]) -> List[CandidateOffice]:
    if not office_type:
        return list(candidates)
    wanted = office_type.casefold()
    return [candidate for candidate in candidates if candidate.office_type_label.casefold() == wanted]


def _exclude_own_clinic(candidates: Sequence[CandidateOffice], profile: ClinicProfile) -> List[CandidateOffice]:
    if not profile.google_place_id:
        return list(candidates)
    kept = [candidate for candidate in candidates if candidate.place_id != profile.google_place_id]
    if len(kept) != len(candidates):
        logger.info("Skipping own clinic %s", profile.google_place_id)
    return kept


@dataclass
class DiscoveryWorkflow:
    profiles: ClinicProfileReader
    geocoder: Geocoder
    cache: CachedResultsReader
    places: PlacesProvider
    network: NetworkReader
    tiers: TierReader
    recorder: SessionRecorder
    store: SessionStore
    usage: Optional[UsageReader] = None
    enrich_max_workers: int = 10
    _slots: Dict[str, _SearchSlot] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    # ---------- State machine ----------

    def state(self, user_id: str) -> SearchState:
        with self._lock:
            return self._slots.get(user_id, _SearchSlot()).state

    def _begin(self, user_id: str) -> int:
        with self._lock:
            slot = self._slots.setdefault(user_id, _SearchSlot())
            if slot.state not in (SearchState.IDLE, SearchState.PRESENTED, SearchState.FAILED):
                logger.info("Superseding in-flight search for user=%s", user_id)
            slot.generation += 1
            slot.state = SearchState.SEARCHING
            self.store.clear(user_id)
            return slot.generation

    def _advance(self, user_id: str, token: int, new_state: SearchState) -> None:
        with self._lock:
            slot = self._slots[user_id]
            if slot.generation != token:
                raise _Superseded()
            if new_state not in _TRANSITIONS[slot.state]:
                raise RuntimeError(f"invalid search transition {slot.state.value} -> {new_state.value}")
            slot.state = new_state

    def _ensure_current(self, user_id: str, token: int) -> None:
        with self._lock:
            if self._slots[user_id].generation != token:
                raise _Superseded()

    def _publish(self, user_id: str, token: int, session: DiscoverySession, offices: List[CandidateOffice]) -> None:
        with self._lock:
            slot = self._slots[user_id]
            if slot.generation != token:
                raise _Superseded()
            if SearchState.PRESENTED not in _TRANSITIONS[slot.state]:
                raise RuntimeError(f"invalid search transition {slot.state.value} -> presented")
            self.store.save(session, offices)
            slot.state = SearchState.PRESENTED

    def _fail(self, user_id: str, token: int) -> bool:
        with self._lock:
            slot = self._slots[user_id]
            if slot.generation != token:
                return False
            slot.state = SearchState.FAILED
            return True

    # ---------- Search ----------

    def search(
        self,
        user_id: str,
        params: DiscoveryParameters,
        *,
        sort_by: str = "distance",
        show_already_added: bool = False,
    ) -> DiscoveryOutcome:
        """Run one search; every failure comes back as a notification.

        Starting a search discards the previous session. If another search
        for the same user starts before this one finishes, this result is
        dropped and ``discarded`` is set on the outcome.
        """
        if sort_by not in SORT_KEYS and sort_by != "type":
            raise ValueError(f"unsupported sort key: {sort_by}")
        token = self._begin(user_id)
        try:
            return self._search(user_id, token, params, sort_by, show_already_added)
        except _Superseded:
            logger.info("Discarding superseded search result for user=%s", user_id)
            return DiscoveryOutcome(notification=None, discarded=True)
        except MissingClinicLocation as exc:
            notification = Notification("Setup Required", str(exc), "destructive", "missing_clinic_location")
            return self._failed(user_id, token, notification)
        except RateLimited as exc:
            logger.warning("Discovery rate limited for user=%s: %s", user_id, exc)
            notification = Notification("Rate Limited", str(exc), "destructive", "rate_limited")
            return self._failed(user_id, token, notification, usage=self._usage_or_none(user_id))
        except ProviderError as exc:
            logger.error("Places provider failed for user=%s: %s", user_id, exc)
            notification = Notification(
                "Error", "Failed to discover offices. Please try again.", "destructive", "provider_error"
            )
            return self._failed(user_id, token, notification)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Discovery failed for user=%s: %s", user_id, exc)
            notification = Notification(
                "Error", "An unexpected error occurred during discovery", "destructive", "unexpected_error"
            )
            return self._failed(user_id, token, notification)

    def _search(
        self,
        user_id: str,
        token: int,
        params: DiscoveryParameters,
        sort_by: str,
        show_already_added: bool,
    ) -> DiscoveryOutcome:
        profile, origin = locate_origin(user_id, params, self.profiles, self.geocoder)
        candidates = lookup_cached(
            self.cache,
            user_id=user_id,
            clinic_id=profile.clinic_id,
            origin=origin,
            params=params,
        )
        external_call_made = not candidates
        usage = None

        if candidates:
            self._advance(user_id, token, SearchState.CACHE_HIT)
        else:
            self._advance(user_id, token, SearchState.AWAITING_EXTERNAL_CALL)
            if self.usage is not None and self.usage.weekly_usage(user_id).exhausted:
                raise RateLimited("Weekly discovery limit reached. Try again later.")
            records = self.places.search(origin, params.distance, params.office_type_filter)
            candidates = [candidate_from_record(record) for record in records if record.get("place_id")]
            candidates = annotate_distances(origin, _exclude_own_clinic(candidates, profile))

        members = self.network.list_members(user_id)
        place_ids = {candidate.place_id for candidate in candidates}
        matched = [member for member in members if member.google_place_id in place_ids]
        enrich_tiers(matched, self.tiers, max_workers=self.enrich_max_workers)
        mark_network_membership(candidates, members)
        self._advance(user_id, token, SearchState.RANKED)

        session = DiscoverySession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            clinic_id=profile.clinic_id,
            search_distance=params.distance,
            search_lat=origin.latitude,
            search_lng=origin.longitude,
            office_type_filter=params.office_type_filter,
            zip_code_override=params.zip_code_override,
            results_count=len(candidates),
            external_call_made=external_call_made,
        )
        for candidate in candidates:
            candidate.discovery_session_id = candidate.discovery_session_id or session.id

        self._ensure_current(user_id, token)
        self.recorder.record(session, candidates)
        self._publish(user_id, token, session, candidates)
        if external_call_made and self.usage is not None:
            usage = self._usage_or_none(user_id)

        presentation = present(
            session,
            _filter_by_type(candidates, params.office_type_filter),
            sort_by=sort_by,
            show_already_added=show_already_added,
        )
        new_count = presentation.stats.new_count
        description = (
            f"Found {new_count} new offices nearby"
            if new_count > 0
            else f"Found {presentation.stats.total} offices matching your criteria"
        )
        logger.info(
            "Presented %d offices for user=%s (external_call=%s, new=%d)",
            presentation.stats.total,
            user_id,
            external_call_made,
            new_count,
        )
        return DiscoveryOutcome(
            notification=Notification("Offices Found", description),
            presentation=presentation,
            usage=usage,
        )

    def _failed(
        self,
        user_id: str,
        token: int,
        notification: Notification,
        usage: Optional[WeeklyUsage] = None,
    ) -> DiscoveryOutcome:
        if not self._fail(user_id, token):
            logger.info("Discarding superseded search failure for user=%s", user_id)
            return DiscoveryOutcome(notification=None, discarded=True)
        return DiscoveryOutcome(notification=notification, usage=usage)

    def _usage_or_none(self, user_id: str) -> Optional[WeeklyUsage]:
        if self.usage is None:
            return None
        try:
            return self.usage.weekly_usage(user_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unable to refresh weekly usage for user=%s: %s", user_id, exc)
            return None

    # ---------- Session actions ----------

    def resume(
        self,
        user_id: str,
        *,
        sort_by: str = "distance",
        show_already_added: bool = False,
    ) -> Optional[Presentation]:
        """Rebuild the last presented session from the snapshot, if any."""
        session, offices = self.store.load(user_id)
        if session is None:
            return None
        return present(
            session,
            _filter_by_type(offices, session.office_type_filter),
            sort_by=sort_by,
            show_already_added=show_already_added,
        )

    def start_over(self, user_id: str) -> None:
        with self._lock:
            slot = self._slots.setdefault(user_id, _SearchSlot())
            slot.generation += 1
            slot.state = SearchState.IDLE
            self.store.clear(user_id)
        self.recorder.clear(user_id)

    def mark_imported(self, user_id: str, place_id: str) -> Optional[CandidateOffice]:
        _, offices = self.store.load(user_id)
        if not any(office.place_id == place_id for office in offices):
            return None
        self.recorder.mark_imported(user_id, place_id)
        return self.store.update_office(user_id, place_id, imported=True)

    def save_group(self, user_id: str, name: str, selected_ids: Sequence[str]) -> str:
        if not name or not name.strip():
            raise ValueError("group name is required")
        session, offices = self.store.load(user_id)
        if session is None:
            raise ValueError("no active discovery session")
        selected = select_for_group(offices, selected_ids)
        return self.recorder.create_group(user_id, name.strip(), [office.place_id for office in selected])


def build_workflow(settings: Optional[Settings] = None) -> DiscoveryWorkflow:
    """Wire the workflow to Postgres and the Google Maps APIs."""
    settings = settings or get_settings()
    network = PostgresNetwork()
    return DiscoveryWorkflow(
        profiles=PostgresClinicProfiles(),
        geocoder=GoogleGeocoder(settings.google_api_key),
        cache=PostgresDiscoveryCache(),
        places=GooglePlacesProvider(settings.google_api_key, max_pages=settings.max_pages),
        network=network,
        tiers=network,
        recorder=PostgresSessionRecorder(),
        store=SessionStore(settings.session_store_path),
        usage=PostgresUsage(settings.weekly_discovery_limit),
        enrich_max_workers=settings.enrich_max_workers,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discover dental offices near a clinic")
    parser.add_argument("--user", dest="user_id", required=True, help="Authenticated user id")
    parser.add_argument(
        "--distance",
        dest="distance",
        type=float,
        default=get_settings().default_search_distance,
        help="Search radius in miles",
    )
    parser.add_argument("--zip", dest="zip_code", help="ZIP code to search from instead of the clinic")
    parser.add_argument("--type", dest="office_type", help="Office type filter, e.g. Pediatric")
    parser.add_argument("--sort", dest="sort_by", choices=SORT_KEYS, default="distance", help="Sort key")
    parser.add_argument("--show-added", dest="show_added", action="store_true", help="Include offices already added")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    try:
        params = DiscoveryParameters(
            distance=args.distance,
            zip_code_override=args.zip_code,
            office_type_filter=args.office_type,
        )
    except ValueError as exc:
        parser.error(str(exc))

    init_pool()
    workflow = build_workflow()
    outcome = workflow.search(args.user_id, params, sort_by=args.sort_by, show_already_added=args.show_added)
    print(json.dumps(outcome.to_dict(), indent=2, default=str))
    if not outcome.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
