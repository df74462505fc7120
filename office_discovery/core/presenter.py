"""Package ranked, deduplicated offices for display."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from office_discovery.core.dedupe import partition
from office_discovery.core.distance import sort_candidates
from office_discovery.models import CandidateOffice, DiscoverySession

HIGH_RATING = 4.0
RECOMMEND_BELOW_NEW_COUNT = 10
RECOMMEND_RADIUS_CAP = 25
RECOMMEND_RADIUS_STEP = 10


@dataclass(frozen=True)
class SessionStats:
    total: int
    new_count: int
    already_added_count: int
    high_rated: int
    with_website: int
    avg_rating: Optional[float]


@dataclass(frozen=True)
class Recommendation:
    message: str
    action: str
    suggested_distance: Optional[float] = None


@dataclass
class Presentation:
    session: DiscoverySession
    offices: List[CandidateOffice]
    stats: SessionStats
    recommendations: List[Recommendation]
    sort_by: str = "distance"
    show_already_added: bool = False
    parameters_text: str = ""
    new_opportunities: List[CandidateOffice] = field(default_factory=list)
    already_in_network: List[CandidateOffice] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "offices": [office.to_dict() for office in self.offices],
            "stats": asdict(self.stats),
            "recommendations": [asdict(rec) for rec in self.recommendations],
            "sort_by": self.sort_by,
            "show_already_added": self.show_already_added,
            "parameters_text": self.parameters_text,
        }


def summarize(candidates: Sequence[CandidateOffice]) -> SessionStats:
    new_offices, already_added = partition(candidates)
    ratings = [office.rating for office in new_offices if office.rating is not None]
    return SessionStats(
        total=len(candidates),
        new_count=len(new_offices),
        already_added_count=len(already_added),
        high_rated=sum(1 for office in new_offices if (office.rating or 0) >= HIGH_RATING),
        with_website=sum(1 for office in new_offices if office.website),
        avg_rating=round(sum(ratings) / len(ratings), 2) if ratings else None,
    )


def recommend(stats: SessionStats, search_distance: float) -> List[Recommendation]:
    """Advisory hints only; nothing here triggers another search."""
    recommendations = []
    if stats.new_count < RECOMMEND_BELOW_NEW_COUNT and search_distance < RECOMMEND_RADIUS_CAP:
        suggested = search_distance + RECOMMEND_RADIUS_STEP
        recommendations.append(
            Recommendation(
                message=f"Try expanding radius to {_format_number(suggested)} miles",
                action="expand_radius",
                suggested_distance=suggested,
            )
        )
    if stats.new_count == 0 and stats.already_added_count > 0:
        recommendations.append(
            Recommendation(message="All discovered offices are already in your network", action="show_added")
        )
    return recommendations


def search_parameters_text(session: DiscoverySession) -> str:
    parts = [
        f"{_format_number(session.search_distance)} miles",
        f"ZIP {session.zip_code_override}" if session.zip_code_override else "from clinic",
        session.office_type_filter or "All Types",
        f"{session.created_at:%b} {session.created_at.day}, {session.created_at.year}",
    ]
    return " • ".join(parts)


def present(
    session: DiscoverySession,
    candidates: Sequence[CandidateOffice],
    *,
    sort_by: str = "distance",
    show_already_added: bool = False,
) -> Presentation:
    """Build the view of a session.

    Offices already in the network stay in the result set and are only shown
    when ``show_already_added`` is set.
    """
    new_offices, already_added = partition(candidates)
    stats = summarize(candidates)
    visible = list(candidates) if show_already_added else new_offices
    return Presentation(
        session=session,
        offices=sort_candidates(visible, sort_by),
        stats=stats,
        recommendations=recommend(stats, session.search_distance),
        sort_by=sort_by,
        show_already_added=show_already_added,
        parameters_text=search_parameters_text(session),
        new_opportunities=new_offices,
        already_in_network=already_added,
    )


def select_for_group(candidates: Sequence[CandidateOffice], selected_ids: Sequence[str]) -> List[CandidateOffice]:
    """Resolve the offices a user picked for a group, by id or place id."""
    by_key: Dict[str, CandidateOffice] = {}
    for office in candidates:
        by_key[office.place_id] = office
        if office.id:
            by_key[office.id] = office

    unknown = [key for key in selected_ids if key not in by_key]
    if unknown:
        raise ValueError(f"offices not in the current session: {', '.join(unknown)}")

    selected: List[CandidateOffice] = []
    for key in selected_ids:
        office = by_key[key]
        if office not in selected:
            selected.append(office)
    return selected


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
