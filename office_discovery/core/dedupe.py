"""Flag discovered offices that already exist in the user's referral network."""

import logging
from typing import Dict, Iterable, List, Sequence, Tuple

from office_discovery.models import CandidateOffice, NetworkMember

logger = logging.getLogger(__name__)


def index_by_place_id(members: Iterable[NetworkMember]) -> Dict[str, NetworkMember]:
    index: Dict[str, NetworkMember] = {}
    for member in members:
        if member.google_place_id:
            index.setdefault(member.google_place_id, member)
    return index


def mark_network_membership(
    candidates: Sequence[CandidateOffice],
    members: Iterable[NetworkMember],
) -> List[CandidateOffice]:
    """Set ``already_in_network`` by exact place id match.

    Names are never compared: two offices sharing a name can still be
    distinct locations.
    """
    index = index_by_place_id(members)
    matched = 0
    for candidate in candidates:
        member = index.get(candidate.place_id) if candidate.place_id else None
        candidate.already_in_network = member is not None
        candidate.network_tier = member.tier if member is not None else None
        if member is not None:
            matched += 1
    logger.debug("Matched %d of %d candidates against %d network members", matched, len(candidates), len(index))
    return list(candidates)


def partition(candidates: Iterable[CandidateOffice]) -> Tuple[List[CandidateOffice], List[CandidateOffice]]:
    """Split into (new opportunities, already added or imported)."""
    new_offices: List[CandidateOffice] = []
    already_added: List[CandidateOffice] = []
    for candidate in candidates:
        if candidate.is_new_opportunity:
            new_offices.append(candidate)
        else:
            already_added.append(candidate)
    return new_offices, already_added
