"""Reuse previously fetched offices before paying for another places lookup."""

import logging
from typing import List

from office_discovery.core.distance import annotate_distances
from office_discovery.core.interfaces import CachedResultsReader
from office_discovery.etl.transform import candidate_from_row
from office_discovery.models import CandidateOffice, DiscoveryParameters, SearchOrigin

logger = logging.getLogger(__name__)


def lookup_cached(
    reader: CachedResultsReader,
    *,
    user_id: str,
    clinic_id: str,
    origin: SearchOrigin,
    params: DiscoveryParameters,
) -> List[CandidateOffice]:
    """Return cached offices for an exact radius match, or an empty list on a miss.

    A cached 25 mile search never answers a 10 mile request. Distances are
    recomputed from ``origin`` because the clinic may have moved since the
    rows were fetched.
    """
    rows = reader.read_cached(user_id, clinic_id, params.distance, params.zip_code_override)
    exact = [row for row in rows if _same_radius(row.get("search_distance"), params.distance)]
    if len(exact) != len(rows):
        logger.debug("Dropped %d cached rows with a different radius", len(rows) - len(exact))

    if not exact:
        logger.info("Cache miss for user=%s clinic=%s distance=%s", user_id, clinic_id, params.distance)
        return []

    logger.info(
        "Cache hit for user=%s clinic=%s distance=%s: %d offices",
        user_id,
        clinic_id,
        params.distance,
        len(exact),
    )
    return annotate_distances(origin, [candidate_from_row(row) for row in exact])


def _same_radius(recorded, requested: float) -> bool:
    if recorded is None:
        return False
    try:
        return float(recorded) == float(requested)
    except (TypeError, ValueError):
        return False
