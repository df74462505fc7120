"""Concurrent tier lookups for the user's existing network."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence

from office_discovery.core.errors import PartialEnrichmentFailure
from office_discovery.core.interfaces import TierReader
from office_discovery.models import NetworkMember

logger = logging.getLogger(__name__)

DEFAULT_TIER = "Cold"


def _tier_or_default(reader: TierReader, member: NetworkMember) -> str:
    try:
        return reader.get_tier(member.id) or DEFAULT_TIER
    except Exception as exc:  # noqa: BLE001
        failure = PartialEnrichmentFailure(member.id, exc)
        logger.warning("%s; defaulting to %s", failure, DEFAULT_TIER)
        return DEFAULT_TIER


def enrich_tiers(
    members: Sequence[NetworkMember],
    reader: TierReader,
    max_workers: int = 10,
) -> List[NetworkMember]:
    """Attach a tier to every member.

    Lookups are independent reads issued in parallel; one failing lookup
    leaves that member on the default tier without affecting the others.
    """
    if not members:
        return []
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(members)))) as executor:
        tiers = list(executor.map(lambda member: _tier_or_default(reader, member), members))
    for member, tier in zip(members, tiers):
        member.tier = tier
    return list(members)
