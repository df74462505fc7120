"""Resolve the origin a discovery search is measured from."""

import logging
from typing import Tuple

from office_discovery.core.errors import MissingClinicLocation
from office_discovery.core.interfaces import ClinicProfileReader, Geocoder
from office_discovery.models import ClinicProfile, DiscoveryParameters, SearchOrigin

logger = logging.getLogger(__name__)

SETUP_PROMPT = "Please set up your clinic information in Settings first."


def locate_origin(
    user_id: str,
    params: DiscoveryParameters,
    profiles: ClinicProfileReader,
    geocoder: Geocoder,
) -> Tuple[ClinicProfile, SearchOrigin]:
    """Return the user's clinic and the origin for this search.

    A ZIP override is geocoded and used for this search only. Otherwise the
    stored clinic coordinates are used.
    """
    profile = profiles.get_clinic_profile(user_id)
    if profile is None:
        raise MissingClinicLocation(SETUP_PROMPT)

    if params.zip_code_override:
        lat, lng = geocoder.geocode_zip(params.zip_code_override)
        logger.info("Using ZIP %s override at %s,%s", params.zip_code_override, lat, lng)
        return profile, SearchOrigin(latitude=lat, longitude=lng, zip_code=params.zip_code_override)

    if profile.latitude is None or profile.longitude is None:
        raise MissingClinicLocation(SETUP_PROMPT)
    return profile, SearchOrigin(latitude=float(profile.latitude), longitude=float(profile.longitude))
