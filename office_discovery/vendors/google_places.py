"""Client utilities for the Google Places and Geocoding APIs."""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from office_discovery.core.errors import ProviderError, RateLimited
from office_discovery.etl.transform import to_office_record
from office_discovery.models import SearchOrigin

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"
_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

METERS_PER_MILE = 1609.34
MAX_RADIUS_METERS = 50000
PAGE_TOKEN_DELAY_SECONDS = 2.5
_RATE_LIMIT_STATUSES = {"OVER_QUERY_LIMIT", "RESOURCE_EXHAUSTED"}


class GooglePlacesError(RuntimeError):
    """Raised when a Google Maps API returns a non-successful response."""

    def __init__(self, message: str, status: Optional[str] = None, http_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status
        self.http_status = http_status

    @property
    def rate_limited(self) -> bool:
        return self.http_status == 429 or self.status in _RATE_LIMIT_STATUSES


def _get(url: str, params: Dict[str, Any]) -> Dict[str, Any]:
    response = _SESSION.get(url, params=params, timeout=10)
    if response.status_code == 429:
        raise GooglePlacesError("Google Maps quota exceeded", status="OVER_QUERY_LIMIT", http_status=429)
    response.raise_for_status()
    payload = response.json()
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        logger.error("%s failed: status=%s, error_message=%s", url, status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status, status=status)
    return payload


def nearby_search(
    lat: float,
    lng: float,
    radius_meters: float,
    api_key: str,
    place_type: str = "dentist",
    pagetoken: Optional[str] = None,
) -> Dict[str, Any]:
    if pagetoken:
        params = {"pagetoken": pagetoken, "key": api_key}
    else:
        params = {
            "location": f"{lat},{lng}",
            "radius": radius_meters,
            "type": place_type,
            "key": api_key,
        }
    return _get(f"{_BASE_URL}/nearbysearch/json", params)


def place_details(place_id: str, api_key: str) -> Dict[str, Any]:
    params = {"place_id": place_id, "key": api_key, "fields": "formatted_phone_number,website"}
    payload = _get(f"{_BASE_URL}/details/json", params)
    return payload.get("result", {})


def geocode(address: str, api_key: str, components: Optional[str] = None) -> List[Dict[str, Any]]:
    params = {"address": address, "key": api_key}
    if components:
        params["components"] = components
    return _get(_GEOCODE_URL, params).get("results", [])


def _translate(exc: GooglePlacesError) -> Exception:
    if exc.rate_limited:
        return RateLimited("You've reached the discovery limit. Try again later.")
    return ProviderError(str(exc), status=exc.status)


class GooglePlacesProvider:
    """Nearby dentist lookup returning raw office records."""

    def __init__(self, api_key: str, max_pages: int = 3, place_type: str = "dentist") -> None:
        if not api_key:
            raise RuntimeError("GOOGLE_API_KEY is required")
        self.api_key = api_key
        self.max_pages = max_pages
        self.place_type = place_type

    def search(
        self,
        origin: SearchOrigin,
        distance: float,
        office_type_filter: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        # The filter is applied when presenting; stored rows cover every type.
        radius = distance * METERS_PER_MILE
        if radius > MAX_RADIUS_METERS:
            logger.info("Clamping radius %.0fm to %dm", radius, MAX_RADIUS_METERS)
            radius = MAX_RADIUS_METERS

        logger.info(
            "Searching for %s within %s miles (%.0fm) of %s,%s filter=%s",
            self.place_type,
            distance,
            radius,
            origin.latitude,
            origin.longitude,
            office_type_filter,
        )

        records: List[Dict[str, Any]] = []
        page_token = None
        processed_pages = 0
        while processed_pages < self.max_pages:
            response = self._nearby(origin, radius, page_token)
            results = response.get("results", [])
            logger.info("Fetched %d places on page %d", len(results), processed_pages + 1)

            for place in results:
                place_id = place.get("place_id")
                if not place_id:
                    logger.debug("Skipping result without place_id: %s", place.get("name"))
                    continue
                records.append(to_office_record(place, self._details_or_empty(place_id)))

            processed_pages += 1
            page_token = response.get("next_page_token")
            if not page_token:
                break
            time.sleep(PAGE_TOKEN_DELAY_SECONDS)

        return records

    def _nearby(self, origin: SearchOrigin, radius: float, page_token: Optional[str]) -> Dict[str, Any]:
        # Metered call: a failure is raised once, never retried here.
        try:
            return nearby_search(
                origin.latitude,
                origin.longitude,
                radius,
                self.api_key,
                place_type=self.place_type,
                pagetoken=page_token,
            )
        except GooglePlacesError as exc:
            raise _translate(exc) from exc
        except requests.RequestException as exc:
            raise ProviderError(f"Google Places request failed: {exc}") from exc

    def _details_or_empty(self, place_id: str) -> Dict[str, Any]:
        try:
            return place_details(place_id, self.api_key)
        except (GooglePlacesError, requests.RequestException) as exc:
            logger.warning("Failed to fetch details for %s: %s", place_id, exc)
            return {}


class GoogleGeocoder:
    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise RuntimeError("GOOGLE_API_KEY is required")
        self.api_key = api_key

    def geocode_zip(self, zip_code: str) -> Tuple[float, float]:
        try:
            results = geocode(zip_code, self.api_key, components=f"postal_code:{zip_code}")
        except GooglePlacesError as exc:
            raise _translate(exc) from exc
        except requests.RequestException as exc:
            raise ProviderError(f"Geocoding request failed: {exc}") from exc

        if not results:
            raise ProviderError(f"ZIP code {zip_code} could not be located", status="ZERO_RESULTS")
        location = results[0].get("geometry", {}).get("location", {})
        return float(location["lat"]), float(location["lng"])
