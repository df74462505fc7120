"""Error taxonomy for the discovery workflow."""

from typing import Optional


class DiscoveryError(RuntimeError):
    """Base class for failures converted into user notifications."""


class MissingClinicLocation(DiscoveryError):
    """The user has no clinic configured or no usable search coordinates."""


class RateLimited(DiscoveryError):
    """The upstream places quota is exhausted."""


class ProviderError(DiscoveryError):
    """Generic upstream failure; the user may retry immediately."""

    def __init__(self, message: str, status: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status


class PartialEnrichmentFailure(DiscoveryError):
    """A per-record derived field lookup failed; the record keeps a placeholder."""

    def __init__(self, record_id: str, cause: BaseException) -> None:
        super().__init__(f"enrichment failed for {record_id}: {cause}")
        self.record_id = record_id
        self.cause = cause
