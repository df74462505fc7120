"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    database_url: str
    worker_port: int = 9000
    default_search_distance: float = 10.0
    weekly_discovery_limit: int = 999
    enrich_max_workers: int = 10
    max_pages: int = 3
    session_store_path: str = "data/discovery_state.json"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    worker_port = int(os.getenv("WORKER_PORT", "9000"))
    default_search_distance = float(os.getenv("DEFAULT_SEARCH_DISTANCE", "10"))
    weekly_discovery_limit = int(os.getenv("WEEKLY_DISCOVERY_LIMIT", "999"))
    enrich_max_workers = int(os.getenv("ENRICH_MAX_WORKERS", "10"))
    max_pages = int(os.getenv("DISCOVERY_MAX_PAGES", "3"))
    session_store_path = os.getenv("SESSION_STORE_PATH") or "data/discovery_state.json"

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_api_key:
        logger.warning("GOOGLE_API_KEY is not configured; Google Places requests will fail.")
    if enrich_max_workers < 1:
        logger.warning("ENRICH_MAX_WORKERS=%d is invalid; using 1", enrich_max_workers)
        enrich_max_workers = 1

    return Settings(
        google_api_key=google_api_key,
        database_url=database_url,
        worker_port=worker_port,
        default_search_distance=default_search_distance,
        weekly_discovery_limit=weekly_discovery_limit,
        enrich_max_workers=enrich_max_workers,
        max_pages=max_pages,
        session_store_path=session_store_path,
    )
