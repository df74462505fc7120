"""Database helpers for the discovery worker."""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from psycopg2 import extras, pool

from office_discovery.core.config import get_settings

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


def _fetch_all(sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            return [dict(row) for row in cur.fetchall()]


def _fetch_one(sql: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
    return dict(row) if row is not None else None


_SELECT_CLINIC_PROFILE = """
SELECT c.id AS clinic_id, c.latitude, c.longitude, c.name, c.google_place_id
FROM user_profiles p
JOIN clinics c ON c.id = p.clinic_id
WHERE p.user_id = %(user_id)s
LIMIT 1;
"""


def fetch_clinic_profile(user_id: str) -> Optional[Dict[str, Any]]:
    return _fetch_one(_SELECT_CLINIC_PROFILE, {"user_id": user_id})


_SELECT_CACHED_OFFICES = """
SELECT id, place_id, name, address, phone, website, rating, lat, lng, office_type,
       imported, search_distance, discovery_session_id, fetched_at
FROM discovered_offices
WHERE discovered_by = %(user_id)s
  AND clinic_id = %(clinic_id)s
  AND search_distance = %(search_distance)s
  AND search_zip_code IS NOT DISTINCT FROM %(zip_code)s
ORDER BY fetched_at DESC;
"""


def fetch_cached_offices(
    user_id: str,
    clinic_id: str,
    search_distance: float,
    zip_code: Optional[str] = None,
) -> List[Dict[str, Any]]:
    params = {
        "user_id": user_id,
        "clinic_id": clinic_id,
        "search_distance": search_distance,
        "zip_code": zip_code,
    }
    return _fetch_all(_SELECT_CACHED_OFFICES, params)


_UPSERT_DISCOVERED_OFFICE = """
INSERT INTO discovered_offices (
    place_id,
    name,
    address,
    phone,
    website,
    rating,
    lat,
    lng,
    office_type,
    discovered_by,
    clinic_id,
    source,
    search_distance,
    search_location_lat,
    search_location_lng,
    search_zip_code,
    discovery_session_id,
    fetched_at
) VALUES (
    %(place_id)s,
    %(name)s,
    %(address)s,
    %(phone)s,
    %(website)s,
    %(rating)s,
    %(lat)s,
    %(lng)s,
    %(office_type)s,
    %(discovered_by)s,
    %(clinic_id)s,
    %(source)s,
    %(search_distance)s,
    %(search_location_lat)s,
    %(search_location_lng)s,
    %(search_zip_code)s,
    %(discovery_session_id)s,
    NOW()
)
ON CONFLICT (place_id, discovered_by) DO UPDATE SET
    name = EXCLUDED.name,
    address = EXCLUDED.address,
    phone = COALESCE(EXCLUDED.phone, discovered_offices.phone),
    website = COALESCE(EXCLUDED.website, discovered_offices.website),
    rating = EXCLUDED.rating,
    lat = EXCLUDED.lat,
    lng = EXCLUDED.lng,
    office_type = EXCLUDED.office_type,
    clinic_id = EXCLUDED.clinic_id,
    search_distance = EXCLUDED.search_distance,
    search_location_lat = EXCLUDED.search_location_lat,
    search_location_lng = EXCLUDED.search_location_lng,
    search_zip_code = EXCLUDED.search_zip_code,
    discovery_session_id = EXCLUDED.discovery_session_id,
    fetched_at = NOW();
"""


def upsert_discovered_offices(rows: Sequence[Dict[str, Any]]) -> int:
    """Persist discovered offices in one transaction, returning the row count."""
    for row in rows:
        if not row.get("place_id") or not row.get("discovered_by"):
            raise ValueError("place_id and discovered_by are required for upsert")
    if not rows:
        return 0

    with get_connection() as conn:
        with conn.cursor() as cur:
            extras.execute_batch(cur, _UPSERT_DISCOVERED_OFFICE, list(rows))
        conn.commit()
    logger.debug("Upserted %d discovered offices", len(rows))
    return len(rows)


_INSERT_SESSION = """
INSERT INTO discovery_sessions (
    id,
    user_id,
    clinic_id,
    search_distance,
    search_lat,
    search_lng,
    office_type_filter,
    zip_code_override,
    results_count,
    api_call_made,
    created_at
) VALUES (
    %(id)s,
    %(user_id)s,
    %(clinic_id)s,
    %(search_distance)s,
    %(search_lat)s,
    %(search_lng)s,
    %(office_type_filter)s,
    %(zip_code_override)s,
    %(results_count)s,
    %(api_call_made)s,
    %(created_at)s
);
"""


def insert_discovery_session(session: Dict[str, Any]) -> None:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_INSERT_SESSION, session)
        conn.commit()
    logger.debug("Recorded discovery session %s", session.get("id"))


def fetch_network_sources(user_id: str) -> List[Dict[str, Any]]:
    sql = """
    SELECT id, name, google_place_id
    FROM patient_sources
    WHERE created_by = %(user_id)s;
    """
    return _fetch_all(sql, {"user_id": user_id})


def calculate_source_score(source_id: str) -> Optional[str]:
    row = _fetch_one("SELECT calculate_source_score(%(source_id)s) AS score;", {"source_id": source_id})
    return row["score"] if row else None


def mark_office_imported(user_id: str, place_id: str) -> int:
    sql = """
    UPDATE discovered_offices
    SET imported = TRUE
    WHERE discovered_by = %(user_id)s AND place_id = %(place_id)s;
    """
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(sql, {"user_id": user_id, "place_id": place_id})
            updated = cur.rowcount
        conn.commit()
    return updated


def delete_discovered_offices(user_id: str) -> None:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM discovered_offices WHERE discovered_by = %(user_id)s;", {"user_id": user_id})
        conn.commit()
    logger.info("Cleared discovered offices for user=%s", user_id)


def count_api_calls_since(user_id: str, since: datetime) -> int:
    sql = """
    SELECT COUNT(*) AS used
    FROM discovery_sessions
    WHERE user_id = %(user_id)s AND api_call_made AND created_at >= %(since)s;
    """
    row = _fetch_one(sql, {"user_id": user_id, "since": since})
    return int(row["used"]) if row else 0


def insert_office_group(user_id: str, name: str, place_ids: Sequence[str]) -> str:
    """Create a named group of discovered offices and return its id."""
    if not name or not name.strip():
        raise ValueError("group name is required")

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "INSERT INTO discovered_office_groups (name, user_id) VALUES (%(name)s, %(user_id)s) RETURNING id;",
                {"name": name.strip(), "user_id": user_id},
            )
            group_id = str(cur.fetchone()[0])
            members = [{"group_id": group_id, "place_id": place_id} for place_id in place_ids]
            if members:
                extras.execute_batch(
                    cur,
                    "INSERT INTO discovered_office_group_members (group_id, place_id) "
                    "VALUES (%(group_id)s, %(place_id)s);",
                    members,
                )
        conn.commit()
    logger.info("Created group %s with %d offices", group_id, len(place_ids))
    return group_id
