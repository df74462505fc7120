"""Snapshot of each user's active discovery session so a restart resumes it."""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from office_discovery.models import CandidateOffice, DiscoverySession

logger = logging.getLogger(__name__)

DISCOVERY_SESSION_KEY = "discoverySession"
DISCOVERED_OFFICES_KEY = "discoveredOffices"


class SessionStore:
    """In-memory store of the last session per user, mirrored to a JSON file.

    The file is read once on construction and rewritten after every change;
    it is never consulted again while the process runs.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._state: Dict[str, Dict[str, Any]] = self._load()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.error("Unable to read session snapshot %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.error("Ignoring malformed session snapshot %s", self.path)
            return {}
        return data

    def _flush(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as fh:
                json.dump(self._state, fh, ensure_ascii=False, indent=2)
            tmp_path.replace(self.path)
        except OSError as exc:
            logger.error("Failed to write session snapshot %s: %s", self.path, exc)

    def load(self, user_id: str) -> Tuple[Optional[DiscoverySession], List[CandidateOffice]]:
        with self._lock:
            entry = self._state.get(user_id) or {}
            session_data = entry.get(DISCOVERY_SESSION_KEY)
            offices_data = entry.get(DISCOVERED_OFFICES_KEY) or []
        session = DiscoverySession.from_dict(session_data) if session_data else None
        return session, [CandidateOffice.from_dict(item) for item in offices_data]

    def save(self, session: DiscoverySession, offices: List[CandidateOffice]) -> None:
        with self._lock:
            entry = self._state.setdefault(session.user_id, {})
            entry[DISCOVERY_SESSION_KEY] = session.to_dict()
            if offices:
                entry[DISCOVERED_OFFICES_KEY] = [office.to_dict() for office in offices]
            else:
                entry.pop(DISCOVERED_OFFICES_KEY, None)
            self._flush()

    def update_office(self, user_id: str, place_id: str, **changes: Any) -> Optional[CandidateOffice]:
        with self._lock:
            entry = self._state.get(user_id) or {}
            for item in entry.get(DISCOVERED_OFFICES_KEY) or []:
                if item.get("place_id") == place_id:
                    item.update(changes)
                    self._flush()
                    return CandidateOffice.from_dict(item)
        return None

    def clear(self, user_id: str) -> None:
        with self._lock:
            if self._state.pop(user_id, None) is not None:
                self._flush()
