"""HTTP entrypoint for office discovery (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from office_discovery.core.config import get_settings
from office_discovery.core.distance import SORT_KEYS
from office_discovery.jobs.discover import DiscoveryWorkflow, build_workflow
from office_discovery.models import DiscoveryParameters

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & workflow ----------
app = Flask(__name__)
_workflow: Optional[DiscoveryWorkflow] = None
_workflow_lock = threading.Lock()

_STATUS_BY_KIND = {
    "missing_clinic_location": 409,
    "rate_limited": 429,
    "provider_error": 502,
    "unexpected_error": 500,
}


def _get_workflow() -> DiscoveryWorkflow:
    global _workflow
    if _workflow is None:
        with _workflow_lock:
            if _workflow is None:
                _workflow = build_workflow()
    return _workflow


def _current_user() -> Optional[str]:
    # The gateway in front of this service authenticates and forwards the user id.
    user_id = (request.headers.get("X-User-Id") or "").strip()
    return user_id or None


def _view_options(source: Dict[str, Any]) -> Dict[str, Any]:
    sort_by = str(source.get("sort_by") or "distance")
    if sort_by == "type":
        sort_by = "office_type_label"
    if sort_by not in SORT_KEYS:
        raise ValueError(f"sort_by must be one of: {', '.join(SORT_KEYS)}")
    show_raw = source.get("show_already_added", False)
    if isinstance(show_raw, str):
        show_already_added = show_raw.lower() in {"1", "true", "yes"}
    else:
        show_already_added = bool(show_raw)
    return {"sort_by": sort_by, "show_already_added": show_already_added}


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/discover")
def discover() -> Any:
    """
    Run a discovery search for the calling user.
    Optional JSON fields: distance (miles), zip_code_override, office_type_filter,
    sort_by, show_already_added
    """
    user_id = _current_user()
    if not user_id:
        return jsonify({"error": "X-User-Id header is required"}), 401

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        params = DiscoveryParameters(
            distance=payload.get("distance", get_settings().default_search_distance),
            zip_code_override=payload.get("zip_code_override"),
            office_type_filter=payload.get("office_type_filter"),
        )
        options = _view_options(payload)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    outcome = _get_workflow().search(user_id, params, **options)
    if outcome.discarded:
        return jsonify({"error": "superseded by a newer search"}), 409

    body = outcome.to_dict()
    if outcome.ok:
        return jsonify({"data": body}), 200
    status = _STATUS_BY_KIND.get(outcome.notification.kind, 500)
    return jsonify({"error": outcome.notification.description, "data": body}), status


@app.get("/session")
def current_session() -> Any:
    """Return the last presented session, rebuilt from the snapshot."""
    user_id = _current_user()
    if not user_id:
        return jsonify({"error": "X-User-Id header is required"}), 401
    try:
        options = _view_options(request.args)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    presentation = _get_workflow().resume(user_id, **options)
    if presentation is None:
        return jsonify({"data": None}), 200
    return jsonify({"data": presentation.to_dict()}), 200


@app.delete("/session")
def start_over() -> Any:
    user_id = _current_user()
    if not user_id:
        return jsonify({"error": "X-User-Id header is required"}), 401
    _get_workflow().start_over(user_id)
    return "", 204


@app.post("/offices/<place_id>/import")
def import_office(place_id: str) -> Any:
    user_id = _current_user()
    if not user_id:
        return jsonify({"error": "X-User-Id header is required"}), 401

    office = _get_workflow().mark_imported(user_id, place_id)
    if office is None:
        return jsonify({"error": "office not in the current session"}), 404
    return jsonify({"data": office.to_dict()}), 200


@app.post("/groups")
def create_group() -> Any:
    """Save selected offices of the current session as a named group.
    Required JSON fields: name, office_ids
    """
    user_id = _current_user()
    if not user_id:
        return jsonify({"error": "X-User-Id header is required"}), 401

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    office_ids = payload.get("office_ids")
    if not payload.get("name") or not isinstance(office_ids, list) or not office_ids:
        return jsonify({"error": "name and office_ids are required"}), 400

    try:
        group_id = _get_workflow().save_group(user_id, str(payload["name"]), [str(i) for i in office_ids])
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"data": {"group_id": group_id, "offices": len(office_ids)}}), 201


def main() -> None:
    """Bind on PORT when the platform injects it, else WORKER_PORT."""
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
