"""Indicator entries blueprint.

Endpoint groups:
  Entries            GET/POST        /api/v1/entries
                     GET/PUT/DELETE  /api/v1/entries/<id>
  Status transition  PUT             /api/v1/entries/<id>/status
                     GET             /api/v1/entries/<id>/transitions
  Verification log   GET             /api/v1/entries/<id>/logs

The actor comes from ``g.actor`` (see auth.init_actor_context).
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from quality_indicators.auth import current_actor, require_actor
from quality_indicators.models.entry import ENTRY_STATUSES
from quality_indicators.blueprints import paginate_query
from quality_indicators.services import entry_lifecycle, entry_service
from quality_indicators.utils.errors import E, api_error, register_error_handlers
from quality_indicators.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

entries_bp = Blueprint("entries", __name__, url_prefix="/api/v1")
register_error_handlers(entries_bp)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, api_error(E.VALIDATION_REQUIRED, "JSON object body is required")
    return data, None


# ── Entries ──────────────────────────────────────────────────────────────────


@entries_bp.route("/entries", methods=["GET"])
@require_actor
def list_entries():
    """List visible entries (defaults to today's entries).

    Query params: start_date, end_date, frequency, status (comma list),
    unit_id, division_id, limit, offset.
    """
    try:
        start = parse_date_input(request.args.get("start_date"), "start_date")
        end = parse_date_input(request.args.get("end_date"), "end_date")
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    statuses = [s.strip() for s in request.args.get("status", "").split(",") if s.strip()]
    bad = [s for s in statuses if s not in ENTRY_STATUSES]
    if bad:
        return api_error(E.VALIDATION_INVALID, f"Unknown status filter: {', '.join(bad)}")

    query = entry_service.list_entries(
        current_actor(),
        start_date=start,
        end_date=end,
        frequency=request.args.get("frequency") or None,
        statuses=statuses or None,
        unit_id=request.args.get("unit_id", type=int),
        division_id=request.args.get("division_id", type=int),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [e.to_dict() for e in items], "total": total})


@entries_bp.route("/entries", methods=["POST"])
@require_actor
def create_entry():
    data, err = _json_body()
    if err:
        return err
    unit_id = data.get("unit_id")
    if unit_id is not None:
        try:
            unit_id = int(unit_id)
        except (TypeError, ValueError):
            return api_error(E.VALIDATION_INVALID, "unit_id must be an integer")

    entry = entry_service.create_entry(
        current_actor(),
        unit_id=unit_id,
        entry_date=data.get("entry_date"),
        entry_frequency=data.get("entry_frequency"),
        items=data.get("items"),
        notes=data.get("notes"),
    )
    return jsonify(entry), 201


@entries_bp.route("/entries/<int:entry_id>", methods=["GET"])
@require_actor
def get_entry(entry_id):
    return jsonify(entry_service.get_entry(current_actor(), entry_id))


@entries_bp.route("/entries/<int:entry_id>", methods=["PUT"])
@require_actor
def update_entry(entry_id):
    data, err = _json_body()
    if err:
        return err
    items = data.pop("items", None)
    entry = entry_service.update_entry(current_actor(), entry_id, data, items=items)
    return jsonify(entry)


@entries_bp.route("/entries/<int:entry_id>", methods=["DELETE"])
@require_actor
def delete_entry(entry_id):
    return jsonify(entry_service.delete_entry(current_actor(), entry_id))


# ── Status transitions ───────────────────────────────────────────────────────


@entries_bp.route("/entries/<int:entry_id>/status", methods=["PUT"])
@require_actor
def set_status(entry_id):
    """Body: {"status", "notes"?, "items"?: [{"id", "is_already_checked"?, "needs_corrective_action"?}]}"""
    data, err = _json_body()
    if err:
        return err
    status = data.get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    item_flags = data.get("items")
    if item_flags is not None and not isinstance(item_flags, list):
        return api_error(E.VALIDATION_INVALID, "items must be a list")

    result = entry_lifecycle.set_status(
        current_actor(), entry_id, status,
        notes=data.get("notes"),
        item_flags=item_flags,
    )
    return jsonify(result)


@entries_bp.route("/entries/<int:entry_id>/transitions", methods=["GET"])
@require_actor
def available_transitions(entry_id):
    return jsonify(entry_lifecycle.get_available_transitions(current_actor(), entry_id))


@entries_bp.route("/entries/<int:entry_id>/logs", methods=["GET"])
@require_actor
def verification_logs(entry_id):
    logs = entry_service.get_verification_logs(current_actor(), entry_id)
    return jsonify({"items": logs, "total": len(logs)})
