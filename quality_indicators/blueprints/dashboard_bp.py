"""Dashboard blueprint.

Endpoints (scoped to the actor's units):
    GET /api/v1/dashboard/stats          ?year=&month=&unit_id=
    GET /api/v1/dashboard/daily-entries  ?date=YYYY-MM-DD&unit_id=&limit=
"""

from flask import Blueprint, jsonify, request

from quality_indicators.auth import current_actor, require_actor
from quality_indicators.services import report_engine
from quality_indicators.utils.errors import register_error_handlers

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")
register_error_handlers(dashboard_bp)

MAX_DAILY_ENTRIES = 100


@dashboard_bp.route("/stats", methods=["GET"])
@require_actor
def stats():
    return jsonify(report_engine.dashboard_stats(
        current_actor(),
        year=request.args.get("year"),
        month=request.args.get("month"),
        unit_id=request.args.get("unit_id", type=int),
    ))


@dashboard_bp.route("/daily-entries", methods=["GET"])
@require_actor
def daily_entries():
    limit = request.args.get("limit", 10, type=int)
    rows = report_engine.daily_entries(
        current_actor(),
        day=request.args.get("date"),
        unit_id=request.args.get("unit_id", type=int),
        limit=max(1, min(limit, MAX_DAILY_ENTRIES)),
    )
    return jsonify({"items": rows, "total": len(rows)})
