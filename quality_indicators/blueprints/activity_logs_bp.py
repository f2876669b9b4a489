"""Activity log blueprint.

Endpoints (admin only):
    GET /api/v1/admin/activity-logs        ?action=&module=&actor=&search=
                                           &start_date=&end_date=&limit=&offset=
    GET /api/v1/admin/activity-logs/stats  totals by action, module and day
"""

import logging

from flask import Blueprint, jsonify, request

from quality_indicators.auth import require_actor, require_role
from quality_indicators.blueprints import paginate_query
from quality_indicators.services import activity_log_service
from quality_indicators.utils.errors import E, api_error, register_error_handlers
from quality_indicators.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

activity_logs_bp = Blueprint("activity_logs", __name__, url_prefix="/api/v1/admin/activity-logs")
register_error_handlers(activity_logs_bp)


@activity_logs_bp.route("", methods=["GET"])
@require_actor
@require_role("admin")
def list_activity_logs():
    try:
        start = parse_date_input(request.args.get("start_date"), "start_date")
        end = parse_date_input(request.args.get("end_date"), "end_date")
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    query = activity_log_service.list_activity_logs(
        action=request.args.get("action") or None,
        module=request.args.get("module") or None,
        actor=request.args.get("actor") or None,
        search=request.args.get("search") or None,
        start_date=start,
        end_date=end,
    )
    items, total = paginate_query(query, default_limit=25)
    return jsonify({"items": [row.to_dict() for row in items], "total": total})


@activity_logs_bp.route("/stats", methods=["GET"])
@require_actor
@require_role("admin")
def activity_log_stats():
    return jsonify(activity_log_service.activity_log_stats())
