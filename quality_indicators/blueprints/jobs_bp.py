"""Scheduled jobs admin blueprint.

Endpoints (admin only):
    GET   /api/v1/admin/jobs              registered jobs with their last run
    PATCH /api/v1/admin/jobs/<name>       {"is_enabled": bool}
    POST  /api/v1/admin/jobs/<name>/run   run a job now
"""

import logging

from flask import Blueprint, jsonify, request

from quality_indicators.auth import require_actor, require_role
from quality_indicators.services.scheduler_service import SchedulerService, get_registered_jobs
from quality_indicators.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/v1/admin/jobs")
register_error_handlers(jobs_bp)

_RUN_STATUS_CODES = {"success": 200, "skipped": 409}


@jobs_bp.route("", methods=["GET"])
@require_actor
@require_role("admin")
def list_jobs():
    jobs = SchedulerService.list_jobs()
    return jsonify({"items": jobs, "total": len(jobs)})


@jobs_bp.route("/<job_name>", methods=["PATCH"])
@require_actor
@require_role("admin")
def toggle_job(job_name):
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not isinstance(data.get("is_enabled"), bool):
        return api_error(E.VALIDATION_REQUIRED, "is_enabled (boolean) is required")
    return jsonify(SchedulerService.set_enabled(job_name, data["is_enabled"]))


@jobs_bp.route("/<job_name>/run", methods=["POST"])
@require_actor
@require_role("admin")
def run_job(job_name):
    if job_name not in get_registered_jobs():
        return api_error(E.NOT_FOUND, f"Unknown job: {job_name}")
    result = SchedulerService.run_job(job_name)
    return jsonify(result), _RUN_STATUS_CODES.get(result["status"], 500)
