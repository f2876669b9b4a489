"""Reports blueprint.

Endpoints (all read-only, scoped to the actor's units):
    GET /api/v1/reports/unit-daily      ?unit_id=&date=YYYY-MM-DD
    GET /api/v1/reports/unit-monthly    ?unit_id=&month=YYYY-MM
    GET /api/v1/reports/unit-range      ?unit_id=&start_date=&end_date=&frequency=
    GET /api/v1/reports/summary         ?frequency=&period=&division_id=
    GET /api/v1/reports/yearly          ?year=&frequency=&category_id=&division_id=&site_id=&unit_ids=
    GET /api/v1/reports/yearly.xlsx     same parameters, spreadsheet download
"""

from __future__ import annotations

import logging
from datetime import date

from flask import Blueprint, jsonify, request, send_file

from quality_indicators.auth import current_actor, require_actor
from quality_indicators.models.audit import log_activity
from quality_indicators.services import report_engine
from quality_indicators.services.export_service import export_yearly_matrix_xlsx
from quality_indicators.utils.errors import E, api_error, register_error_handlers
from quality_indicators.utils.helpers import parse_id_list

logger = logging.getLogger(__name__)

reports_bp = Blueprint("reports", __name__, url_prefix="/api/v1/reports")
register_error_handlers(reports_bp)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _required_unit_id():
    unit_id = request.args.get("unit_id", type=int)
    if unit_id is None:
        return None, api_error(E.VALIDATION_REQUIRED, "unit_id is required")
    return unit_id, None


@reports_bp.route("/unit-daily", methods=["GET"])
@require_actor
def unit_daily():
    unit_id, err = _required_unit_id()
    if err:
        return err
    day = request.args.get("date")
    if not day:
        return api_error(E.VALIDATION_REQUIRED, "date is required (YYYY-MM-DD)")
    return jsonify(report_engine.unit_period_report(current_actor(), unit_id, "daily", day))


@reports_bp.route("/unit-monthly", methods=["GET"])
@require_actor
def unit_monthly():
    unit_id, err = _required_unit_id()
    if err:
        return err
    month = request.args.get("month")
    if not month:
        return api_error(E.VALIDATION_REQUIRED, "month is required (YYYY-MM)")
    return jsonify(report_engine.unit_period_report(current_actor(), unit_id, "monthly", month))


@reports_bp.route("/unit-range", methods=["GET"])
@require_actor
def unit_range():
    unit_id, err = _required_unit_id()
    if err:
        return err
    return jsonify(report_engine.unit_range_report(
        current_actor(),
        unit_id,
        request.args.get("start_date"),
        request.args.get("end_date"),
        frequency=request.args.get("frequency") or None,
    ))


@reports_bp.route("/summary", methods=["GET"])
@require_actor
def summary():
    period = request.args.get("period")
    if not period:
        return api_error(E.VALIDATION_REQUIRED, "period is required (YYYY-MM or YYYY-MM-DD)")
    rows = report_engine.period_summary(
        current_actor(),
        request.args.get("frequency", "monthly"),
        period,
        division_id=request.args.get("division_id", type=int),
    )
    return jsonify({"items": rows, "total": len(rows)})


def _matrix_from_args():
    try:
        unit_ids = parse_id_list(request.args.get("unit_ids")) or None
    except ValueError:
        return None, api_error(E.VALIDATION_INVALID, "unit_ids must be a comma-separated list of integers")
    matrix = report_engine.yearly_matrix(
        current_actor(),
        request.args.get("year", date.today().year),
        frequency=request.args.get("frequency", "monthly"),
        category_id=request.args.get("category_id", type=int),
        division_id=request.args.get("division_id", type=int),
        site_id=request.args.get("site_id", type=int),
        unit_ids=unit_ids,
    )
    return matrix, None


@reports_bp.route("/yearly", methods=["GET"])
@require_actor
def yearly():
    matrix, err = _matrix_from_args()
    if err:
        return err
    return jsonify(matrix)


@reports_bp.route("/yearly.xlsx", methods=["GET"])
@require_actor
def yearly_xlsx():
    matrix, err = _matrix_from_args()
    if err:
        return err
    output = export_yearly_matrix_xlsx(matrix)
    actor = current_actor()
    log_activity(
        action="EXPORT",
        module="report",
        actor=actor.user_id,
        description=f"Exported yearly report {matrix['year']}",
        details={"year": matrix["year"], "frequency": matrix["frequency"]},
    )
    return send_file(
        output,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"laporan_indikator_mutu_{matrix['year']}.xlsx",
    )
