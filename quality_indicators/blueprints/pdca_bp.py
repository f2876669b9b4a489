"""Corrective action (PDCA) blueprint.

Endpoints:
    GET/POST        /api/v1/pdcas               (?entry_item_id= filter on GET)
    GET/PUT/DELETE  /api/v1/pdcas/<id>
    GET             /api/v1/pdcas/needs-pdca    flagged items with has_pdca marker
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from quality_indicators.auth import current_actor, require_actor
from quality_indicators.services import pdca_service
from quality_indicators.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

pdca_bp = Blueprint("pdca", __name__, url_prefix="/api/v1/pdcas")
register_error_handlers(pdca_bp)


@pdca_bp.route("", methods=["GET"])
@require_actor
def list_pdcas():
    rows = pdca_service.list_pdcas(current_actor(), request.args.get("entry_item_id", type=int))
    return jsonify({"items": rows, "total": len(rows)})


@pdca_bp.route("", methods=["POST"])
@require_actor
def create_pdca():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON object body is required")
    texts = {f: data.get(f) for f in pdca_service.TEXT_FIELDS if f in data}
    pdca = pdca_service.create_pdca(
        current_actor(),
        data.get("entry_item_id"),
        data.get("pdca_date"),
        data.get("problem_title"),
        **texts,
    )
    return jsonify(pdca), 201


@pdca_bp.route("/needs-pdca", methods=["GET"])
@require_actor
def needs_pdca():
    rows = pdca_service.pdca_queue(current_actor())
    return jsonify({"items": rows, "total": len(rows)})


@pdca_bp.route("/<int:pdca_id>", methods=["GET"])
@require_actor
def get_pdca(pdca_id):
    return jsonify(pdca_service.get_pdca(current_actor(), pdca_id))


@pdca_bp.route("/<int:pdca_id>", methods=["PUT"])
@require_actor
def update_pdca(pdca_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON object body is required")
    return jsonify(pdca_service.update_pdca(current_actor(), pdca_id, data))


@pdca_bp.route("/<int:pdca_id>", methods=["DELETE"])
@require_actor
def delete_pdca(pdca_id):
    return jsonify(pdca_service.delete_pdca(current_actor(), pdca_id))
