"""Standardised API error responses.

Usage
-----
    from quality_indicators.utils.errors import api_error, E, register_error_handlers

    return api_error(E.VALIDATION_REQUIRED, "unit_id is required")

    entries_bp = Blueprint("entries", __name__, url_prefix="/api/v1")
    register_error_handlers(entries_bp)
"""

from __future__ import annotations

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from quality_indicators.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Auth – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.INTERNAL: 500,
}

# ConflictError fields that describe a state clash rather than a duplicate value
_STATE_CONFLICT_FIELDS = {"status"}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override. Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)``, a drop-in for Flask views.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp):
    """Map the service exception hierarchy to HTTP responses on *bp*."""

    @bp.errorhandler(ValidationError)
    def _handle_validation(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), status=422, details=exc.details)

    @bp.errorhandler(AuthorizationError)
    def _handle_forbidden(exc):
        details = {"allowed": exc.allowed} if exc.allowed else None
        return api_error(E.FORBIDDEN, str(exc), details=details)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @bp.errorhandler(ConflictError)
    def _handle_conflict(exc):
        code = E.CONFLICT_STATE if exc.field in _STATE_CONFLICT_FIELDS else E.CONFLICT_DUPLICATE
        return api_error(code, str(exc), details={"resource": exc.resource, "field": exc.field})

    @bp.errorhandler(Exception)
    def _handle_unexpected(exc):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("Unhandled error in %s: %s", bp.name, exc)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
