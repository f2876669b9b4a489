"""
Quality Indicator Engine
Actor resolution middleware.

Provides:
    - Actor: immutable identity value consumed by every service call
    - actor_from_headers(): builds an Actor from gateway-supplied headers
    - init_actor_context(app): before_request hook that sets ``g.actor``
    - require_actor / require_role decorators for blueprint views

Security model:
    Session handling and role issuance live in the upstream identity
    gateway. It forwards the resolved identity as request headers:

        X-Actor-Id           user identifier (required)
        X-Actor-Role         user | manager | auditor | admin (required)
        X-Actor-Unit-Id      the user's unit (role "user")
        X-Actor-Employee-Id  employee record (role "manager")
        X-Actor-Site-Id      site (role "auditor")

Configuration:
    ACTOR_AUTH_ENABLED  set to false to run every request as a local
                        admin (development only)
"""

import functools
import logging
from dataclasses import dataclass

from flask import current_app, g, request

from quality_indicators.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── Roles ────────────────────────────────────────────────────────────────────

ROLES = ("user", "manager", "auditor", "admin")


@dataclass(frozen=True)
class Actor:
    role: str
    user_id: str
    unit_id: int | None = None
    employee_id: int | None = None
    site_id: int | None = None


DEV_ACTOR = Actor(role="admin", user_id="dev-mode")


def _int_header(name):
    raw = request.headers.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s header: %r", name, raw)
        return None


def actor_from_headers():
    """Build an Actor from the identity headers, or None when absent/invalid."""
    user_id = request.headers.get("X-Actor-Id", "").strip()
    role = request.headers.get("X-Actor-Role", "").strip().lower()
    if not user_id or not role:
        return None
    if role not in ROLES:
        logger.warning("Rejected unknown actor role %r for %s", role, user_id)
        return None
    return Actor(
        role=role,
        user_id=user_id,
        unit_id=_int_header("X-Actor-Unit-Id"),
        employee_id=_int_header("X-Actor-Employee-Id"),
        site_id=_int_header("X-Actor-Site-Id"),
    )


def current_actor():
    return getattr(g, "actor", None)


# ── Decorators ───────────────────────────────────────────────────────────────

def require_actor(f):
    """Decorator: require a resolved actor; 401 otherwise."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_actor() is None:
            return api_error(E.UNAUTHENTICATED, "Actor identity headers are required")
        return f(*args, **kwargs)
    return decorated


def require_role(*roles):
    """
    Decorator: restrict a view to the given roles.

    Usage:
        @require_actor
        @require_role("admin")
        def run_job(name): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = current_actor()
            if actor is None:
                return api_error(E.UNAUTHENTICATED, "Actor identity headers are required")
            if actor.role not in roles:
                logger.warning(
                    "Access denied: role '%s' tried to access %s",
                    actor.role, request.path,
                )
                return api_error(E.FORBIDDEN, "Insufficient permissions")
            return f(*args, **kwargs)
        return decorated
    return decorator


# ── before_request hook installer ────────────────────────────────────────────

def init_actor_context(app):
    """Install the hook that resolves ``g.actor`` for API routes."""

    @app.before_request
    def _resolve_actor():
        g.actor = None
        if not request.path.startswith("/api/v1/"):
            return None
        if not current_app.config.get("ACTOR_AUTH_ENABLED", True):
            g.actor = DEV_ACTOR
            return None
        g.actor = actor_from_headers()
        return None
