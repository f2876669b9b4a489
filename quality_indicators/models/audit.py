"""
Quality Indicator Engine
Activity log model.

Models:
    - ActivityLog: append-only record of user-visible actions
      (entry create/update/delete, status changes, exports).

Writes go through ``log_activity`` which never raises: a failed write
is logged at WARNING and the caller's flow continues. Rows older than
``ACTIVITY_LOG_RETENTION_DAYS`` are purged by the ``activity_log_cleanup``
scheduled job.
"""

import json
import logging
from datetime import datetime, timezone

from flask import has_request_context, request

from quality_indicators.models import db

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_ACTIONS = {
    "CREATE",
    "UPDATE",
    "DELETE",
    "STATUS_CHANGE",
    "EXPORT",
}


class ActivityLog(db.Model):
    """
    Append-only activity trail.

    ``details_json`` carries a free-form snapshot (entry code, status
    change, filter parameters) serialised with ``json.dumps``.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("idx_activity_module", "module"),
        db.Index("idx_activity_actor", "actor"),
        db.Index("idx_activity_created", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    actor = db.Column(db.String(100), nullable=False, default="system")
    action = db.Column(db.String(30), nullable=False,
                       comment="CREATE | UPDATE | DELETE | STATUS_CHANGE | EXPORT")
    module = db.Column(db.String(60), nullable=False,
                       comment="indicator_entry | pdca | report | ...")
    description = db.Column(db.Text, nullable=True)
    details_json = db.Column(db.Text, default="{}")
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def details(self) -> dict:
        try:
            return json.loads(self.details_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor": self.actor,
            "action": self.action,
            "module": self.module,
            "description": self.description,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ActivityLog {self.id}: {self.action} {self.module}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def log_activity(
    *,
    action: str,
    module: str,
    actor: str = "system",
    description: str | None = None,
    details: dict | None = None,
) -> ActivityLog | None:
    """
    Append and commit a single activity row.

    Called after the primary transaction has committed. Any failure is
    rolled back and logged; the caller always continues.

    Returns the stored ActivityLog, or None when the write failed.
    """
    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = request.headers.get("User-Agent")

    try:
        row = ActivityLog(
            actor=actor,
            action=action,
            module=module,
            description=description,
            details_json=json.dumps(details or {}, default=str),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
        )
        db.session.add(row)
        db.session.commit()
        return row
    except Exception:
        db.session.rollback()
        logger.warning(
            "Activity log write failed for %s/%s (main flow unaffected)",
            module, action, exc_info=True,
        )
        return None
