"""
Quality Indicator Engine
Scheduled Jobs.

Jobs:
    - activity_log_cleanup: purges activity log rows older than
      ACTIVITY_LOG_RETENTION_DAYS (default 7)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from quality_indicators.models import db
from quality_indicators.models.audit import ActivityLog
from quality_indicators.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("activity_log_cleanup")
def cleanup_activity_logs(app) -> dict[str, Any]:
    """Delete activity log rows older than the retention window."""
    days = int(app.config.get("ACTIVITY_LOG_RETENTION_DAYS", 7))
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)

    deleted = ActivityLog.query.filter(
        ActivityLog.created_at < cutoff,
    ).delete(synchronize_session="fetch")

    db.session.commit()
    logger.info("Activity log cleanup: deleted %d rows older than %d days", deleted, days,
                extra={"job_name": "activity_log_cleanup"})
    return {"deleted": deleted, "cutoff": cutoff.isoformat(), "retention_days": days}
