"""
Activity log read side: filtered listing and summary counters.

Writes happen through ``models.audit.log_activity``; purging through the
``activity_log_cleanup`` job. Both functions here are read-only and
admin-facing (the blueprint enforces the role).
"""

import logging
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func, or_

from quality_indicators.core.exceptions import ValidationError
from quality_indicators.models import db
from quality_indicators.models.audit import ActivityLog

logger = logging.getLogger(__name__)

STATS_WINDOW_DAYS = 7


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def list_activity_logs(
    action=None,
    module=None,
    actor=None,
    search=None,
    start_date=None,
    end_date=None,
):
    """
    Return a query of activity rows, newest first.

    Args:
        action / module / actor: exact-match filters.
        search: case-insensitive substring of description or actor.
        start_date / end_date: inclusive calendar-day bounds (date objects).
    """
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date",
                              details={"start_date": str(start_date), "end_date": str(end_date)})

    q = ActivityLog.query
    if action:
        q = q.filter(ActivityLog.action == action.upper())
    if module:
        q = q.filter(ActivityLog.module == module)
    if actor:
        q = q.filter(ActivityLog.actor == actor)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(ActivityLog.description.ilike(pattern), ActivityLog.actor.ilike(pattern)))
    if start_date:
        q = q.filter(ActivityLog.created_at >= _day_start(start_date))
    if end_date:
        q = q.filter(ActivityLog.created_at < _day_start(end_date + timedelta(days=1)))
    return q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())


def activity_log_stats(days=STATS_WINDOW_DAYS) -> dict:
    """
    Counters over the whole table plus a per-day breakdown of the last *days* days.

    Returns:
        {"total", "by_action": [{"action", "count"}], "by_module": [{"module", "count"}],
         "daily": [{"date", "count"}], "oldest_log_at"}
    """
    total = db.session.query(func.count(ActivityLog.id)).scalar()

    by_action = (
        db.session.query(ActivityLog.action, func.count(ActivityLog.id))
        .group_by(ActivityLog.action)
        .order_by(ActivityLog.action)
        .all()
    )
    by_module = (
        db.session.query(ActivityLog.module, func.count(ActivityLog.id))
        .group_by(ActivityLog.module)
        .order_by(ActivityLog.module)
        .all()
    )

    since = datetime.now(timezone.utc) - timedelta(days=days)
    per_day = Counter(
        created.date()
        for (created,) in db.session.query(ActivityLog.created_at)
        .filter(ActivityLog.created_at >= since)
        .all()
    )
    oldest = db.session.query(func.min(ActivityLog.created_at)).scalar()

    return {
        "total": total,
        "by_action": [{"action": a, "count": c} for a, c in by_action],
        "by_module": [{"module": m, "count": c} for m, c in by_module],
        "daily": [{"date": d.isoformat(), "count": per_day[d]} for d in sorted(per_day)],
        "oldest_log_at": oldest.isoformat() if oldest else None,
    }
