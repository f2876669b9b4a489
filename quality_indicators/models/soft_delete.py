"""
Soft Delete Mixin.

Adds a ``deleted_at`` timestamp column and query helpers. Entries,
corrective actions and master data are never physically removed by the
engine; they are marked as deleted instead.

Usage:
    class IndicatorEntry(SoftDeleteMixin, db.Model):
        ...

    entry.soft_delete()
    db.session.commit()

    IndicatorEntry.query_active().all()
"""

from datetime import datetime, timezone

from quality_indicators.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime, nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))

