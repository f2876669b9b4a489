"""
Quality Indicator Engine
Indicator entry models.

Models:
    - IndicatorEntry:      one submission for a unit and period (daily or monthly)
    - IndicatorEntryItem:  numerator/denominator pair for one indicator
    - VerificationLog:     append-only status transition record

Lifecycle states:
    proposed → checked / pending → finish
    A finished entry is immutable; see services/entry_lifecycle.py.

Uniqueness:
    code                                    globally unique (NM/YYYYMMDD/NNNNN)
    (unit_id, entry_frequency, period_key)  unique among non-deleted entries
"""

from datetime import datetime, timezone

from quality_indicators.models import db
from quality_indicators.models.soft_delete import SoftDeleteMixin

# ── Constants ────────────────────────────────────────────────────────────

ENTRY_STATUSES = ("proposed", "checked", "pending", "finish")
TERMINAL_STATUS = "finish"


def period_key_for(entry_date, frequency):
    """Return the period bucket for a date: YYYY-MM-DD (daily) or YYYY-MM (monthly)."""
    if frequency == "daily":
        return entry_date.strftime("%Y-%m-%d")
    return entry_date.strftime("%Y-%m")


class IndicatorEntry(SoftDeleteMixin, db.Model):
    __tablename__ = "indicator_entries"
    __table_args__ = (
        db.Index(
            "uq_entry_unit_period_active",
            "unit_id", "entry_frequency", "period_key",
            unique=True,
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(30), nullable=False, unique=True)
    unit_id = db.Column(
        db.Integer, db.ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    entry_date = db.Column(db.Date, nullable=False, index=True)
    entry_frequency = db.Column(db.String(10), nullable=False, default="monthly")
    period_key = db.Column(db.String(10), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="proposed", index=True)
    notes = db.Column(db.Text, nullable=True)
    auditor_notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(100), nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    unit = db.relationship("Unit", lazy="joined")
    items = db.relationship(
        "IndicatorEntryItem", backref="entry", lazy="select",
        cascade="all, delete-orphan", order_by="IndicatorEntryItem.id",
    )
    verification_logs = db.relationship(
        "VerificationLog", backref="entry", lazy="dynamic",
        cascade="all, delete-orphan", order_by="VerificationLog.id",
    )

    @property
    def is_finished(self):
        return self.status == TERMINAL_STATUS

    def to_dict(self, include_items=False):
        d = {
            "id": self.id,
            "code": self.code,
            "unit_id": self.unit_id,
            "unit_name": self.unit.name if self.unit else None,
            "entry_date": self.entry_date.isoformat() if self.entry_date else None,
            "entry_frequency": self.entry_frequency,
            "period_key": self.period_key,
            "status": self.status,
            "notes": self.notes,
            "auditor_notes": self.auditor_notes,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            d["items"] = [i.to_dict() for i in self.items]
        return d

    def __repr__(self):
        return f"<IndicatorEntry {self.code} [{self.status}]>"


class IndicatorEntryItem(db.Model):
    __tablename__ = "indicator_entry_items"

    id = db.Column(db.Integer, primary_key=True)
    entry_id = db.Column(
        db.Integer, db.ForeignKey("indicator_entries.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    indicator_id = db.Column(
        db.Integer, db.ForeignKey("indicators.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    numerator_value = db.Column(db.Float, nullable=True)
    denominator_value = db.Column(db.Float, nullable=True)
    achievement = db.Column(db.Float, nullable=True)
    score = db.Column(db.Float, nullable=True)
    needs_corrective_action = db.Column(db.Boolean, nullable=False, default=False)
    is_already_checked = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    indicator = db.relationship("Indicator", lazy="joined")

    def to_dict(self):
        ind = self.indicator
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "indicator_id": self.indicator_id,
            "indicator_code": ind.code if ind else None,
            "indicator_title": ind.title if ind else None,
            "numerator_label": ind.numerator_label if ind else None,
            "denominator_label": ind.denominator_label if ind else None,
            "target": ind.target if ind else None,
            "target_comparator": ind.target_comparator if ind else None,
            "target_unit": ind.target_unit if ind else None,
            "calculation_formula": ind.calculation_formula if ind else None,
            "numerator_value": self.numerator_value,
            "denominator_value": self.denominator_value,
            "achievement": self.achievement,
            "score": self.score,
            "needs_corrective_action": self.needs_corrective_action,
            "is_already_checked": self.is_already_checked,
            "notes": self.notes,
        }


class VerificationLog(db.Model):
    __tablename__ = "verification_logs"

    id = db.Column(db.Integer, primary_key=True)
    entry_id = db.Column(
        db.Integer, db.ForeignKey("indicator_entries.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    previous_status = db.Column(db.String(20), nullable=True)
    new_status = db.Column(db.String(20), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    actor = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "notes": self.notes,
            "actor": self.actor,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
