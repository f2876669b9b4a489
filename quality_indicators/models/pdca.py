"""
Quality Indicator Engine
Corrective action (PDCA) model.

A PDCA record documents the Plan-Do-Check-Act follow-up for one entry
item that missed its target. Creating one is optional even when the item
carries ``needs_corrective_action``.
"""

from datetime import datetime, timezone

from quality_indicators.models import db
from quality_indicators.models.soft_delete import SoftDeleteMixin


class CorrectiveAction(SoftDeleteMixin, db.Model):
    __tablename__ = "corrective_actions"

    id = db.Column(db.Integer, primary_key=True)
    entry_item_id = db.Column(
        db.Integer, db.ForeignKey("indicator_entry_items.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    pdca_date = db.Column(db.Date, nullable=False)
    problem_title = db.Column(db.String(500), nullable=False)
    step_description = db.Column(db.Text, nullable=True)
    plan_description = db.Column(db.Text, nullable=True)
    do_description = db.Column(db.Text, nullable=True)
    check_study = db.Column(db.Text, nullable=True)
    action = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    entry_item = db.relationship("IndicatorEntryItem", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "entry_item_id": self.entry_item_id,
            "pdca_date": self.pdca_date.isoformat() if self.pdca_date else None,
            "problem_title": self.problem_title,
            "step_description": self.step_description,
            "plan_description": self.plan_description,
            "do_description": self.do_description,
            "check_study": self.check_study,
            "action": self.action,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<CorrectiveAction {self.id} item={self.entry_item_id}>"
