"""
Quality Indicator Engine
Indicator definition models (read-only to the engine).

Models:
    - IndicatorCategory: grouping used by the yearly matrix filter
    - Indicator:         measurable quality target (formula, comparator, weight)
    - IndicatorUnit:     many-to-many assignment of an indicator to a unit

Indicator evaluation knobs (plain strings; parsed by services/achievement.py):
    calculation_formula  N/D | N-D | (N/D)*100   (NULL → (N/D)*100)
    target_comparator    >  | <  | =  | >= | <=   (NULL → >=)
    target_weight        multiplier for the weighted rollup (NULL → 0)
"""

from datetime import datetime, timezone

from quality_indicators.models import db
from quality_indicators.models.soft_delete import SoftDeleteMixin

# ── Constants ────────────────────────────────────────────────────────────

ENTRY_FREQUENCIES = {"daily", "monthly"}


class IndicatorCategory(SoftDeleteMixin, db.Model):
    __tablename__ = "indicator_categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {"id": self.id, "name": self.name, "description": self.description}

    def __repr__(self):
        return f"<IndicatorCategory {self.name}>"


class Indicator(SoftDeleteMixin, db.Model):
    __tablename__ = "indicators"

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey("indicator_categories.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    code = db.Column(db.String(50), nullable=False, unique=True)
    title = db.Column(db.String(500), nullable=False)
    numerator_label = db.Column(db.Text, nullable=True)
    denominator_label = db.Column(db.Text, nullable=True)
    target = db.Column(db.Float, nullable=True)
    target_comparator = db.Column(db.String(2), nullable=True, comment="> | < | = | >= | <=")
    calculation_formula = db.Column(db.String(20), nullable=True, comment="N/D | N-D | (N/D)*100")
    target_weight = db.Column(db.Float, nullable=True)
    target_unit = db.Column(db.String(30), nullable=True, comment="percentage | day | ...")
    entry_frequency = db.Column(db.String(10), nullable=False, default="monthly")
    document_file = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    category = db.relationship("IndicatorCategory", lazy="joined")
    unit_links = db.relationship(
        "IndicatorUnit", backref="indicator", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "category_id": self.category_id,
            "code": self.code,
            "title": self.title,
            "numerator_label": self.numerator_label,
            "denominator_label": self.denominator_label,
            "target": self.target,
            "target_comparator": self.target_comparator,
            "calculation_formula": self.calculation_formula,
            "target_weight": self.target_weight,
            "target_unit": self.target_unit,
            "entry_frequency": self.entry_frequency,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Indicator {self.code}>"


class IndicatorUnit(db.Model):
    __tablename__ = "indicator_units"
    __table_args__ = (
        db.UniqueConstraint("indicator_id", "unit_id", name="uq_indicator_unit"),
    )

    id = db.Column(db.Integer, primary_key=True)
    indicator_id = db.Column(
        db.Integer, db.ForeignKey("indicators.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    unit_id = db.Column(
        db.Integer, db.ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    unit = db.relationship("Unit", lazy="joined")

    def to_dict(self):
        return {"id": self.id, "indicator_id": self.indicator_id, "unit_id": self.unit_id}
