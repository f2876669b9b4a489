"""
Quality Indicator Engine
Organizational hierarchy models (read-only to the engine).

Models:
    - Site:      hospital / facility
    - Division:  group of units inside a site, optionally managed by an employee
    - Unit:      reporting unit; optionally headed by an employee
    - Employee:  staff member, optionally assigned to a unit

Architecture:
    Site ──1:N──▶ Division ──1:N──▶ Unit ──1:N──▶ Employee
    Division.manager_id ──▶ Employee      (division manager)
    Unit.head_of_unit_id ──▶ Employee     (head of unit)

Master-data maintenance happens outside this package; the engine only
reads these tables through ``services/hierarchy.py``.
"""

from datetime import datetime, timezone

from quality_indicators.models import db
from quality_indicators.models.soft_delete import SoftDeleteMixin


class Site(SoftDeleteMixin, db.Model):
    __tablename__ = "sites"

    id = db.Column(db.Integer, primary_key=True)
    site_code = db.Column(db.String(30), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.Text, nullable=True)
    site_logo = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "site_code": self.site_code,
            "name": self.name,
            "address": self.address,
            "site_logo": self.site_logo,
        }

    def __repr__(self):
        return f"<Site {self.site_code}>"


class Division(SoftDeleteMixin, db.Model):
    __tablename__ = "divisions"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(
        db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    code = db.Column(db.String(30), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    manager_id = db.Column(
        db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL", use_alter=True),
        nullable=True, index=True,
        comment="Employee who manages every unit of this division",
    )
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "site_id": self.site_id,
            "code": self.code,
            "name": self.name,
            "manager_id": self.manager_id,
        }

    def __repr__(self):
        return f"<Division {self.code}>"


class Unit(SoftDeleteMixin, db.Model):
    __tablename__ = "units"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(
        db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    division_id = db.Column(
        db.Integer, db.ForeignKey("divisions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    unit_code = db.Column(db.String(30), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    location = db.Column(db.String(200), nullable=True)
    head_of_unit_id = db.Column(
        db.Integer, db.ForeignKey("employees.id", ondelete="SET NULL", use_alter=True),
        nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    site = db.relationship("Site", lazy="joined")
    division = db.relationship("Division", lazy="select")
    head_of_unit = db.relationship("Employee", foreign_keys=[head_of_unit_id], lazy="select")

    def to_dict(self):
        return {
            "id": self.id,
            "site_id": self.site_id,
            "division_id": self.division_id,
            "unit_code": self.unit_code,
            "name": self.name,
            "location": self.location,
            "head_of_unit_id": self.head_of_unit_id,
        }

    def __repr__(self):
        return f"<Unit {self.unit_code}>"


class Employee(SoftDeleteMixin, db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(
        db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    nik = db.Column(db.String(50), nullable=False, unique=True,
                    comment="Employee registration number")
    full_name = db.Column(db.String(200), nullable=False)
    unit_id = db.Column(
        db.Integer, db.ForeignKey("units.id", ondelete="SET NULL", use_alter=True),
        nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "site_id": self.site_id,
            "nik": self.nik,
            "full_name": self.full_name,
            "unit_id": self.unit_id,
        }

    def __repr__(self):
        return f"<Employee {self.nik}>"
