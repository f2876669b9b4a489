"""
Read-only lookups over the organizational hierarchy.

All functions ignore soft-deleted rows and return plain id sets so the
visibility resolver never holds ORM objects.
"""

from quality_indicators.models import db
from quality_indicators.models.organization import Division, Employee, Unit


def get_employee(employee_id):
    if employee_id is None:
        return None
    emp = db.session.get(Employee, employee_id)
    if emp is None or emp.is_deleted:
        return None
    return emp


def get_unit(unit_id):
    if unit_id is None:
        return None
    unit = db.session.get(Unit, unit_id)
    if unit is None or unit.is_deleted:
        return None
    return unit


def divisions_managed_by(employee_id) -> set:
    if employee_id is None:
        return set()
    rows = (
        db.session.query(Division.id)
        .filter(Division.manager_id == employee_id, Division.deleted_at.is_(None))
        .all()
    )
    return {r[0] for r in rows}


def units_of_division(division_id) -> set:
    return units_of_divisions({division_id})


def units_of_divisions(division_ids) -> set:
    if not division_ids:
        return set()
    rows = (
        db.session.query(Unit.id)
        .filter(Unit.division_id.in_(list(division_ids)), Unit.deleted_at.is_(None))
        .all()
    )
    return {r[0] for r in rows}


def units_headed_by(employee_id) -> set:
    if employee_id is None:
        return set()
    rows = (
        db.session.query(Unit.id)
        .filter(Unit.head_of_unit_id == employee_id, Unit.deleted_at.is_(None))
        .all()
    )
    return {r[0] for r in rows}


def units_of_site(site_id) -> set:
    if site_id is None:
        return set()
    rows = (
        db.session.query(Unit.id)
        .filter(Unit.site_id == site_id, Unit.deleted_at.is_(None))
        .all()
    )
    return {r[0] for r in rows}


def active_unit_ids(unit_ids=None) -> set:
    """Filter *unit_ids* down to existing, non-deleted units (all when None)."""
    q = db.session.query(Unit.id).filter(Unit.deleted_at.is_(None))
    if unit_ids is not None:
        if not unit_ids:
            return set()
        q = q.filter(Unit.id.in_(list(unit_ids)))
    return {r[0] for r in q.all()}
