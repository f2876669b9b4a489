"""
Visibility resolver: which units an actor may see or act on.

Single source of truth for unit scoping. Entry reads and writes, status
transitions and every report go through ``allowed_units`` (directly or
via ``effective_units`` / ``resolve_scope``).

Never raises: an empty frozenset is a valid answer and means the actor
sees nothing.
"""

import logging

from quality_indicators.services import hierarchy
from quality_indicators.services.policy import (
    SCOPE_ALL,
    SCOPE_MANAGED,
    SCOPE_OWN_UNIT,
    SCOPE_SITE,
    policy_for,
)

logger = logging.getLogger(__name__)

ALL = "all"

_EMPTY = frozenset()


def _managed_units(actor):
    employee_id = actor.employee_id
    if employee_id is None:
        return _EMPTY
    units = hierarchy.units_of_divisions(hierarchy.divisions_managed_by(employee_id))
    units |= hierarchy.units_headed_by(employee_id)
    if units:
        return frozenset(units)
    # Neither manages nor heads anything: fall back to the employee's own unit
    employee = hierarchy.get_employee(employee_id)
    if employee is not None and employee.unit_id is not None:
        if hierarchy.get_unit(employee.unit_id) is not None:
            return frozenset({employee.unit_id})
    return _EMPTY


def allowed_units(actor):
    """Return ``ALL`` or a frozenset of unit ids the actor may see."""
    if actor is None:
        return _EMPTY
    policy = policy_for(actor.role)
    if policy is None:
        return _EMPTY

    if policy.unit_scope == SCOPE_ALL:
        return ALL
    if policy.unit_scope == SCOPE_OWN_UNIT:
        if actor.unit_id is None or hierarchy.get_unit(actor.unit_id) is None:
            return _EMPTY
        return frozenset({actor.unit_id})
    if policy.unit_scope == SCOPE_MANAGED:
        return _managed_units(actor)
    if policy.unit_scope == SCOPE_SITE:
        return frozenset(hierarchy.units_of_site(actor.site_id))
    return _EMPTY


def can_access_unit(actor, unit_id) -> bool:
    if unit_id is None:
        return False
    allowed = allowed_units(actor)
    if allowed == ALL:
        return hierarchy.get_unit(unit_id) is not None
    return unit_id in allowed


def effective_units(actor, requested=None):
    """Intersect a requested unit set with the actor's allowed units.

    ``requested`` None means "no filter"; the allowed set is returned
    unchanged. A request outside the allowed set yields an empty set.
    """
    allowed = allowed_units(actor)
    if requested is None:
        return allowed
    requested = frozenset(requested)
    if allowed == ALL:
        return requested
    return requested & allowed


def scope_filter_units(division_id=None, site_id=None):
    """Translate a division and/or site filter into a unit-id set (None = no filter)."""
    if division_id is None and site_id is None:
        return None
    units = None
    if division_id is not None:
        units = hierarchy.units_of_division(division_id)
    if site_id is not None:
        site_units = hierarchy.units_of_site(site_id)
        units = site_units if units is None else units & site_units
    return frozenset(units)


def resolve_scope(actor, unit_ids=None, division_id=None, site_id=None):
    """
    Effective unit scope for listings and reports.

    Division/site filters are honored only for roles whose policy allows
    them (auditor, admin); they are translated to unit ids and combined
    with any explicit ``unit_ids`` before intersecting with the actor's
    allowed units.
    """
    requested = frozenset(unit_ids) if unit_ids is not None else None

    policy = policy_for(actor.role) if actor is not None else None
    if policy is not None and policy.may_filter_by_division:
        scoped = scope_filter_units(division_id=division_id, site_id=site_id)
        if scoped is not None:
            requested = scoped if requested is None else requested & scoped

    return effective_units(actor, requested)


def units_in_scope(scope):
    """Materialise a scope into concrete non-deleted unit ids."""
    if scope == ALL:
        return frozenset(hierarchy.active_unit_ids())
    return frozenset(hierarchy.active_unit_ids(scope))
