"""
Role policy table.

One row per role, consulted by both the visibility resolver and the
entry lifecycle state machine:

    role      statuses it may set         unit scope
    ───────   ─────────────────────────   ───────────────────────────────
    user      proposed                    own unit
    manager   checked, pending            managed divisions ∪ headed units
    auditor   finish                      all units of own site
    admin     every status                everything
"""

from dataclasses import dataclass

from quality_indicators.models.entry import ENTRY_STATUSES

# Unit scope tags
SCOPE_OWN_UNIT = "own_unit"
SCOPE_MANAGED = "managed"
SCOPE_SITE = "site"
SCOPE_ALL = "all"


@dataclass(frozen=True)
class RolePolicy:
    role: str
    allowed_statuses: tuple
    unit_scope: str
    may_filter_by_division: bool = False


ROLE_POLICIES = {
    "user": RolePolicy("user", ("proposed",), SCOPE_OWN_UNIT),
    "manager": RolePolicy("manager", ("checked", "pending"), SCOPE_MANAGED),
    "auditor": RolePolicy("auditor", ("finish",), SCOPE_SITE, may_filter_by_division=True),
    "admin": RolePolicy("admin", tuple(ENTRY_STATUSES), SCOPE_ALL, may_filter_by_division=True),
}


def policy_for(role):
    """Return the RolePolicy for *role*, or None for unknown roles."""
    return ROLE_POLICIES.get(role)


def allowed_statuses(role) -> tuple:
    policy = ROLE_POLICIES.get(role)
    return policy.allowed_statuses if policy else ()
