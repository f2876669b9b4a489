"""
Entry Lifecycle Service

Manages indicator entry status transitions with:
  - Role gating through the policy table (services/policy.py)
  - Unit scope gating through the visibility resolver
  - Compare-and-set status write (a transition lost to a race fails)
  - Verification log row in the same transaction as the status change
  - Optional per-item flag updates carried by the transition
  - Activity log (failure-tolerant, after commit)

Statuses:
  proposed → checked / pending → finish      (finish is terminal)

Role → statuses it may set:
  user → proposed; manager → checked, pending; auditor → finish; admin → any

Usage:
    from quality_indicators.services.entry_lifecycle import set_status

    result = set_status(
        actor,
        entry_id=12,
        new_status="checked",
        notes="Numbers verified against ward register",
        item_flags=[{"id": 31, "is_already_checked": True}],
    )
"""

import logging

from quality_indicators.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from quality_indicators.models import db
from quality_indicators.models.audit import log_activity
from quality_indicators.models.entry import (
    ENTRY_STATUSES,
    TERMINAL_STATUS,
    IndicatorEntry,
    IndicatorEntryItem,
    VerificationLog,
)
from quality_indicators.services.policy import allowed_statuses
from quality_indicators.services.visibility import can_access_unit

logger = logging.getLogger(__name__)

# Item flags a transition may carry
ITEM_FLAGS = ("is_already_checked", "needs_corrective_action")


def _load_entry(entry_id):
    entry = db.session.get(IndicatorEntry, entry_id)
    if entry is None or entry.is_deleted:
        raise NotFoundError(resource="IndicatorEntry", resource_id=entry_id)
    return entry


def finished_conflict(entry):
    return ConflictError(
        resource="IndicatorEntry",
        field="status",
        value=entry.status,
        message=f"Entry {entry.code} is finished and can no longer be changed",
    )


def _apply_item_flags(entry_id, item_flags) -> int:
    """Apply flag updates to items of *entry_id*; returns the number of items touched."""
    if not item_flags:
        return 0
    items = {
        i.id: i
        for i in IndicatorEntryItem.query.filter_by(entry_id=entry_id).all()
    }
    touched = 0
    for update in item_flags:
        item = items.get(update.get("id")) if isinstance(update, dict) else None
        if item is None:
            continue
        changed = False
        for flag in ITEM_FLAGS:
            value = update.get(flag)
            if isinstance(value, bool):
                setattr(item, flag, value)
                changed = True
        if changed:
            touched += 1
    return touched


def set_status(actor, entry_id, new_status, notes=None, item_flags=None) -> dict:
    """
    Execute an entry status transition.

    Args:
        actor: Resolved Actor.
        entry_id: Entry primary key.
        new_status: Target status.
        notes: Verification notes, stored on the log row and as the
               entry's auditor_notes (left untouched when None).
        item_flags: Optional list of {"id", "is_already_checked"?,
                    "needs_corrective_action"?}; ids not belonging to the
                    entry and non-boolean values are ignored.

    Returns:
        {"entry", "previous_status", "new_status", "verification_log", "items_updated"}

    Raises:
        NotFoundError, ConflictError, ValidationError, AuthorizationError
    """
    entry = _load_entry(entry_id)

    # 1. Finished entries are immutable for every role
    if entry.status == TERMINAL_STATUS:
        raise finished_conflict(entry)

    # 2. Status and role gate
    if new_status not in ENTRY_STATUSES:
        raise ValidationError(
            f"Unknown status: {new_status!r}",
            details={"status": f"must be one of {', '.join(ENTRY_STATUSES)}"},
        )
    allowed = allowed_statuses(actor.role)
    if new_status not in allowed:
        raise AuthorizationError(
            f"Role '{actor.role}' may only set status to: {', '.join(allowed) or 'nothing'}",
            allowed=allowed,
        )

    # 3. Unit scope gate
    if not can_access_unit(actor, entry.unit_id):
        raise AuthorizationError(
            f"Unit {entry.unit_id} is outside the scope of {actor.user_id}",
            allowed=allowed,
        )

    previous_status = entry.status

    # 4. Compare-and-set on the status read above
    values = {IndicatorEntry.status: new_status, IndicatorEntry.updated_by: actor.user_id}
    if notes is not None:
        values[IndicatorEntry.auditor_notes] = notes
    updated = (
        db.session.query(IndicatorEntry)
        .filter(
            IndicatorEntry.id == entry.id,
            IndicatorEntry.status == previous_status,
            IndicatorEntry.deleted_at.is_(None),
        )
        .update(values, synchronize_session=False)
    )
    if updated == 0:
        db.session.rollback()
        raise ConflictError(
            resource="IndicatorEntry",
            field="status",
            value=previous_status,
            message=f"Entry {entry_id} changed status concurrently; reload and retry",
        )

    # 5. Audit row + item flags, same transaction
    log = VerificationLog(
        entry_id=entry.id,
        previous_status=previous_status,
        new_status=new_status,
        notes=notes,
        actor=actor.user_id,
    )
    db.session.add(log)
    items_updated = _apply_item_flags(entry.id, item_flags)
    db.session.commit()
    db.session.refresh(entry)

    logger.info(
        "Entry %s status %s → %s by %s",
        entry.code, previous_status, new_status, actor.user_id,
        extra={"entry_id": entry.id, "unit_id": entry.unit_id,
               "previous_status": previous_status, "new_status": new_status},
    )

    log_activity(
        action="STATUS_CHANGE",
        module="indicator_entry",
        actor=actor.user_id,
        description=f"Entry {entry.code}: {previous_status} → {new_status}",
        details={"entry_id": entry.id, "previous_status": previous_status,
                 "new_status": new_status, "items_updated": items_updated},
    )

    return {
        "entry": entry.to_dict(include_items=True),
        "previous_status": previous_status,
        "new_status": new_status,
        "verification_log": log.to_dict(),
        "items_updated": items_updated,
    }


def available_statuses(actor, entry) -> list[str]:
    """Statuses the actor could move *entry* to right now (empty when finished)."""
    if entry.status == TERMINAL_STATUS or not can_access_unit(actor, entry.unit_id):
        return []
    return [s for s in allowed_statuses(actor.role) if s != entry.status]


def get_available_transitions(actor, entry_id) -> dict:
    entry = _load_entry(entry_id)
    if not can_access_unit(actor, entry.unit_id):
        raise NotFoundError(resource="IndicatorEntry", resource_id=entry_id)
    return {
        "entry_id": entry.id,
        "current_status": entry.status,
        "available": available_statuses(actor, entry),
    }
