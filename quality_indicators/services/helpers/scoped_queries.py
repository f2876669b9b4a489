"""
Visibility-scoped query helpers.

Every get-by-id on unit-owned data (entries, entry items, corrective
actions) goes through these helpers instead of ``db.session.get``, so a
record in a unit outside the actor's scope is indistinguishable from a
missing one: both raise NotFoundError → HTTP 404.

Usage:
    entry = get_visible_entry(actor, entry_id)
    item = get_visible_item(actor, item_id)
    entry = get_visible_entry_or_none(actor, entry_id)
"""

import logging

from quality_indicators.core.exceptions import NotFoundError
from quality_indicators.models import db
from quality_indicators.models.entry import IndicatorEntry, IndicatorEntryItem
from quality_indicators.services.visibility import can_access_unit

logger = logging.getLogger(__name__)


def get_visible_entry_or_none(actor, entry_id):
    """Return the non-deleted entry if the actor may see its unit, else None."""
    if entry_id is None:
        return None
    entry = db.session.get(IndicatorEntry, entry_id)
    if entry is None or entry.is_deleted:
        return None
    if not can_access_unit(actor, entry.unit_id):
        logger.debug(
            "Entry %s hidden from %s (unit %s out of scope)",
            entry_id, getattr(actor, "user_id", None), entry.unit_id,
        )
        return None
    return entry


def get_visible_entry(actor, entry_id):
    entry = get_visible_entry_or_none(actor, entry_id)
    if entry is None:
        raise NotFoundError(resource="IndicatorEntry", resource_id=entry_id)
    return entry


def get_visible_item(actor, item_id):
    """Fetch an entry item whose entry is visible and not deleted."""
    item = db.session.get(IndicatorEntryItem, item_id) if item_id is not None else None
    if item is None or get_visible_entry_or_none(actor, item.entry_id) is None:
        raise NotFoundError(resource="IndicatorEntryItem", resource_id=item_id)
    return item
