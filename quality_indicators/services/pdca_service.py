"""
Corrective action (PDCA) service.

PDCA records hang off an entry item and follow the item's visibility:
an item whose entry is deleted or outside the actor's units is treated
as missing. A finished entry's items still accept PDCA records.
"""

import logging

from quality_indicators.core.exceptions import NotFoundError, ValidationError
from quality_indicators.models import db
from quality_indicators.models.audit import log_activity
from quality_indicators.models.entry import IndicatorEntry, IndicatorEntryItem
from quality_indicators.models.pdca import CorrectiveAction
from quality_indicators.services.helpers.scoped_queries import (
    get_visible_entry_or_none,
    get_visible_item,
)
from quality_indicators.services.visibility import ALL, allowed_units
from quality_indicators.utils.helpers import parse_date

logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    "step_description",
    "plan_description",
    "do_description",
    "check_study",
    "action",
)


def _validated_date(value):
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError("pdca_date is required (YYYY-MM-DD)",
                              details={"pdca_date": "required" if not value else "invalid date"})
    return parsed


def _validated_title(value):
    title = (value or "").strip() if isinstance(value, str) else ""
    if not title:
        raise ValidationError("problem_title is required", details={"problem_title": "required"})
    return title


def _get_visible_pdca(actor, pdca_id):
    pdca = db.session.get(CorrectiveAction, pdca_id)
    if pdca is None or pdca.is_deleted:
        raise NotFoundError(resource="CorrectiveAction", resource_id=pdca_id)
    item = db.session.get(IndicatorEntryItem, pdca.entry_item_id)
    if item is None or get_visible_entry_or_none(actor, item.entry_id) is None:
        raise NotFoundError(resource="CorrectiveAction", resource_id=pdca_id)
    return pdca


def create_pdca(actor, entry_item_id, pdca_date, problem_title, **texts) -> dict:
    if entry_item_id is None:
        raise ValidationError("entry_item_id is required", details={"entry_item_id": "required"})
    pdca_date = _validated_date(pdca_date)
    problem_title = _validated_title(problem_title)
    unknown = sorted(set(texts) - set(TEXT_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}",
                              details={f: "unknown" for f in unknown})

    item = get_visible_item(actor, entry_item_id)

    pdca = CorrectiveAction(
        entry_item_id=item.id,
        pdca_date=pdca_date,
        problem_title=problem_title,
        created_by=actor.user_id,
        **{f: texts.get(f) for f in TEXT_FIELDS},
    )
    db.session.add(pdca)
    db.session.commit()

    logger.info("Created PDCA %s for item %s", pdca.id, item.id,
                extra={"entry_id": item.entry_id})
    log_activity(
        action="CREATE",
        module="pdca",
        actor=actor.user_id,
        description=f"Created PDCA '{problem_title}'",
        details={"pdca_id": pdca.id, "entry_item_id": item.id},
    )
    return pdca.to_dict()


def update_pdca(actor, pdca_id, fields) -> dict:
    pdca = _get_visible_pdca(actor, pdca_id)
    fields = dict(fields or {})
    unknown = sorted(set(fields) - set(TEXT_FIELDS) - {"pdca_date", "problem_title"})
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}",
                              details={f: "not updatable" for f in unknown})

    if "pdca_date" in fields:
        pdca.pdca_date = _validated_date(fields["pdca_date"])
    if "problem_title" in fields:
        pdca.problem_title = _validated_title(fields["problem_title"])
    for f in TEXT_FIELDS:
        if f in fields:
            setattr(pdca, f, fields[f])
    db.session.commit()

    log_activity(
        action="UPDATE",
        module="pdca",
        actor=actor.user_id,
        description=f"Updated PDCA {pdca.id}",
        details={"pdca_id": pdca.id, "fields": sorted(fields)},
    )
    return pdca.to_dict()


def get_pdca(actor, pdca_id) -> dict:
    pdca = _get_visible_pdca(actor, pdca_id)
    data = pdca.to_dict()
    data["entry_item"] = pdca.entry_item.to_dict()
    return data


def list_pdcas(actor, entry_item_id=None) -> list[dict]:
    q = (
        db.session.query(CorrectiveAction)
        .join(IndicatorEntryItem, IndicatorEntryItem.id == CorrectiveAction.entry_item_id)
        .join(IndicatorEntry, IndicatorEntry.id == IndicatorEntryItem.entry_id)
        .filter(CorrectiveAction.deleted_at.is_(None), IndicatorEntry.deleted_at.is_(None))
    )
    allowed = allowed_units(actor)
    if allowed != ALL:
        if not allowed:
            return []
        q = q.filter(IndicatorEntry.unit_id.in_(sorted(allowed)))
    if entry_item_id is not None:
        q = q.filter(CorrectiveAction.entry_item_id == entry_item_id)
    return [p.to_dict() for p in q.order_by(CorrectiveAction.pdca_date.desc(), CorrectiveAction.id.desc()).all()]


def delete_pdca(actor, pdca_id) -> dict:
    pdca = _get_visible_pdca(actor, pdca_id)
    pdca.soft_delete()
    db.session.commit()
    log_activity(
        action="DELETE",
        module="pdca",
        actor=actor.user_id,
        description=f"Deleted PDCA {pdca.id}",
        details={"pdca_id": pdca.id},
    )
    return {"id": pdca.id, "deleted": True}


def pdca_queue(actor) -> list[dict]:
    """Items flagged for corrective action in visible entries, with a has_pdca marker."""
    q = (
        db.session.query(IndicatorEntryItem, IndicatorEntry)
        .join(IndicatorEntry, IndicatorEntry.id == IndicatorEntryItem.entry_id)
        .filter(
            IndicatorEntryItem.needs_corrective_action.is_(True),
            IndicatorEntry.deleted_at.is_(None),
        )
    )
    allowed = allowed_units(actor)
    if allowed != ALL:
        if not allowed:
            return []
        q = q.filter(IndicatorEntry.unit_id.in_(sorted(allowed)))
    rows = q.order_by(IndicatorEntry.entry_date.desc(), IndicatorEntryItem.id).all()

    item_ids = [item.id for item, _entry in rows]
    with_pdca = set()
    if item_ids:
        with_pdca = {
            r[0]
            for r in db.session.query(CorrectiveAction.entry_item_id)
            .filter(CorrectiveAction.entry_item_id.in_(item_ids), CorrectiveAction.deleted_at.is_(None))
            .distinct()
            .all()
        }

    queue = []
    for item, entry in rows:
        data = item.to_dict()
        data.update({
            "entry_code": entry.code,
            "entry_date": entry.entry_date.isoformat(),
            "entry_status": entry.status,
            "unit_id": entry.unit_id,
            "unit_name": entry.unit.name if entry.unit else None,
            "has_pdca": item.id in with_pdca,
        })
        queue.append(data)
    return queue
