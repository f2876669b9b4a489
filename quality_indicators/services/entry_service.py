"""
Entry Service: create, update, read, list and soft-delete indicator entries.

Every item is scored through the achievement calculator when it is
stored. Status changes go through ``entry_lifecycle.set_status`` only.

Item payload (create and update):
    {
        "indicator_id": 7,
        "numerator_value": 5,
        "denominator_value": 500,
        "achievement": 1.0,       # optional, honored verbatim when given
        "score": 100,             # optional, honored verbatim when given
        "notes": "..."
    }
"""

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError

from quality_indicators.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from quality_indicators.models import db
from quality_indicators.models.audit import log_activity
from quality_indicators.models.entry import (
    IndicatorEntry,
    IndicatorEntryItem,
    VerificationLog,
    period_key_for,
)
from quality_indicators.models.indicator import ENTRY_FREQUENCIES, Indicator
from quality_indicators.services import hierarchy
from quality_indicators.services.achievement import evaluate
from quality_indicators.services.code_generator import insert_with_unique_code
from quality_indicators.services.entry_lifecycle import finished_conflict
from quality_indicators.services.helpers.scoped_queries import get_visible_entry
from quality_indicators.services.visibility import (
    ALL,
    can_access_unit,
    resolve_scope,
)
from quality_indicators.utils.helpers import parse_date, parse_number

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("entry_date", "entry_frequency", "notes", "auditor_notes")


# ── Validation ───────────────────────────────────────────────────────────────

def _validate_frequency(frequency):
    if frequency not in ENTRY_FREQUENCIES:
        raise ValidationError(
            "entry_frequency must be 'daily' or 'monthly'",
            details={"entry_frequency": f"got {frequency!r}"},
        )


def _validate_date(value, field="entry_date"):
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"{field} is required (YYYY-MM-DD)",
            details={field: "required" if not value else "invalid date"},
        )
    return parsed


def _build_items(items):
    """Validate the item payload and return scored IndicatorEntryItem objects."""
    if not items:
        raise ValidationError("At least one item is required", details={"items": "required"})

    indicator_ids = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict) or raw.get("indicator_id") is None:
            raise ValidationError(
                "Each item needs an indicator_id",
                details={f"items[{idx}].indicator_id": "required"},
            )
        indicator_ids.append(raw["indicator_id"])

    indicators = {
        ind.id: ind
        for ind in Indicator.query_active()
        .filter(Indicator.id.in_(indicator_ids), Indicator.is_active.is_(True))
        .all()
    }
    unknown = [i for i in indicator_ids if i not in indicators]
    if unknown:
        raise ValidationError(
            f"Unknown or inactive indicator(s): {', '.join(str(u) for u in unknown)}",
            details={"indicator_id": unknown},
        )

    built = []
    for idx, raw in enumerate(items):
        try:
            numerator = parse_number(raw.get("numerator_value"))
            denominator = parse_number(raw.get("denominator_value"))
            supplied_achievement = parse_number(raw.get("achievement"))
            supplied_score = parse_number(raw.get("score"))
        except (TypeError, ValueError):
            raise ValidationError(
                "Numeric item fields must be numbers",
                details={f"items[{idx}]": "numerator_value, denominator_value, "
                                          "achievement and score must be numeric"},
            )
        indicator = indicators[raw["indicator_id"]]
        result = evaluate(
            numerator, denominator, indicator,
            precomputed_achievement=supplied_achievement,
            precomputed_score=supplied_score,
        )
        built.append(IndicatorEntryItem(
            indicator_id=indicator.id,
            numerator_value=numerator,
            denominator_value=denominator,
            achievement=result.achievement,
            score=result.score,
            needs_corrective_action=result.needs_corrective_action,
            notes=raw.get("notes"),
        ))
    return built


def _period_conflict(unit_id, frequency, period_key, exclude_id=None):
    q = IndicatorEntry.query_active().filter(
        IndicatorEntry.unit_id == unit_id,
        IndicatorEntry.entry_frequency == frequency,
        IndicatorEntry.period_key == period_key,
    )
    if exclude_id is not None:
        q = q.filter(IndicatorEntry.id != exclude_id)
    existing = q.first()
    if existing is None:
        return None
    return ConflictError(
        resource="IndicatorEntry",
        field="period",
        value=f"{unit_id}/{frequency}/{period_key}",
        message=(
            f"An {frequency} entry for unit {unit_id} and period {period_key} "
            f"already exists ({existing.code})"
        ),
    )


# ── Create ───────────────────────────────────────────────────────────────────

def create_entry(actor, unit_id, entry_date, entry_frequency, items, notes=None) -> dict:
    """
    Create an entry with its scored items.

    Raises:
        ValidationError: missing fields, bad frequency, empty items, unknown indicator.
        NotFoundError: unit does not exist.
        AuthorizationError: unit outside the actor's scope.
        ConflictError: an entry for (unit, frequency, period) already exists,
                       or no unique code could be allocated.
    """
    if unit_id is None:
        raise ValidationError("unit_id is required", details={"unit_id": "required"})
    entry_date = _validate_date(entry_date)
    _validate_frequency(entry_frequency)

    if hierarchy.get_unit(unit_id) is None:
        raise NotFoundError(resource="Unit", resource_id=unit_id)
    if not can_access_unit(actor, unit_id):
        raise AuthorizationError(f"Unit {unit_id} is outside the scope of {actor.user_id}")

    built_items = _build_items(items)

    period_key = period_key_for(entry_date, entry_frequency)
    conflict = _period_conflict(unit_id, entry_frequency, period_key)
    if conflict is not None:
        raise conflict

    entry = IndicatorEntry(
        unit_id=unit_id,
        entry_date=entry_date,
        entry_frequency=entry_frequency,
        period_key=period_key,
        status="proposed",
        notes=notes,
        created_by=actor.user_id,
        updated_by=actor.user_id,
    )
    entry.items = built_items

    insert_with_unique_code(entry)
    db.session.commit()

    logger.info(
        "Created entry %s for unit %s (%s %s, %d items)",
        entry.code, unit_id, entry_frequency, period_key, len(built_items),
        extra={"entry_id": entry.id, "unit_id": unit_id, "entry_code": entry.code},
    )
    log_activity(
        action="CREATE",
        module="indicator_entry",
        actor=actor.user_id,
        description=f"Created entry {entry.code}",
        details={"entry_id": entry.id, "unit_id": unit_id, "period_key": period_key},
    )
    return entry.to_dict(include_items=True)


# ── Update ───────────────────────────────────────────────────────────────────

def update_entry(actor, entry_id, fields, items=None) -> dict:
    """
    Update entry fields and, when *items* is given, replace the whole item set.

    Raises:
        NotFoundError: missing or outside the actor's scope.
        ConflictError: entry is finished, or the new period is taken.
        ValidationError: unknown/forbidden field or invalid value.
    """
    entry = get_visible_entry(actor, entry_id)
    if entry.is_finished:
        raise finished_conflict(entry)

    fields = dict(fields or {})
    if "status" in fields:
        raise ValidationError(
            "status cannot be changed here; use the status transition",
            details={"status": "read-only"},
        )
    unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError(
            f"Unknown field(s): {', '.join(unknown)}",
            details={f: "not updatable" for f in unknown},
        )

    new_date = _validate_date(fields["entry_date"]) if "entry_date" in fields else entry.entry_date
    new_frequency = fields.get("entry_frequency", entry.entry_frequency)
    _validate_frequency(new_frequency)

    new_period = period_key_for(new_date, new_frequency)
    if (new_period, new_frequency) != (entry.period_key, entry.entry_frequency):
        conflict = _period_conflict(entry.unit_id, new_frequency, new_period, exclude_id=entry.id)
        if conflict is not None:
            raise conflict

    new_items = _build_items(items) if items is not None else None

    entry.entry_date = new_date
    entry.entry_frequency = new_frequency
    entry.period_key = new_period
    for f in ("notes", "auditor_notes"):
        if f in fields:
            setattr(entry, f, fields[f])
    entry.updated_by = actor.user_id

    if new_items is not None:
        # delete-orphan cascade removes the old set in the same flush
        entry.items = new_items

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(
            resource="IndicatorEntry",
            field="period",
            value=f"{entry_id}/{new_frequency}/{new_period}",
        )

    logger.info(
        "Updated entry %s (items replaced: %s)", entry.code, new_items is not None,
        extra={"entry_id": entry.id, "unit_id": entry.unit_id},
    )
    log_activity(
        action="UPDATE",
        module="indicator_entry",
        actor=actor.user_id,
        description=f"Updated entry {entry.code}",
        details={"entry_id": entry.id, "fields": sorted(fields),
                 "items_replaced": new_items is not None},
    )
    return entry.to_dict(include_items=True)


# ── Read ─────────────────────────────────────────────────────────────────────

def get_entry(actor, entry_id) -> dict:
    entry = get_visible_entry(actor, entry_id)
    data = entry.to_dict(include_items=True)
    data["site"] = entry.unit.site.to_dict() if entry.unit and entry.unit.site else None
    return data


def list_entries(
    actor,
    start_date=None,
    end_date=None,
    frequency=None,
    statuses=None,
    unit_id=None,
    division_id=None,
):
    """
    Return a query of visible, non-deleted entries, newest first.

    Date range defaults to today. ``unit_id`` is intersected with the
    actor's scope (out of scope → empty); ``division_id`` is honored for
    auditor/admin only.
    """
    today = date.today()
    start = parse_date(start_date) or today
    end = parse_date(end_date) or start
    if start > end:
        raise ValidationError("start_date must not be after end_date",
                              details={"start_date": str(start), "end_date": str(end)})
    if frequency is not None:
        _validate_frequency(frequency)

    scope = resolve_scope(
        actor,
        unit_ids=[unit_id] if unit_id is not None else None,
        division_id=division_id,
    )

    q = IndicatorEntry.query_active().filter(
        IndicatorEntry.entry_date >= start,
        IndicatorEntry.entry_date <= end,
    )
    if scope != ALL:
        if not scope:
            return q.filter(db.false())
        q = q.filter(IndicatorEntry.unit_id.in_(sorted(scope)))
    if frequency:
        q = q.filter(IndicatorEntry.entry_frequency == frequency)
    if statuses:
        q = q.filter(IndicatorEntry.status.in_(list(statuses)))
    return q.order_by(IndicatorEntry.entry_date.desc(), IndicatorEntry.id.desc())


# ── Delete ───────────────────────────────────────────────────────────────────

def delete_entry(actor, entry_id) -> dict:
    entry = get_visible_entry(actor, entry_id)
    if entry.is_finished:
        raise finished_conflict(entry)
    entry.soft_delete()
    entry.updated_by = actor.user_id
    db.session.commit()

    logger.info("Soft-deleted entry %s", entry.code,
                extra={"entry_id": entry.id, "unit_id": entry.unit_id})
    log_activity(
        action="DELETE",
        module="indicator_entry",
        actor=actor.user_id,
        description=f"Deleted entry {entry.code}",
        details={"entry_id": entry.id},
    )
    return {"id": entry.id, "code": entry.code, "deleted": True}


# ── Verification history ─────────────────────────────────────────────────────

def get_verification_logs(actor, entry_id) -> list[dict]:
    entry = get_visible_entry(actor, entry_id)
    logs = (
        VerificationLog.query.filter_by(entry_id=entry.id)
        .order_by(VerificationLog.created_at, VerificationLog.id)
        .all()
    )
    return [log.to_dict() for log in logs]
