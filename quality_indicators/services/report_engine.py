"""
Report Engine: read-only aggregation over indicator entries.

Reports:
    unit_period_report   one unit, one day or one month, one row per item
    unit_range_report    one unit, date range, ratio of sums per indicator
    yearly_matrix        (indicator × unit) rows with 12 monthly cells
    period_summary       per unit: assigned / achieved / percentage
    dashboard_stats      headline counters for one month
    daily_entries        a day's daily entries with item completion

Every report resolves its unit set as ``requested ∩ allowed_units(actor)``;
division and site filters are translated to unit ids first. Nothing is
cached and nothing is written.

Two score notions are kept apart in range reports:
    point_score           calculator score on the aggregated achievement
    period_average_score  mean of the per-entry item scores
"""

import calendar
import logging
import math
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func

from quality_indicators.core.exceptions import NotFoundError, ValidationError
from quality_indicators.models import db
from quality_indicators.models.entry import TERMINAL_STATUS, IndicatorEntry, IndicatorEntryItem
from quality_indicators.models.indicator import (
    ENTRY_FREQUENCIES,
    Indicator,
    IndicatorCategory,
    IndicatorUnit,
)
from quality_indicators.models.organization import Unit
from quality_indicators.models.pdca import CorrectiveAction
from quality_indicators.services import hierarchy
from quality_indicators.services.achievement import (
    compute_achievement,
    evaluate,
    is_achieved,
    point,
    weighted_score,
)
from quality_indicators.services.visibility import (
    can_access_unit,
    resolve_scope,
    units_in_scope,
)
from quality_indicators.utils.helpers import parse_date

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
)


# ── Shared helpers ───────────────────────────────────────────────────────────

def _visible_unit_or_404(actor, unit_id):
    unit = hierarchy.get_unit(unit_id)
    if unit is None or not can_access_unit(actor, unit_id):
        raise NotFoundError(resource="Unit", resource_id=unit_id)
    return unit


def _check_frequency(frequency):
    if frequency not in ENTRY_FREQUENCIES:
        raise ValidationError("frequency must be 'daily' or 'monthly'",
                              details={"frequency": f"got {frequency!r}"})


def month_bounds(year, month):
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def period_bounds(frequency, period):
    """Return (start, end) for a daily date or a monthly YYYY-MM period."""
    if frequency == "monthly":
        if isinstance(period, date):
            return month_bounds(period.year, period.month)
        try:
            year, month = (int(p) for p in str(period).split("-")[:2])
            return month_bounds(year, month)
        except (TypeError, ValueError):
            raise ValidationError("period must be YYYY-MM", details={"period": str(period)})
    day = parse_date(period)
    if day is None:
        raise ValidationError("period must be YYYY-MM-DD", details={"period": str(period)})
    return day, day


def _item_rows(unit_ids, start, end, frequency=None):
    """(entry, item, indicator) tuples for non-deleted entries in the window."""
    if not unit_ids:
        return []
    q = (
        db.session.query(IndicatorEntry, IndicatorEntryItem, Indicator)
        .join(IndicatorEntryItem, IndicatorEntryItem.entry_id == IndicatorEntry.id)
        .join(Indicator, Indicator.id == IndicatorEntryItem.indicator_id)
        .filter(
            IndicatorEntry.unit_id.in_(sorted(unit_ids)),
            IndicatorEntry.entry_date >= start,
            IndicatorEntry.entry_date <= end,
            IndicatorEntry.deleted_at.is_(None),
        )
    )
    if frequency:
        q = q.filter(IndicatorEntry.entry_frequency == frequency)
    return q.order_by(IndicatorEntry.entry_date, IndicatorEntry.id, IndicatorEntryItem.id).all()


def _item_evaluation(item, indicator):
    """Recompute from the raw pair; fall back to the stored achievement when the pair is unusable."""
    result = evaluate(item.numerator_value, item.denominator_value, indicator)
    if result.achievement is None and item.achievement is not None:
        result = evaluate(None, None, indicator, precomputed_achievement=item.achievement)
    return result


def _unit_header(unit):
    site = unit.site
    head = unit.head_of_unit
    return {
        "site": {
            "id": site.id if site else None,
            "name": site.name if site else None,
            "address": site.address if site else None,
            "logo": site.site_logo if site else None,
        },
        "unit": {
            "id": unit.id,
            "name": unit.name,
            "code": unit.unit_code,
            "head_of_unit": head.full_name if head else None,
        },
    }


def _indicator_snapshot(indicator):
    return {
        "indicator_id": indicator.id,
        "code": indicator.code,
        "title": indicator.title,
        "numerator_label": indicator.numerator_label,
        "denominator_label": indicator.denominator_label,
        "target": indicator.target,
        "target_comparator": indicator.target_comparator,
        "target_unit": indicator.target_unit,
        "target_weight": indicator.target_weight or 0,
        "calculation_formula": indicator.calculation_formula,
    }


def _round_half_up(value):
    return int(math.floor(value + 0.5))


# ── 1. Single-period detail ──────────────────────────────────────────────────

def unit_period_report(actor, unit_id, frequency, period_date) -> dict:
    """
    Detail rows for one unit over one day (daily) or one calendar month (monthly).

    Raises:
        NotFoundError: unit unknown or outside the actor's scope.
        ValidationError: bad frequency or period.
    """
    _check_frequency(frequency)
    unit = _visible_unit_or_404(actor, unit_id)
    start, end = period_bounds(frequency, period_date)

    rows = []
    for entry, item, indicator in _item_rows({unit.id}, start, end, frequency):
        recomputed = _item_evaluation(item, indicator)
        score = item.score if item.score is not None else recomputed.score
        row = _indicator_snapshot(indicator)
        row.update({
            "entry_id": entry.id,
            "entry_code": entry.code,
            "entry_date": entry.entry_date.isoformat(),
            "item_id": item.id,
            "numerator_value": item.numerator_value,
            "denominator_value": item.denominator_value,
            "achievement": recomputed.achievement,
            "result": item.achievement if item.achievement is not None else recomputed.achievement,
            "achieved": recomputed.achieved,
            "score": score,
            "point": point(recomputed, indicator.target_weight),
            "weighted_score": weighted_score(score, indicator.target_weight),
            "needs_corrective_action": item.needs_corrective_action,
            "is_already_checked": item.is_already_checked,
            "status": entry.status,
            "notes": item.notes,
        })
        rows.append(row)

    report = _unit_header(unit)
    if frequency == "monthly":
        label = f"{MONTH_NAMES[start.month - 1]} {start.year}"
    else:
        label = f"{start.day} {MONTH_NAMES[start.month - 1]} {start.year}"
    report.update({
        "period": {
            "frequency": frequency,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "year": start.year,
            "month": start.month,
            "label": label,
        },
        "items": rows,
        "generated_at": datetime.now(timezone.utc).isoformat(),
    })
    return report


# ── 2. Range aggregation ─────────────────────────────────────────────────────

def unit_range_report(actor, unit_id, start_date, end_date, frequency=None) -> dict:
    """
    Per-indicator aggregation for one unit across a date range.

    Numerators and denominators are summed first and the formula is applied
    once to the sums (ratio of sums, not mean of ratios).
    """
    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        raise ValidationError("start_date and end_date are required (YYYY-MM-DD)",
                              details={"start_date": start_date, "end_date": end_date})
    if start > end:
        raise ValidationError("start_date must not be after end_date",
                              details={"start_date": start.isoformat(), "end_date": end.isoformat()})
    if frequency is not None:
        _check_frequency(frequency)
    unit = _visible_unit_or_404(actor, unit_id)

    buckets = {}
    for entry, item, indicator in _item_rows({unit.id}, start, end, frequency):
        b = buckets.setdefault(indicator.id, {
            "indicator": indicator,
            "numerator": 0.0,
            "denominator": 0.0,
            "has_pair": False,
            "entry_ids": set(),
            "scores": [],
        })
        b["entry_ids"].add(entry.id)
        if item.numerator_value is not None and item.denominator_value is not None:
            b["numerator"] += item.numerator_value
            b["denominator"] += item.denominator_value
            b["has_pair"] = True
        item_score = item.score
        if item_score is None:
            item_score = _item_evaluation(item, indicator).score
        if item_score is not None:
            b["scores"].append(item_score)

    rows = []
    for b in sorted(buckets.values(), key=lambda x: x["indicator"].code):
        indicator = b["indicator"]
        numerator = b["numerator"] if b["has_pair"] else None
        denominator = b["denominator"] if b["has_pair"] else None
        aggregated = evaluate(numerator, denominator, indicator)
        row = _indicator_snapshot(indicator)
        row.update({
            "entry_count": len(b["entry_ids"]),
            "numerator_total": numerator,
            "denominator_total": denominator,
            "achievement": aggregated.achievement,
            "achieved": aggregated.achieved,
            "point": point(aggregated, indicator.target_weight),
            "point_score": aggregated.score,
            "period_average_score": (sum(b["scores"]) / len(b["scores"])) if b["scores"] else None,
            "needs_corrective_action": aggregated.needs_corrective_action,
        })
        rows.append(row)

    report = _unit_header(unit)
    report.update({
        "period": {
            "frequency": frequency,
            "start": start.isoformat(),
            "end": end.isoformat(),
        },
        "items": rows,
        "generated_at": datetime.now(timezone.utc).isoformat(),
    })
    return report


# ── 3. Yearly matrix ─────────────────────────────────────────────────────────

def _assignments(unit_ids, frequency, category_id=None):
    """Active (indicator, unit) assignments for the given units and frequency."""
    if not unit_ids:
        return []
    q = (
        db.session.query(Indicator, Unit)
        .join(IndicatorUnit, IndicatorUnit.indicator_id == Indicator.id)
        .join(Unit, Unit.id == IndicatorUnit.unit_id)
        .filter(
            Indicator.deleted_at.is_(None),
            Indicator.is_active.is_(True),
            Indicator.entry_frequency == frequency,
            Unit.deleted_at.is_(None),
            Unit.id.in_(sorted(unit_ids)),
        )
    )
    if category_id is not None:
        q = q.filter(Indicator.category_id == category_id)
    return q.order_by(Unit.name, Unit.id, Indicator.code).all()


def _month_achievement(cell_items, indicator):
    """One item: honor its stored value. Several items: ratio of sums."""
    if not cell_items:
        return None
    if len(cell_items) == 1:
        item = cell_items[0]
        if item.achievement is not None:
            return item.achievement
        return compute_achievement(item.numerator_value, item.denominator_value,
                                   indicator.calculation_formula)
    pairs = [
        (i.numerator_value, i.denominator_value)
        for i in cell_items
        if i.numerator_value is not None and i.denominator_value is not None
    ]
    if not pairs:
        return None
    return compute_achievement(sum(p[0] for p in pairs), sum(p[1] for p in pairs),
                               indicator.calculation_formula)


def yearly_matrix(
    actor,
    year,
    frequency="monthly",
    category_id=None,
    division_id=None,
    site_id=None,
    unit_ids=None,
) -> dict:
    """
    Build the (indicator × unit) matrix for *year*.

    Returns:
        {"year", "frequency", "categories", "unit_groups": [
            {"unit_id", "unit_name", "not_achieved_count": [12],
             "indicators": [{"no", "indicator_id", "code", "title", "target",
                             "target_comparator", "target_unit",
                             "monthly_results": [{"month", "achievement", "achieved"}]}]}
        ], "generated_at"}
    """
    _check_frequency(frequency)
    try:
        year = int(year)
    except (TypeError, ValueError):
        raise ValidationError("year must be an integer", details={"year": year})

    scope = resolve_scope(actor, unit_ids=unit_ids, division_id=division_id, site_id=site_id)
    units = units_in_scope(scope)

    categories = [
        c.to_dict()
        for c in IndicatorCategory.query_active().order_by(IndicatorCategory.name).all()
    ]

    assignments = _assignments(units, frequency, category_id)

    cells = defaultdict(list)
    for entry, item, _indicator in _item_rows(
        {u.id for _i, u in assignments}, date(year, 1, 1), date(year, 12, 31), frequency,
    ):
        cells[(item.indicator_id, entry.unit_id, entry.entry_date.month)].append(item)

    groups = {}
    row_no = 0
    for indicator, unit in assignments:
        group = groups.get(unit.id)
        if group is None:
            group = groups[unit.id] = {
                "unit_id": unit.id,
                "unit_name": unit.name,
                "indicators": [],
                "not_achieved_count": [0] * 12,
            }
        row_no += 1

        monthly = []
        for month in range(1, 13):
            achievement = _month_achievement(cells.get((indicator.id, unit.id, month)), indicator)
            achieved = is_achieved(achievement, indicator.target, indicator.target_comparator)
            if achievement is not None and indicator.target is not None and not achieved:
                group["not_achieved_count"][month - 1] += 1
            monthly.append({"month": month, "achievement": achievement, "achieved": achieved})

        group["indicators"].append({
            "no": row_no,
            "indicator_id": indicator.id,
            "code": indicator.code,
            "title": indicator.title,
            "unit_id": unit.id,
            "unit_name": unit.name,
            "target": indicator.target,
            "target_comparator": indicator.target_comparator,
            "target_unit": indicator.target_unit,
            "monthly_results": monthly,
        })

    logger.debug("Yearly matrix %s/%s: %d rows over %d units",
                 year, frequency, row_no, len(groups))

    return {
        "year": year,
        "frequency": frequency,
        "category_id": category_id,
        "categories": categories,
        "unit_groups": list(groups.values()),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


# ── 4. Period summary ────────────────────────────────────────────────────────

def period_summary(actor, frequency, period, division_id=None) -> list[dict]:
    """Per visible unit: indicators assigned, achieved in the period, rounded percentage."""
    _check_frequency(frequency)
    start, end = period_bounds(frequency, period)
    units = units_in_scope(resolve_scope(actor, division_id=division_id))
    if not units:
        return []

    unit_rows = (
        Unit.query_active().filter(Unit.id.in_(sorted(units)))
        .order_by(Unit.name, Unit.id).all()
    )
    assigned = defaultdict(list)
    for indicator, unit in _assignments(units, frequency):
        assigned[unit.id].append(indicator)

    first_item = {}
    for entry, item, indicator in _item_rows(units, start, end, frequency):
        first_item.setdefault((entry.unit_id, indicator.id), item)

    summary = []
    for unit in unit_rows:
        indicators = assigned.get(unit.id, [])
        achieved_count = 0
        for indicator in indicators:
            item = first_item.get((unit.id, indicator.id))
            if item is None:
                continue
            achievement = item.achievement
            if achievement is None:
                achievement = compute_achievement(item.numerator_value, item.denominator_value,
                                                  indicator.calculation_formula)
            if is_achieved(achievement, indicator.target, indicator.target_comparator):
                achieved_count += 1
        total = len(indicators)
        summary.append({
            "unit_id": unit.id,
            "unit": unit.name,
            "indicators": total,
            "achieved": achieved_count,
            "percentage": _round_half_up(achieved_count / total * 100) if total else 0,
        })
    return summary


# ── 5. Dashboard ─────────────────────────────────────────────────────────────

def _dashboard_units(actor, unit_id):
    if unit_id is not None:
        _visible_unit_or_404(actor, unit_id)
    scope = resolve_scope(actor, unit_ids=[unit_id] if unit_id is not None else None)
    return sorted(units_in_scope(scope))


def dashboard_stats(actor, year=None, month=None, unit_id=None) -> dict:
    """
    Headline counters over the actor's units for one calendar month.

    Returns:
        {"active_indicators", "entries_this_month", "flagged_items",
         "pending_pdcas", "pdcas_created", "unfinished_entries",
         "filter": {"year", "month", "unit_id"}}

    ``unfinished_entries`` is not limited to the month. ``pending_pdcas``
    counts flagged items of the month that have no corrective action yet.
    """
    today = date.today()
    try:
        year = int(year) if year not in (None, "") else today.year
        month = int(month) if month not in (None, "") else today.month
    except (TypeError, ValueError):
        raise ValidationError("year and month must be integers",
                              details={"year": year, "month": month})
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12", details={"month": month})

    units = _dashboard_units(actor, unit_id)
    start, end = month_bounds(year, month)
    created_from = datetime(start.year, start.month, start.day, tzinfo=timezone.utc)
    created_to = datetime(end.year, end.month, end.day, tzinfo=timezone.utc) + timedelta(days=1)

    stats = {
        "active_indicators": 0,
        "entries_this_month": 0,
        "flagged_items": 0,
        "pending_pdcas": 0,
        "pdcas_created": 0,
        "unfinished_entries": 0,
        "filter": {"year": year, "month": month, "unit_id": unit_id},
    }
    if not units:
        return stats

    stats["active_indicators"] = (
        db.session.query(func.count(func.distinct(Indicator.id)))
        .join(IndicatorUnit, IndicatorUnit.indicator_id == Indicator.id)
        .filter(
            IndicatorUnit.unit_id.in_(units),
            Indicator.is_active.is_(True),
            Indicator.deleted_at.is_(None),
        )
        .scalar()
    )

    live_entries = IndicatorEntry.query_active().filter(IndicatorEntry.unit_id.in_(units))
    stats["entries_this_month"] = live_entries.filter(
        IndicatorEntry.entry_date >= start,
        IndicatorEntry.entry_date <= end,
    ).count()
    stats["unfinished_entries"] = live_entries.filter(
        IndicatorEntry.status != TERMINAL_STATUS,
    ).count()

    flagged_ids = [
        item_id
        for (item_id,) in db.session.query(IndicatorEntryItem.id)
        .join(IndicatorEntry, IndicatorEntry.id == IndicatorEntryItem.entry_id)
        .filter(
            IndicatorEntry.unit_id.in_(units),
            IndicatorEntry.deleted_at.is_(None),
            IndicatorEntry.entry_date >= start,
            IndicatorEntry.entry_date <= end,
            IndicatorEntryItem.needs_corrective_action.is_(True),
        )
        .all()
    ]
    stats["flagged_items"] = len(flagged_ids)
    if flagged_ids:
        covered = {
            item_id
            for (item_id,) in db.session.query(CorrectiveAction.entry_item_id)
            .filter(
                CorrectiveAction.entry_item_id.in_(flagged_ids),
                CorrectiveAction.deleted_at.is_(None),
            )
            .distinct()
            .all()
        }
        stats["pending_pdcas"] = len(set(flagged_ids) - covered)

    stats["pdcas_created"] = (
        db.session.query(func.count(CorrectiveAction.id))
        .join(IndicatorEntryItem, IndicatorEntryItem.id == CorrectiveAction.entry_item_id)
        .join(IndicatorEntry, IndicatorEntry.id == IndicatorEntryItem.entry_id)
        .filter(
            IndicatorEntry.unit_id.in_(units),
            IndicatorEntry.deleted_at.is_(None),
            CorrectiveAction.deleted_at.is_(None),
            CorrectiveAction.created_at >= created_from,
            CorrectiveAction.created_at < created_to,
        )
        .scalar()
    )
    return stats


def daily_entries(actor, day=None, unit_id=None, limit=10) -> list[dict]:
    """A day's daily-frequency entries (newest first) with item completion counts."""
    if day in (None, ""):
        day = date.today()
    else:
        parsed = parse_date(day)
        if parsed is None:
            raise ValidationError("date must be YYYY-MM-DD", details={"date": str(day)})
        day = parsed

    units = _dashboard_units(actor, unit_id)
    if not units:
        return []
    entries = (
        IndicatorEntry.query_active()
        .filter(
            IndicatorEntry.unit_id.in_(units),
            IndicatorEntry.entry_frequency == "daily",
            IndicatorEntry.entry_date == day,
        )
        .order_by(IndicatorEntry.created_at.desc(), IndicatorEntry.id.desc())
        .limit(limit)
        .all()
    )
    rows = []
    for entry in entries:
        row = entry.to_dict(include_items=True)
        row["items_count"] = len(entry.items)
        row["completed_items"] = sum(1 for i in entry.items if i.numerator_value is not None)
        rows.append(row)
    return rows
