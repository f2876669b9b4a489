"""
Entry code generator.

Format:  NM/{YYYYMMDD}/{seq:05d}      e.g. NM/20240115/00001

The sequence is global across units, resets every calendar day and
continues from the highest code already stored for that day
(soft-deleted entries included).

Reading the last code and inserting are two steps, so two writers on the
same day can compute the same code. The unique constraint on
``indicator_entries.code`` is the final authority; ``insert_with_unique_code``
retries inside a SAVEPOINT until a fresh code sticks.
"""

import logging

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from quality_indicators.core.exceptions import ConflictError
from quality_indicators.models import db
from quality_indicators.models.entry import IndicatorEntry

logger = logging.getLogger(__name__)

CODE_PREFIX = "NM"
SEQUENCE_WIDTH = 5
DEFAULT_MAX_RETRIES = 5


def day_prefix(entry_date) -> str:
    return f"{CODE_PREFIX}/{entry_date.strftime('%Y%m%d')}/"


def _last_sequence(entry_date) -> int:
    """Highest sequence number already used on *entry_date* (0 when none)."""
    prefix = day_prefix(entry_date)
    with db.session.no_autoflush:
        last_code = (
            db.session.query(func.max(IndicatorEntry.code))
            .filter(IndicatorEntry.code.like(f"{prefix}%"))
            .scalar()
        )
    if not last_code:
        return 0
    try:
        return int(last_code.rsplit("/", 1)[-1])
    except ValueError:
        logger.warning("Ignoring malformed entry code %r", last_code)
        return 0


def next_code(entry_date) -> str:
    """Generate the next entry code for *entry_date*: NM/YYYYMMDD/00001, ..."""
    seq = _last_sequence(entry_date) + 1
    return f"{day_prefix(entry_date)}{seq:0{SEQUENCE_WIDTH}d}"


def _period_taken(entry) -> bool:
    return (
        db.session.query(IndicatorEntry.id)
        .filter(
            IndicatorEntry.unit_id == entry.unit_id,
            IndicatorEntry.entry_frequency == entry.entry_frequency,
            IndicatorEntry.period_key == entry.period_key,
            IndicatorEntry.deleted_at.is_(None),
        )
        .first()
        is not None
    )


def _code_taken(code) -> bool:
    return db.session.query(IndicatorEntry.id).filter(IndicatorEntry.code == code).first() is not None


def insert_with_unique_code(entry, max_retries=None):
    """
    Assign a code to *entry* and flush it, retrying on code collisions.

    Each attempt runs inside a SAVEPOINT so a failed flush leaves the
    outer transaction usable. The caller commits.

    Raises:
        ConflictError(field="period"): another entry took the same period.
        ConflictError(field="code"): no free code after ``max_retries`` attempts.
    """
    if max_retries is None:
        max_retries = current_app.config.get("ENTRY_CODE_MAX_RETRIES", DEFAULT_MAX_RETRIES)

    for attempt in range(1, max_retries + 1):
        entry.code = next_code(entry.entry_date)
        try:
            with db.session.begin_nested():
                db.session.add(entry)
                db.session.flush()
            return entry
        except IntegrityError:
            if _period_taken(entry):
                raise ConflictError(
                    resource="IndicatorEntry",
                    field="period",
                    value=f"{entry.unit_id}/{entry.entry_frequency}/{entry.period_key}",
                )
            if not _code_taken(entry.code):
                raise
            logger.warning(
                "Entry code %s already taken (attempt %d/%d), regenerating",
                entry.code, attempt, max_retries,
                extra={"entry_code": entry.code, "unit_id": entry.unit_id},
            )

    raise ConflictError(
        resource="IndicatorEntry",
        field="code",
        value=day_prefix(entry.entry_date),
        message=f"Could not allocate a unique entry code after {max_retries} attempts",
    )
