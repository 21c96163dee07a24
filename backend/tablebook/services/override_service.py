"""
Override layer: operator overrides of slot capacity for a time range on a date.

Overrides are stored on their own and resolved at read time by resolve_ceiling; TimeSlot rows
are never rewritten, so deleting an override restores the original capacity.
Precedence when several overrides intersect a slot: any `closed` wins, otherwise the most
recently updated override wins.
"""
import logging
from collections import namedtuple
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from tablebook.core.constants import OVERRIDE_TYPE_CLOSED, OVERRIDE_TYPES
from tablebook.core.errors import OverrideConflict, OverrideNotFound
from tablebook.models.booking_override import BookingOverride
from tablebook.models.time_slot import TimeSlot
from tablebook.services.branch_service import require_branch
from tablebook.services.slot_generator import parse_hhmm

logger = logging.getLogger(__name__)

# Effective capacity of one slot after overrides
Ceiling = namedtuple("Ceiling", ["seats", "tables", "override_id", "closed"])

_UNSET = object()


def _on_day(day: date, hhmm: str) -> datetime:
    try:
        m = parse_hhmm(hhmm)
    except ValueError as e:
        raise OverrideConflict(str(e)) from None
    return datetime.combine(day, time(m // 60, m % 60))


def _window(day: date, start_hhmm: str | None, end_hhmm: str | None) -> tuple[datetime, datetime]:
    """[start, end) on day. Both omitted means the whole day (branch closed for the date)."""
    if start_hhmm is None and end_hhmm is None:
        start = datetime.combine(day, time(0, 0))
        return start, start + timedelta(days=1)
    if start_hhmm is None or end_hhmm is None:
        raise OverrideConflict("Override needs both start_time and end_time, or neither for a full day")
    start, end = _on_day(day, start_hhmm), _on_day(day, end_hhmm)
    if end <= start:
        raise OverrideConflict(f"Override end_time {end_hhmm} must be after start_time {start_hhmm}")
    return start, end


def _validate(override_type: str, new_max_seats: int | None, new_max_tables: int | None) -> None:
    if override_type not in OVERRIDE_TYPES:
        raise OverrideConflict(f"override_type must be one of {', '.join(OVERRIDE_TYPES)}")
    for value in (new_max_seats, new_max_tables):
        if value is not None and value < 0:
            raise OverrideConflict("Override capacities cannot be negative")
    if override_type != OVERRIDE_TYPE_CLOSED and new_max_seats is None and new_max_tables is None:
        raise OverrideConflict(f"A {override_type} override needs new_max_seats or new_max_tables")


def create_override(
    db: Session,
    branch_id: int,
    day: date,
    override_type: str,
    start_time: str | None = None,
    end_time: str | None = None,
    new_max_seats: int | None = None,
    new_max_tables: int | None = None,
    note: str | None = None,
) -> BookingOverride:
    require_branch(db, branch_id)
    _validate(override_type, new_max_seats, new_max_tables)
    start, end = _window(day, start_time, end_time)
    row = BookingOverride(
        branch_id=branch_id,
        date=day,
        start_time=start,
        end_time=end,
        override_type=override_type,
        new_max_seats=new_max_seats,
        new_max_tables=new_max_tables,
        note=note,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Override %s created: branch %s %s %s-%s (%s)", row.id, branch_id, day, start, end, override_type)
    return row


def get_override(db: Session, override_id: int) -> BookingOverride | None:
    return db.query(BookingOverride).filter(BookingOverride.id == override_id).first()


def require_override(db: Session, override_id: int) -> BookingOverride:
    row = get_override(db, override_id)
    if row is None:
        raise OverrideNotFound(f"Override {override_id} not found")
    return row


def list_overrides(db: Session, branch_id: int, day: date | None = None) -> list[BookingOverride]:
    q = db.query(BookingOverride).filter(BookingOverride.branch_id == branch_id)
    if day is not None:
        q = q.filter(BookingOverride.date == day)
    return q.order_by(BookingOverride.date.asc(), BookingOverride.start_time.asc(), BookingOverride.id.asc()).all()


def update_override(
    db: Session,
    override_id: int,
    day: date | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
    override_type: str | None = None,
    new_max_seats=_UNSET,
    new_max_tables=_UNSET,
    note=_UNSET,
) -> BookingOverride:
    """
    Partial update; the result is validated as a whole. Pass None for a capacity to clear it.
    A new time window needs both start_time and end_time; changing only `day` moves the window.
    """
    row = require_override(db, override_id)
    new_day = day or row.date
    new_type = override_type or row.override_type
    seats = row.new_max_seats if new_max_seats is _UNSET else new_max_seats
    tables = row.new_max_tables if new_max_tables is _UNSET else new_max_tables
    _validate(new_type, seats, tables)
    if start_time is not None or end_time is not None:
        start, end = _window(new_day, start_time, end_time)
    else:
        shift = new_day - row.date
        start, end = row.start_time + shift, row.end_time + shift
    row.date = new_day
    row.start_time = start
    row.end_time = end
    row.override_type = new_type
    row.new_max_seats = seats
    row.new_max_tables = tables
    if note is not _UNSET:
        row.note = note
    db.commit()
    db.refresh(row)
    logger.info("Override %s updated: %s %s-%s (%s)", row.id, row.date, row.start_time, row.end_time, row.override_type)
    return row


def delete_override(db: Session, override_id: int) -> None:
    row = require_override(db, override_id)
    db.delete(row)
    db.commit()
    logger.info("Override %s deleted (branch %s, %s)", override_id, row.branch_id, row.date)


def _applies(override: BookingOverride, slot: TimeSlot) -> bool:
    return (
        override.date == slot.date
        and override.start_time < slot.end_time
        and slot.start_time < override.end_time
    )


def resolve_ceiling(slot: TimeSlot, overrides: list[BookingOverride]) -> Ceiling:
    """
    Effective (seats, tables) ceiling for a slot. A retired slot or an intersecting `closed`
    override gives zero; otherwise the latest capacity/custom override replaces the slot's own
    capacity (a capacity left unset on the override keeps the slot's value).
    """
    if slot.is_closed:
        return Ceiling(0, 0, None, True)
    applicable = [o for o in overrides if _applies(o, slot)]
    if not applicable:
        return Ceiling(slot.max_seats, slot.max_tables, None, False)
    closed = [o for o in applicable if o.override_type == OVERRIDE_TYPE_CLOSED]
    if closed:
        return Ceiling(0, 0, closed[0].id, True)
    latest = max(applicable, key=lambda o: (o.updated_at or o.created_at, o.id))
    seats = latest.new_max_seats if latest.new_max_seats is not None else slot.max_seats
    tables = latest.new_max_tables if latest.new_max_tables is not None else slot.max_tables
    return Ceiling(seats, tables, latest.id, seats == 0 or tables == 0)
