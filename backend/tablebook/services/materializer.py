"""
Time-slot materializer: turns booking settings into persisted TimeSlot rows for the next N days.

- One row per (branch_id, start_time); inserts use ON CONFLICT DO NOTHING so re-runs and
  concurrent runs (scheduled job vs. operator request) never duplicate or fail on existing slots.
- Each slot gets a slot_occupancy row (seats_held/tables_held = 0) for the admission gate.
- Each day is committed on its own. A failing day is rolled back, logged and counted;
  the run continues with the next day.
"""
import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tablebook.core.constants import MATERIALIZE_MAX_DAYS
from tablebook.core.errors import InvalidSlot
from tablebook.models.booking_settings import BookingSettings
from tablebook.models.slot_occupancy import SlotOccupancy
from tablebook.models.time_slot import TimeSlot
from tablebook.services.booking_settings_service import require_booking_settings
from tablebook.services.branch_service import branch_now, require_branch
from tablebook.services.slot_generator import generate_slots, parse_hhmm

logger = logging.getLogger(__name__)


def _insert(db: Session, model):
    """Dialect insert with on_conflict_do_nothing (PostgreSQL in production, SQLite locally/tests)."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


def _slot_start(day: date, hhmm: str) -> datetime:
    m = parse_hhmm(hhmm)
    return datetime.combine(day, time(m // 60, m % 60))


def _materialize_day(db: Session, branch_id: int, cfg: BookingSettings, day: date, times: list[str]) -> int:
    created = 0
    interval = timedelta(minutes=cfg.interval_minutes)
    for hhmm in times:
        start = _slot_start(day, hhmm)
        result = db.execute(
            _insert(db, TimeSlot)
            .values(
                branch_id=branch_id,
                date=day,
                start_time=start,
                end_time=start + interval,
                max_seats=cfg.max_seats_per_slot,
                max_tables=cfg.max_tables_per_slot,
                is_closed=False,
            )
            .on_conflict_do_nothing(index_elements=["branch_id", "start_time"])
        )
        created += result.rowcount or 0
    slot_ids = [
        sid
        for (sid,) in db.query(TimeSlot.id).filter(TimeSlot.branch_id == branch_id, TimeSlot.date == day).all()
    ]
    for sid in slot_ids:
        db.execute(
            _insert(db, SlotOccupancy)
            .values(time_slot_id=sid, seats_held=0, tables_held=0)
            .on_conflict_do_nothing(index_elements=["time_slot_id"])
        )
    return created


def materialize(
    db: Session,
    branch_id: int,
    days: int,
    booking_settings: BookingSettings | None = None,
    start_date: date | None = None,
) -> int:
    """
    Materialize slots for `days` consecutive dates starting at start_date (default: today at the branch).
    Returns the number of TimeSlot rows actually created; existing slots are skipped, not counted.
    Raises ConfigurationMissing when the branch has no settings.
    """
    branch = require_branch(db, branch_id)
    cfg = booking_settings or require_booking_settings(db, branch_id)
    if days > MATERIALIZE_MAX_DAYS:
        logger.warning(
            "Materialize branch %s: %s days requested, capped at %s", branch_id, days, MATERIALIZE_MAX_DAYS
        )
    days = max(0, min(days, MATERIALIZE_MAX_DAYS))
    if start_date is None:
        start_date = branch_now(branch).date()
    times = generate_slots(cfg.open_time, cfg.close_time, cfg.interval_minutes)

    created = 0
    failed_days = 0
    for offset in range(days):
        day = start_date + timedelta(days=offset)
        try:
            n = _materialize_day(db, branch_id, cfg, day, times)
            db.commit()
            created += n
        except SQLAlchemyError as e:
            db.rollback()
            failed_days += 1
            logger.warning("Materialize branch %s day %s failed: %s", branch_id, day, e, exc_info=True)
    if failed_days:
        logger.warning(
            "Materialize branch %s: %s created, %s of %s days failed", branch_id, created, failed_days, days
        )
    else:
        logger.info("Materialize branch %s: %s slots created over %s days from %s", branch_id, created, days, start_date)
    return created


def list_time_slots(db: Session, branch_id: int, day: date, include_closed: bool = True) -> list[TimeSlot]:
    q = db.query(TimeSlot).filter(TimeSlot.branch_id == branch_id, TimeSlot.date == day)
    if not include_closed:
        q = q.filter(TimeSlot.is_closed.is_(False))
    return q.order_by(TimeSlot.start_time.asc()).all()


def get_time_slot(db: Session, slot_id: int) -> TimeSlot | None:
    return db.query(TimeSlot).filter(TimeSlot.id == slot_id).first()


def retire_slot(db: Session, slot_id: int) -> TimeSlot:
    """Soft-retire a slot: it stays in history but admits nothing and reports zero availability."""
    slot = get_time_slot(db, slot_id)
    if slot is None:
        raise InvalidSlot(f"Time slot {slot_id} not found")
    if not slot.is_closed:
        slot.is_closed = True
        db.commit()
        db.refresh(slot)
        logger.info("Retired time slot %s (branch %s, %s)", slot.id, slot.branch_id, slot.start_time)
    return slot
