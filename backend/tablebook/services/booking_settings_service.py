"""
Booking-settings store: one policy record per branch.

Changing settings affects slots materialized afterwards only; existing time slots and
bookings keep the capacity they were created with.
"""
import logging

from sqlalchemy.orm import Session

from tablebook.core.constants import (
    DEFAULT_MAX_SEATS_PER_SLOT,
    DEFAULT_MAX_TABLES_PER_SLOT,
    DEFAULT_SLOT_INTERVAL_MINUTES,
)
from tablebook.core.errors import ConfigurationMissing, InvalidSettings
from tablebook.models.booking_settings import BookingSettings
from tablebook.services.branch_service import require_branch
from tablebook.services.slot_generator import parse_hhmm

logger = logging.getLogger(__name__)


def get_booking_settings(db: Session, branch_id: int) -> BookingSettings | None:
    return db.query(BookingSettings).filter(BookingSettings.branch_id == branch_id).first()


def require_booking_settings(db: Session, branch_id: int) -> BookingSettings:
    row = get_booking_settings(db, branch_id)
    if row is None:
        raise ConfigurationMissing(f"Branch {branch_id} has no booking settings")
    return row


def _validate(open_time: str, close_time: str, interval_minutes: int, seats: int, tables: int) -> None:
    try:
        open_m, close_m = parse_hhmm(open_time), parse_hhmm(close_time)
    except ValueError as e:
        raise InvalidSettings(str(e)) from None
    if open_m >= close_m:
        raise InvalidSettings(f"open_time {open_time} must be before close_time {close_time}")
    if interval_minutes <= 0:
        raise InvalidSettings("interval must be a positive number of minutes")
    if seats < 1 or tables < 1:
        raise InvalidSettings("max seats and max tables per slot must be at least 1")


def upsert_booking_settings(
    db: Session,
    branch_id: int,
    open_time: str | None = None,
    close_time: str | None = None,
    interval_minutes: int | None = None,
    max_seats_per_slot: int | None = None,
    max_tables_per_slot: int | None = None,
) -> BookingSettings:
    """
    Create the branch's settings, or update the fields that are given.
    Creation needs open_time and close_time; the rest default to 90 min / 25 seats / 10 tables.
    """
    require_branch(db, branch_id)
    row = get_booking_settings(db, branch_id)
    if row is None:
        if open_time is None or close_time is None:
            raise InvalidSettings("open_time and close_time are required to create booking settings")
        row = BookingSettings(
            branch_id=branch_id,
            open_time=open_time,
            close_time=close_time,
            interval_minutes=interval_minutes if interval_minutes is not None else DEFAULT_SLOT_INTERVAL_MINUTES,
            max_seats_per_slot=max_seats_per_slot if max_seats_per_slot is not None else DEFAULT_MAX_SEATS_PER_SLOT,
            max_tables_per_slot=max_tables_per_slot if max_tables_per_slot is not None else DEFAULT_MAX_TABLES_PER_SLOT,
        )
        created = True
    else:
        if open_time is not None:
            row.open_time = open_time
        if close_time is not None:
            row.close_time = close_time
        if interval_minutes is not None:
            row.interval_minutes = interval_minutes
        if max_seats_per_slot is not None:
            row.max_seats_per_slot = max_seats_per_slot
        if max_tables_per_slot is not None:
            row.max_tables_per_slot = max_tables_per_slot
        created = False
    try:
        _validate(row.open_time, row.close_time, row.interval_minutes, row.max_seats_per_slot, row.max_tables_per_slot)
    except InvalidSettings:
        if not created:
            db.rollback()
        raise
    if created:
        db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(
        "%s booking settings for branch %s: %s-%s every %s min, %s seats / %s tables",
        "Created" if created else "Updated",
        branch_id,
        row.open_time,
        row.close_time,
        row.interval_minutes,
        row.max_seats_per_slot,
        row.max_tables_per_slot,
    )
    return row
