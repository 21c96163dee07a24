"""
Booking admission and status machine.

Admission is one transaction:
  1. availability check against the same figure the availability map shows (override-resolved
     ceiling, parties seated in the current slot counted there);
  2. conditional UPDATE of slot_occupancy (seats_held + party <= bound AND tables_held + t <= bound),
     where the bound is the ceiling plus whatever arrived parties moved off this slot. Zero rows
     updated means the slot is full. The row lock it takes serialises concurrent admissions for
     the slot until commit;
  3. INSERT of the booking.
Any failure rolls the whole thing back. Lock conflicts (OperationalError) are retried a bounded
number of times with the same idempotency key. Keys are scoped to (branch, requester); a key
already used returns that booking when the request matches it and raises IdempotencyKeyReused
otherwise.

Status edges: pending -> confirmed|cancelled, confirmed -> arrived|cancelled, arrived -> completed.
Leaving the active set (cancelled/completed) releases the slot's occupancy counters.
"""
import logging
import time as _time
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from tablebook.config import settings
from tablebook.core.constants import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_STATUS_ARRIVED,
    BOOKING_STATUS_CANCELLED,
    BOOKING_STATUS_COMPLETED,
    BOOKING_STATUS_CONFIRMED,
    BOOKING_STATUS_PENDING,
    BOOKING_STATUSES,
    BOOKING_TRANSITIONS,
)
from tablebook.core.errors import (
    AdmissionConflict,
    BookingNotFound,
    CapacityExceeded,
    IdempotencyKeyReused,
    InvalidBooking,
    InvalidSlot,
    InvalidTransition,
)
from tablebook.models.booking import Booking
from tablebook.models.slot_occupancy import SlotOccupancy
from tablebook.models.time_slot import TimeSlot
from tablebook.services.availability import availability_for_slot
from tablebook.services.booking_settings_service import require_booking_settings
from tablebook.services.branch_service import branch_now, require_branch
from tablebook.services.slot_generator import parse_hhmm

logger = logging.getLogger(__name__)

# Backoff between admission attempts after a lock conflict (seconds, multiplied by attempt number)
ADMISSION_RETRY_BACKOFF_SECONDS = 0.05


@dataclass
class BookingRequest:
    branch_id: int
    party_size: int
    time_slot_id: int | None = None
    day: date | None = None  # with `time`, alternative to time_slot_id
    time: str | None = None   # HH:MM
    table_count: int = 1
    user_id: int | None = None
    restaurant_user_id: int | None = None
    guest_name: str | None = None
    guest_phone: str | None = None
    guest_email: str | None = None
    idempotency_key: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None and any((self.guest_name, self.guest_phone, self.guest_email))


def _validate_request(req: BookingRequest) -> None:
    if req.party_size < 1:
        raise InvalidBooking("party_size must be at least 1")
    if req.table_count < 1:
        raise InvalidBooking("table_count must be at least 1")
    if req.is_guest and not ((req.guest_name or "").strip() and (req.guest_phone or "").strip()):
        raise InvalidBooking("Guest bookings require guest name and phone")
    if req.user_id is None and not req.is_guest:
        raise InvalidBooking("A booking needs a user or guest details")
    if req.time_slot_id is None and (req.day is None or req.time is None):
        raise InvalidBooking("Provide time_slot_id, or day and time")
    if req.idempotency_key and idempotency_owner(req) is None:
        raise InvalidBooking("An idempotency key needs a user or restaurant user to scope it")


def _resolve_slot(db: Session, req: BookingRequest) -> TimeSlot | None:
    if req.time_slot_id is not None:
        return db.query(TimeSlot).filter(TimeSlot.id == req.time_slot_id).first()
    try:
        m = parse_hhmm(req.time)
    except ValueError as e:
        raise InvalidSlot(str(e)) from None
    start = datetime.combine(req.day, datetime.min.time()) + timedelta(minutes=m)
    return (
        db.query(TimeSlot)
        .filter(TimeSlot.branch_id == req.branch_id, TimeSlot.start_time == start)
        .first()
    )


def idempotency_owner(req: BookingRequest) -> str | None:
    """Scope of an idempotency key: the diner, or the operator who booked for a guest."""
    if req.user_id is not None:
        return f"user:{req.user_id}"
    if req.restaurant_user_id is not None:
        return f"restaurant:{req.restaurant_user_id}"
    return None


def find_by_idempotency_key(db: Session, req: BookingRequest) -> Booking | None:
    owner = idempotency_owner(req)
    if not req.idempotency_key or owner is None:
        return None
    return (
        db.query(Booking)
        .filter(
            Booking.branch_id == req.branch_id,
            Booking.idempotency_owner == owner,
            Booking.idempotency_key == req.idempotency_key,
        )
        .first()
    )


def _replay(existing: Booking, req: BookingRequest) -> Booking:
    """Return the booking a repeated request already created, if the request is the same one."""
    if req.time_slot_id is not None:
        same_slot = existing.time_slot_id == req.time_slot_id
    else:
        try:
            start = datetime.combine(req.day, datetime.min.time()) + timedelta(minutes=parse_hhmm(req.time))
        except ValueError:
            start = None
        same_slot = existing.start_time == start
    if not same_slot or existing.party_size != req.party_size or existing.table_count != req.table_count:
        raise IdempotencyKeyReused(
            f"Idempotency key {req.idempotency_key!r} was already used for booking {existing.id}"
        )
    return existing


def _ensure_occupancy_row(db: Session, slot_id: int) -> None:
    insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
    db.execute(
        insert(SlotOccupancy)
        .values(time_slot_id=slot_id, seats_held=0, tables_held=0)
        .on_conflict_do_nothing(index_elements=["time_slot_id"])
    )


def _hold(db: Session, slot_id: int, party_size: int, table_count: int, max_seats: int, max_tables: int) -> bool:
    """Atomically add the party to the slot's counters if it fits under the ceiling."""
    result = db.execute(
        update(SlotOccupancy)
        .where(
            SlotOccupancy.time_slot_id == slot_id,
            SlotOccupancy.seats_held + party_size <= max_seats,
            SlotOccupancy.tables_held + table_count <= max_tables,
        )
        .values(
            seats_held=SlotOccupancy.seats_held + party_size,
            tables_held=SlotOccupancy.tables_held + table_count,
        )
    )
    return result.rowcount == 1


def _release(db: Session, slot_id: int, party_size: int, table_count: int) -> None:
    db.execute(
        update(SlotOccupancy)
        .where(
            SlotOccupancy.time_slot_id == slot_id,
            SlotOccupancy.seats_held >= party_size,
            SlotOccupancy.tables_held >= table_count,
        )
        .values(
            seats_held=SlotOccupancy.seats_held - party_size,
            tables_held=SlotOccupancy.tables_held - table_count,
        )
    )


def _admit_once(db: Session, req: BookingRequest, initial_status: str, now: datetime | None) -> Booking:
    existing = find_by_idempotency_key(db, req)
    if existing is not None:
        return _replay(existing, req)

    branch = require_branch(db, req.branch_id)
    cfg = require_booking_settings(db, req.branch_id)
    slot = _resolve_slot(db, req)
    if slot is None:
        raise InvalidSlot("Time slot not found for this branch")
    if slot.branch_id != req.branch_id:
        raise InvalidSlot(f"Time slot {slot.id} does not belong to branch {req.branch_id}")
    if slot.is_closed:
        raise InvalidSlot(f"Time slot {slot.id} is closed")
    local_now = branch_now(branch, now)
    if slot.start_time < local_now:
        raise InvalidSlot(f"Time slot {slot.start_time:%Y-%m-%d %H:%M} is in the past")

    # Same figure the availability map shows, current-slot rule included
    available = availability_for_slot(db, slot, now)
    if req.party_size > available.seats_remaining or req.table_count > available.tables_remaining:
        raise CapacityExceeded(
            f"Only {available.seats_remaining} seats / {available.tables_remaining} tables left "
            f"at {slot.start_time:%H:%M}"
        )

    # The counter still holds arrived parties on their own slot, so widen its bound by what moved out
    _ensure_occupancy_row(db, slot.id)
    if not _hold(
        db,
        slot.id,
        req.party_size,
        req.table_count,
        available.max_seats + available.seats_moved_out,
        available.max_tables + available.tables_moved_out,
    ):
        db.rollback()
        raise CapacityExceeded(f"Not enough seats left at {slot.start_time:%H:%M} for a party of {req.party_size}")

    booking = Booking(
        user_id=req.user_id,
        restaurant_user_id=req.restaurant_user_id,
        guest_name=req.guest_name,
        guest_phone=req.guest_phone,
        guest_email=req.guest_email,
        branch_id=req.branch_id,
        time_slot_id=slot.id,
        party_size=req.party_size,
        table_count=req.table_count,
        status=initial_status,
        start_time=slot.start_time,
        end_time=slot.start_time + timedelta(minutes=cfg.interval_minutes),
        idempotency_key=req.idempotency_key,
        idempotency_owner=idempotency_owner(req) if req.idempotency_key else None,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def create_booking(
    db: Session,
    req: BookingRequest,
    initial_status: str,
    now: datetime | None = None,
    max_attempts: int | None = None,
) -> Booking:
    """
    Admit a booking or raise. initial_status is chosen by the entry point (diner vs. operator).
    Raises InvalidBooking, InvalidSlot, ConfigurationMissing, CapacityExceeded or AdmissionConflict.
    """
    if initial_status not in (BOOKING_STATUS_PENDING, BOOKING_STATUS_CONFIRMED):
        raise ValueError(f"initial_status must be pending or confirmed, got {initial_status!r}")
    _validate_request(req)
    attempts = max_attempts or settings.admission_max_attempts
    for attempt in range(1, attempts + 1):
        try:
            booking = _admit_once(db, req, initial_status, now)
            logger.info(
                "Booking %s admitted: branch %s slot %s party %s (%s)",
                booking.id, booking.branch_id, booking.time_slot_id, booking.party_size, booking.status,
            )
            return booking
        except IntegrityError:
            db.rollback()
            existing = find_by_idempotency_key(db, req)
            if existing is not None:
                logger.info("Booking request %s already admitted as %s", req.idempotency_key, existing.id)
                return _replay(existing, req)
            raise
        except OperationalError as e:
            db.rollback()
            logger.warning("Admission attempt %s/%s for branch %s hit a storage conflict: %s", attempt, attempts, req.branch_id, e)
            if attempt < attempts:
                _time.sleep(ADMISSION_RETRY_BACKOFF_SECONDS * attempt)
        except Exception:
            db.rollback()
            raise
    raise AdmissionConflict("Booking could not be completed because of concurrent requests; try again")


def get_booking(db: Session, booking_id: int) -> Booking | None:
    return db.query(Booking).filter(Booking.id == booking_id).first()


def require_booking(db: Session, booking_id: int) -> Booking:
    booking = get_booking(db, booking_id)
    if booking is None:
        raise BookingNotFound(f"Booking {booking_id} not found")
    return booking


def change_status(db: Session, booking_id: int, new_status: str, now: datetime | None = None) -> Booking:
    """
    Move a booking along the status machine. The status write is conditional on the status read,
    so two concurrent changes cannot both apply (the loser gets InvalidTransition).
    """
    if new_status not in BOOKING_STATUSES:
        raise InvalidTransition(f"Unknown booking status {new_status!r}")
    booking = require_booking(db, booking_id)
    old_status = booking.status
    if new_status not in BOOKING_TRANSITIONS.get(old_status, ()):
        raise InvalidTransition(f"Cannot change booking {booking_id} from {old_status} to {new_status}")

    values = {"status": new_status}
    if new_status == BOOKING_STATUS_ARRIVED:
        values["arrived_at"] = branch_now(require_branch(db, booking.branch_id), now)
    try:
        changed = (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.status == old_status)
            .update(values, synchronize_session=False)
        )
        if changed != 1:
            db.rollback()
            raise InvalidTransition(f"Booking {booking_id} changed concurrently; it is no longer {old_status}")
        if old_status in ACTIVE_BOOKING_STATUSES and new_status not in ACTIVE_BOOKING_STATUSES:
            _release(db, booking.time_slot_id, booking.party_size, booking.table_count or 1)
        db.commit()
    except InvalidTransition:
        raise
    except Exception:
        db.rollback()
        raise
    db.refresh(booking)
    logger.info("Booking %s: %s -> %s", booking_id, old_status, new_status)
    return booking


def confirm(db: Session, booking_id: int, now: datetime | None = None) -> Booking:
    return change_status(db, booking_id, BOOKING_STATUS_CONFIRMED, now)


def mark_arrived(db: Session, booking_id: int, now: datetime | None = None) -> Booking:
    return change_status(db, booking_id, BOOKING_STATUS_ARRIVED, now)


def complete(db: Session, booking_id: int, now: datetime | None = None) -> Booking:
    return change_status(db, booking_id, BOOKING_STATUS_COMPLETED, now)


def cancel(db: Session, booking_id: int, now: datetime | None = None) -> Booking:
    return change_status(db, booking_id, BOOKING_STATUS_CANCELLED, now)
