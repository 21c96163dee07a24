"""
Availability calculator: remaining seats/tables per materialized slot for a branch and date.

ceiling   = resolve_ceiling(slot, overrides)          (0 when retired or closed by override)
consumed  = party_size / table_count of pending|confirmed|arrived bookings
remaining = max(0, ceiling - consumed), per dimension

Current-slot rule (today only): parties already seated (status arrived) occupy the slot that is
running now, whatever slot they booked, so they are counted against the current slot instead of
their nominal one. Upcoming bookings count against their own slot. Every active booking is
counted exactly once.

The exposed per-time integer is the seat figure, forced to 0 when no table remains.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.orm import Session

from tablebook.config import settings
from tablebook.core.constants import ACTIVE_BOOKING_STATUSES, BOOKING_STATUS_ARRIVED
from tablebook.models.booking import Booking
from tablebook.models.time_slot import TimeSlot
from tablebook.services.booking_settings_service import require_booking_settings
from tablebook.services.branch_service import branch_now, require_branch
from tablebook.services.materializer import list_time_slots
from tablebook.services.override_service import list_overrides, resolve_ceiling
from tablebook.services.slot_generator import bookable_times


@dataclass
class SlotAvailability:
    slot_id: int
    time: str  # HH:MM
    start_time: datetime
    end_time: datetime
    max_seats: int  # effective ceiling after overrides
    max_tables: int
    seats_booked: int
    tables_booked: int
    seats_remaining: int
    tables_remaining: int
    closed: bool
    override_id: int | None
    is_current: bool
    seats_held: int = 0  # booked for this slot, before arrived parties are moved to the current one
    tables_held: int = 0

    @property
    def remaining(self) -> int:
        return self.seats_remaining if self.tables_remaining > 0 else 0

    @property
    def seats_moved_out(self) -> int:
        """Seats on this slot's occupancy counter that are counted against the current slot instead."""
        return self.seats_held - self.seats_booked

    @property
    def tables_moved_out(self) -> int:
        return self.tables_held - self.tables_booked


def find_current_slot(slots: list[TimeSlot], local_now: datetime) -> TimeSlot | None:
    for slot in slots:
        if slot.start_time <= local_now < slot.end_time:
            return slot
    return None


def _active_bookings(db: Session, slot_ids: list[int]) -> list[Booking]:
    if not slot_ids:
        return []
    return (
        db.query(Booking)
        .filter(Booking.time_slot_id.in_(slot_ids), Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .all()
    )


def slot_availability(db: Session, branch_id: int, day: date, now: datetime | None = None) -> list[SlotAvailability]:
    """Per-slot availability for (branch, day), ordered by start time. Unmaterialized days give []."""
    branch = require_branch(db, branch_id)
    slots = list_time_slots(db, branch_id, day)
    if not slots:
        return []
    overrides = list_overrides(db, branch_id, day)
    local_now = branch_now(branch, now)
    current = find_current_slot(slots, local_now) if day == local_now.date() else None

    seats_used: dict[int, int] = defaultdict(int)
    tables_used: dict[int, int] = defaultdict(int)
    seats_held: dict[int, int] = defaultdict(int)
    tables_held: dict[int, int] = defaultdict(int)
    for b in _active_bookings(db, [s.id for s in slots]):
        target = current.id if current is not None and b.status == BOOKING_STATUS_ARRIVED else b.time_slot_id
        seats_used[target] += b.party_size
        tables_used[target] += b.table_count or 1
        seats_held[b.time_slot_id] += b.party_size
        tables_held[b.time_slot_id] += b.table_count or 1

    result: list[SlotAvailability] = []
    for slot in slots:
        ceiling = resolve_ceiling(slot, overrides)
        seats_booked = seats_used[slot.id]
        tables_booked = tables_used[slot.id]
        result.append(SlotAvailability(
            slot_id=slot.id,
            time=slot.start_time.strftime("%H:%M"),
            start_time=slot.start_time,
            end_time=slot.end_time,
            max_seats=ceiling.seats,
            max_tables=ceiling.tables,
            seats_booked=seats_booked,
            tables_booked=tables_booked,
            seats_remaining=max(0, ceiling.seats - seats_booked),
            tables_remaining=max(0, ceiling.tables - tables_booked),
            closed=ceiling.closed,
            override_id=ceiling.override_id,
            is_current=current is not None and slot.id == current.id,
            seats_held=seats_held[slot.id],
            tables_held=tables_held[slot.id],
        ))
    return result


def branch_availability(db: Session, branch_id: int, day: date, now: datetime | None = None) -> dict[str, int]:
    """Map "HH:MM" -> remaining seats for every materialized slot of the day."""
    return {a.time: a.remaining for a in slot_availability(db, branch_id, day, now)}


def availability_for_slot(db: Session, slot: TimeSlot, now: datetime | None = None) -> SlotAvailability:
    for a in slot_availability(db, slot.branch_id, slot.date, now):
        if a.slot_id == slot.id:
            return a
    raise LookupError(f"time slot {slot.id} not listed for branch {slot.branch_id} on {slot.date}")


def bookable_times_for_branch(
    db: Session,
    branch_id: int,
    day: date,
    party_size: int = 1,
    table_count: int = 1,
    now: datetime | None = None,
) -> list[str]:
    """
    Times a diner can book right now: the booking-now policy over the branch's hours, restricted
    to materialized slots with room for the party.
    """
    branch = require_branch(db, branch_id)
    cfg = require_booking_settings(db, branch_id)
    local_now = branch_now(branch, now)
    allowed = set(
        bookable_times(
            cfg.open_time,
            cfg.close_time,
            cfg.interval_minutes,
            day,
            local_now,
            cutoff_minutes=settings.last_hour_cutoff_minutes,
        )
    )
    return [
        a.time
        for a in slot_availability(db, branch_id, day, now)
        if a.time in allowed
        and a.start_time >= local_now
        and a.seats_remaining >= party_size
        and a.tables_remaining >= table_count
    ]
