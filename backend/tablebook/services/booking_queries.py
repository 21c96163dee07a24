"""Read views over bookings for diners and operators."""
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from tablebook.core.constants import BOOKING_LIST_LIMIT, BOOKING_STATUS_ARRIVED, TERMINAL_BOOKING_STATUSES
from tablebook.models.booking import Booking
from tablebook.services.branch_service import branch_now, require_branch


def list_bookings_for_branch(db: Session, branch_id: int, day: date | None = None) -> list[Booking]:
    q = db.query(Booking).filter(Booking.branch_id == branch_id)
    if day is not None:
        start = datetime.combine(day, datetime.min.time())
        q = q.filter(Booking.start_time >= start, Booking.start_time < start + timedelta(days=1))
    return q.order_by(Booking.start_time.asc(), Booking.id.asc()).limit(BOOKING_LIST_LIMIT).all()


def list_bookings_for_user(db: Session, user_id: int) -> list[Booking]:
    return (
        db.query(Booking)
        .filter(Booking.user_id == user_id)
        .order_by(Booking.start_time.desc(), Booking.id.desc())
        .limit(BOOKING_LIST_LIMIT)
        .all()
    )


def list_previous_bookings(db: Session, user_id: int) -> list[Booking]:
    """Completed or cancelled bookings, newest first."""
    return (
        db.query(Booking)
        .filter(Booking.user_id == user_id, Booking.status.in_(TERMINAL_BOOKING_STATUSES))
        .order_by(Booking.start_time.desc(), Booking.id.desc())
        .limit(BOOKING_LIST_LIMIT)
        .all()
    )


def list_currently_seated(db: Session, branch_id: int, now: datetime | None = None) -> list[Booking]:
    """Parties marked arrived for today's slots at the branch, earliest arrival first."""
    branch = require_branch(db, branch_id)
    today = datetime.combine(branch_now(branch, now).date(), datetime.min.time())
    return (
        db.query(Booking)
        .filter(
            Booking.branch_id == branch_id,
            Booking.status == BOOKING_STATUS_ARRIVED,
            Booking.start_time >= today,
            Booking.start_time < today + timedelta(days=1),
        )
        .order_by(Booking.arrived_at.asc(), Booking.id.asc())
        .all()
    )
