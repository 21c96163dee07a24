"""
Bookings API: create, read, status actions.

Diners book for themselves and may only cancel their own bookings. Restaurant staff create
guest bookings (name + phone required) and move bookings of their branches through the status
machine. The initial status per entry point comes from settings (user vs. operator).
"""
import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Header, Query
from pydantic import Field
from sqlalchemy.orm import Session

from tablebook.api.deps import Requester, WireModel, ensure_branch_owner, get_requester, require_operator
from tablebook.config import settings
from tablebook.core.constants import BOOKING_STATUS_CANCELLED
from tablebook.core.errors import InvalidBooking, NotPermitted
from tablebook.db.session import get_db
from tablebook.models.booking import Booking
from tablebook.services.booking_queries import (
    list_bookings_for_branch,
    list_bookings_for_user,
    list_currently_seated,
    list_previous_bookings,
)
from tablebook.services.booking_service import (
    BookingRequest,
    cancel,
    change_status,
    complete,
    confirm,
    create_booking,
    mark_arrived,
    require_booking,
)
from tablebook.services.branch_service import require_branch

router = APIRouter()
logger = logging.getLogger(__name__)


def _booking_dict(b: Booking) -> dict[str, Any]:
    return {
        "id": b.id,
        "userId": b.user_id,
        "restaurantUserId": b.restaurant_user_id,
        "guestName": b.guest_name,
        "guestPhone": b.guest_phone,
        "guestEmail": b.guest_email,
        "branchId": b.branch_id,
        "timeSlotId": b.time_slot_id,
        "partySize": b.party_size,
        "tableCount": b.table_count,
        "status": b.status,
        "date": b.start_time.date().isoformat(),
        "time": b.start_time.strftime("%H:%M"),
        "startTime": b.start_time.isoformat(),
        "endTime": b.end_time.isoformat(),
        "arrivedAt": b.arrived_at.isoformat() if b.arrived_at else None,
        "createdAt": b.created_at.isoformat() if b.created_at else None,
    }


def _load_visible(db: Session, booking_id: int, requester: Requester) -> Booking:
    booking = require_booking(db, booking_id)
    if requester.is_operator:
        ensure_branch_owner(requester, require_branch(db, booking.branch_id))
    elif booking.user_id != requester.user_id:
        raise NotPermitted(f"Booking {booking_id} belongs to another user")
    return booking


# --- Create ---


class CreateBookingRequest(WireModel):
    branch_id: int
    time_slot_id: int | None = None
    booking_date: date | None = Field(None, alias="date")
    time: str | None = Field(None, pattern=r"^\d{2}:\d{2}$")
    party_size: int = Field(..., ge=1)
    table_count: int = Field(1, ge=1)
    guest_name: str | None = Field(None, max_length=256)
    guest_phone: str | None = Field(None, max_length=64)
    guest_email: str | None = Field(None, max_length=256)
    idempotency_key: str | None = Field(None, max_length=128)


@router.post("/bookings", status_code=201)
def create_booking_endpoint(
    body: CreateBookingRequest,
    db: Session = Depends(get_db),
    requester: Requester = Depends(get_requester),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
) -> dict[str, Any]:
    is_guest = any((body.guest_name, body.guest_phone, body.guest_email))
    if requester.is_operator:
        ensure_branch_owner(requester, require_branch(db, body.branch_id))
        if not is_guest:
            raise InvalidBooking("Restaurant bookings need guest name and phone")
        user_id, restaurant_user_id = None, requester.user_id
        initial_status = settings.operator_booking_status
    else:
        if is_guest:
            raise NotPermitted("Only restaurant staff can create guest bookings")
        user_id, restaurant_user_id = requester.user_id, None
        initial_status = settings.user_booking_status
    req = BookingRequest(
        branch_id=body.branch_id,
        party_size=body.party_size,
        time_slot_id=body.time_slot_id,
        day=body.booking_date,
        time=body.time,
        table_count=body.table_count,
        user_id=user_id,
        restaurant_user_id=restaurant_user_id,
        guest_name=body.guest_name,
        guest_phone=body.guest_phone,
        guest_email=body.guest_email,
        idempotency_key=body.idempotency_key or idempotency_key,
    )
    return _booking_dict(create_booking(db, req, initial_status))


# --- Read ---


@router.get("/bookings")
def my_bookings(
    db: Session = Depends(get_db),
    requester: Requester = Depends(get_requester),
) -> dict[str, Any]:
    rows = list_bookings_for_user(db, requester.user_id)
    return {"bookings": [_booking_dict(b) for b in rows], "count": len(rows)}


@router.get("/bookings/history")
def my_previous_bookings(
    db: Session = Depends(get_db),
    requester: Requester = Depends(get_requester),
) -> dict[str, Any]:
    """Completed and cancelled bookings, newest first."""
    rows = list_previous_bookings(db, requester.user_id)
    return {"bookings": [_booking_dict(b) for b in rows], "count": len(rows)}


@router.get("/bookings/{booking_id}")
def get_booking_endpoint(
    booking_id: int,
    db: Session = Depends(get_db),
    requester: Requester = Depends(get_requester),
) -> dict[str, Any]:
    return _booking_dict(_load_visible(db, booking_id, requester))


@router.get("/branches/{branch_id}/bookings")
def branch_bookings(
    branch_id: int,
    day: date | None = Query(None, alias="date"),
    db: Session = Depends(get_db),
    requester: Requester = Depends(require_operator),
) -> dict[str, Any]:
    ensure_branch_owner(requester, require_branch(db, branch_id))
    rows = list_bookings_for_branch(db, branch_id, day)
    return {"bookings": [_booking_dict(b) for b in rows], "count": len(rows)}


@router.get("/branches/{branch_id}/bookings/seated")
def branch_seated(
    branch_id: int,
    db: Session = Depends(get_db),
    requester: Requester = Depends(require_operator),
) -> dict[str, Any]:
    """Parties currently seated (arrived today)."""
    ensure_branch_owner(requester, require_branch(db, branch_id))
    rows = list_currently_seated(db, branch_id)
    return {"bookings": [_booking_dict(b) for b in rows], "count": len(rows)}


# --- Status actions ---


class ChangeStatusRequest(WireModel):
    status: str


def _operator_booking(db: Session, booking_id: int, requester: Requester) -> Booking:
    if not requester.is_operator:
        raise NotPermitted("Only restaurant staff can change this booking's status")
    return _load_visible(db, booking_id, requester)


@router.post("/bookings/{booking_id}/status")
def change_status_endpoint(
    booking_id: int,
    body: ChangeStatusRequest,
    db: Session = Depends(get_db),
    requester: Requester = Depends(get_requester),
) -> dict[str, Any]:
    new_status = body.status.strip().lower()
    if requester.is_operator or new_status != BOOKING_STATUS_CANCELLED:
        _operator_booking(db, booking_id, requester)
    else:
        _load_visible(db, booking_id, requester)
    return _booking_dict(change_status(db, booking_id, new_status))


@router.post("/bookings/{booking_id}/confirm")
def confirm_endpoint(
    booking_id: int,
    db: Session = Depends(get_db),
    requester: Requester = Depends(get_requester),
) -> dict[str, Any]:
    _operator_booking(db, booking_id, requester)
    return _booking_dict(confirm(db, booking_id))


@router.post("/bookings/{booking_id}/arrive")
def arrive_endpoint(
    booking_id: int,
    db: Session = Depends(get_db),
    requester: Requester = Depends(get_requester),
) -> dict[str, Any]:
    _operator_booking(db, booking_id, requester)
    return _booking_dict(mark_arrived(db, booking_id))


@router.post("/bookings/{booking_id}/complete")
def complete_endpoint(
    booking_id: int,
    db: Session = Depends(get_db),
    requester: Requester = Depends(get_requester),
) -> dict[str, Any]:
    _operator_booking(db, booking_id, requester)
    return _booking_dict(complete(db, booking_id))


@router.post("/bookings/{booking_id}/cancel")
def cancel_endpoint(
    booking_id: int,
    db: Session = Depends(get_db),
    requester: Requester = Depends(get_requester),
) -> dict[str, Any]:
    """Diners cancel their own bookings; staff cancel any booking at their branches."""
    _load_visible(db, booking_id, requester)
    booking = cancel(db, booking_id)
    logger.info("Booking %s cancelled by %s %s", booking_id, requester.user_type, requester.user_id)
    return _booking_dict(booking)
