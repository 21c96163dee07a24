"""
Time slots and availability.

Public: slot generation preview, availability, bookable times, slot listing.
Operators: materialize slots ahead, retire a slot.
"""
import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from tablebook.api.deps import Requester, WireModel, ensure_branch_owner, require_operator
from tablebook.config import settings
from tablebook.core.constants import MATERIALIZE_MAX_DAYS
from tablebook.core.errors import InvalidSettings, InvalidSlot
from tablebook.db.session import get_db
from tablebook.models.time_slot import TimeSlot
from tablebook.services.availability import bookable_times_for_branch, branch_availability, slot_availability
from tablebook.services.branch_service import require_branch
from tablebook.services.materializer import get_time_slot, list_time_slots, materialize, retire_slot
from tablebook.services.slot_generator import generate_slots

router = APIRouter()
logger = logging.getLogger(__name__)


def _slot_dict(s: TimeSlot) -> dict[str, Any]:
    return {
        "id": s.id,
        "branchId": s.branch_id,
        "date": s.date.isoformat(),
        "time": s.start_time.strftime("%H:%M"),
        "startTime": s.start_time.isoformat(),
        "endTime": s.end_time.isoformat(),
        "maxSeats": s.max_seats,
        "maxTables": s.max_tables,
        "isClosed": s.is_closed,
    }


# --- Generate (pure, nothing persisted) ---


class GenerateSlotsRequest(WireModel):
    open_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    close_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    interval_minutes: int = Field(..., gt=0)


@router.post("/slots/generate")
def generate_slots_endpoint(body: GenerateSlotsRequest) -> dict[str, Any]:
    """Preview the start times a branch with these hours would get."""
    try:
        slots = generate_slots(body.open_time, body.close_time, body.interval_minutes)
    except ValueError as e:
        raise InvalidSettings(str(e)) from None
    return {"slots": slots, "count": len(slots)}


# --- Materialize / list / retire ---


class MaterializeRequest(WireModel):
    days: int = Field(settings.materialize_window_days, ge=1, le=MATERIALIZE_MAX_DAYS)
    start_date: date | None = None


@router.post("/branches/{branch_id}/time-slots/materialize")
def materialize_endpoint(
    branch_id: int,
    body: MaterializeRequest,
    db: Session = Depends(get_db),
    requester: Requester = Depends(require_operator),
) -> dict[str, Any]:
    ensure_branch_owner(requester, require_branch(db, branch_id))
    created = materialize(db, branch_id, body.days, start_date=body.start_date)
    return {"branchId": branch_id, "days": body.days, "created": created}


@router.get("/branches/{branch_id}/time-slots")
def list_time_slots_endpoint(
    branch_id: int,
    day: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    require_branch(db, branch_id)
    rows = list_time_slots(db, branch_id, day)
    return {"timeSlots": [_slot_dict(s) for s in rows], "count": len(rows)}


@router.post("/time-slots/{slot_id}/retire")
def retire_slot_endpoint(
    slot_id: int,
    db: Session = Depends(get_db),
    requester: Requester = Depends(require_operator),
) -> dict[str, Any]:
    slot = get_time_slot(db, slot_id)
    if slot is None:
        raise InvalidSlot(f"Time slot {slot_id} not found")
    ensure_branch_owner(requester, require_branch(db, slot.branch_id))
    return _slot_dict(retire_slot(db, slot_id))


# --- Availability ---


@router.get("/branches/{branch_id}/availability")
def availability_endpoint(
    branch_id: int,
    day: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    """Remaining seats per start time ("HH:MM" -> count) for the date's materialized slots."""
    return branch_availability(db, branch_id, day)


@router.get("/branches/{branch_id}/availability/detail")
def availability_detail_endpoint(
    branch_id: int,
    day: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    rows = slot_availability(db, branch_id, day)
    return {
        "branchId": branch_id,
        "date": day.isoformat(),
        "slots": [
            {
                "timeSlotId": a.slot_id,
                "time": a.time,
                "startTime": a.start_time.isoformat(),
                "endTime": a.end_time.isoformat(),
                "maxSeats": a.max_seats,
                "maxTables": a.max_tables,
                "seatsBooked": a.seats_booked,
                "tablesBooked": a.tables_booked,
                "seatsRemaining": a.seats_remaining,
                "tablesRemaining": a.tables_remaining,
                "remaining": a.remaining,
                "closed": a.closed,
                "overrideId": a.override_id,
                "isCurrent": a.is_current,
            }
            for a in rows
        ],
    }


@router.get("/branches/{branch_id}/bookable-times")
def bookable_times_endpoint(
    branch_id: int,
    day: date = Query(..., alias="date"),
    party_size: int = Query(1, alias="partySize", ge=1),
    table_count: int = Query(1, alias="tableCount", ge=1),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Start times a diner can pick now: booking-now policy plus room for the party."""
    times = bookable_times_for_branch(db, branch_id, day, party_size=party_size, table_count=table_count)
    return {"branchId": branch_id, "date": day.isoformat(), "times": times}
