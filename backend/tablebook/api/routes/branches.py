"""
Branches and their booking settings.

Reads are public; creating a branch and changing its settings need the owning restaurant.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from tablebook.api.deps import Requester, WireModel, ensure_branch_owner, require_operator
from tablebook.db.session import get_db
from tablebook.models.booking_settings import BookingSettings
from tablebook.models.branch import Branch
from tablebook.services.booking_settings_service import require_booking_settings, upsert_booking_settings
from tablebook.services.branch_service import create_branch, list_branches, require_branch

router = APIRouter()
logger = logging.getLogger(__name__)


def _branch_dict(b: Branch) -> dict[str, Any]:
    return {
        "id": b.id,
        "restaurantId": b.restaurant_id,
        "name": b.name,
        "address": b.address,
        "city": b.city,
        "timezone": b.timezone,
    }


def _settings_dict(s: BookingSettings) -> dict[str, Any]:
    return {
        "branchId": s.branch_id,
        "openTime": s.open_time,
        "closeTime": s.close_time,
        "interval": s.interval_minutes,
        "maxSeatsPerSlot": s.max_seats_per_slot,
        "maxTablesPerSlot": s.max_tables_per_slot,
        "updatedAt": s.updated_at.isoformat() if s.updated_at else None,
    }


# --- Branches ---


class CreateBranchRequest(WireModel):
    name: str = Field(..., min_length=1, max_length=256)
    address: str | None = Field(None, max_length=512)
    city: str | None = Field(None, max_length=128)
    timezone: str | None = Field(None, description="IANA zone, e.g. Europe/London")


@router.post("/branches", status_code=201)
def create_branch_endpoint(
    body: CreateBranchRequest,
    db: Session = Depends(get_db),
    requester: Requester = Depends(require_operator),
) -> dict[str, Any]:
    branch = create_branch(
        db,
        restaurant_id=requester.user_id,
        name=body.name,
        address=body.address,
        city=body.city,
        timezone=body.timezone,
    )
    return _branch_dict(branch)


@router.get("/branches")
def list_branches_endpoint(
    db: Session = Depends(get_db),
    restaurant_id: int | None = Query(None, alias="restaurantId"),
) -> dict[str, Any]:
    rows = list_branches(db, restaurant_id=restaurant_id)
    return {"branches": [_branch_dict(b) for b in rows], "count": len(rows)}


@router.get("/branches/{branch_id}")
def get_branch_endpoint(branch_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return _branch_dict(require_branch(db, branch_id))


# --- Booking settings ---


class BookingSettingsRequest(WireModel):
    open_time: str | None = Field(None, pattern=r"^\d{2}:\d{2}$")
    close_time: str | None = Field(None, pattern=r"^\d{2}:\d{2}$")
    interval_minutes: int | None = Field(None, alias="interval", gt=0)
    max_seats_per_slot: int | None = Field(None, ge=1)
    max_tables_per_slot: int | None = Field(None, ge=1)


@router.get("/branches/{branch_id}/booking-settings")
def get_booking_settings_endpoint(branch_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    require_branch(db, branch_id)
    return _settings_dict(require_booking_settings(db, branch_id))


@router.put("/branches/{branch_id}/booking-settings")
def put_booking_settings_endpoint(
    branch_id: int,
    body: BookingSettingsRequest,
    db: Session = Depends(get_db),
    requester: Requester = Depends(require_operator),
) -> dict[str, Any]:
    """Create the branch's booking settings, or update the fields sent. Existing slots keep their capacity."""
    ensure_branch_owner(requester, require_branch(db, branch_id))
    row = upsert_booking_settings(
        db,
        branch_id,
        open_time=body.open_time,
        close_time=body.close_time,
        interval_minutes=body.interval_minutes,
        max_seats_per_slot=body.max_seats_per_slot,
        max_tables_per_slot=body.max_tables_per_slot,
    )
    return _settings_dict(row)
