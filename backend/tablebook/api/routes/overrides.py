"""
Booking overrides: close or re-cap a time range on a date. Operator-only writes.

A full-day override (no startTime/endTime) marks the branch unavailable for that date.
"""
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from tablebook.api.deps import Requester, WireModel, ensure_branch_owner, require_operator
from tablebook.db.session import get_db
from tablebook.models.booking_override import BookingOverride
from tablebook.services.branch_service import require_branch
from tablebook.services.override_service import (
    create_override,
    delete_override,
    list_overrides,
    require_override,
    update_override,
)

router = APIRouter()

_HHMM = r"^\d{2}:\d{2}$"


def _override_dict(o: BookingOverride) -> dict[str, Any]:
    return {
        "id": o.id,
        "branchId": o.branch_id,
        "date": o.date.isoformat(),
        "startTime": o.start_time.isoformat(),
        "endTime": o.end_time.isoformat(),
        "overrideType": o.override_type,
        "newMaxSeats": o.new_max_seats,
        "newMaxTables": o.new_max_tables,
        "note": o.note,
    }


class CreateOverrideRequest(WireModel):
    override_date: date = Field(..., alias="date")
    override_type: str = Field(..., description="closed | capacity | custom")
    start_time: str | None = Field(None, pattern=_HHMM)
    end_time: str | None = Field(None, pattern=_HHMM)
    new_max_seats: int | None = Field(None, ge=0)
    new_max_tables: int | None = Field(None, ge=0)
    note: str | None = None


class UpdateOverrideRequest(WireModel):
    override_date: date | None = Field(None, alias="date")
    override_type: str | None = None
    start_time: str | None = Field(None, pattern=_HHMM)
    end_time: str | None = Field(None, pattern=_HHMM)
    new_max_seats: int | None = Field(None, ge=0)
    new_max_tables: int | None = Field(None, ge=0)
    note: str | None = None


@router.post("/branches/{branch_id}/overrides", status_code=201)
def create_override_endpoint(
    branch_id: int,
    body: CreateOverrideRequest,
    db: Session = Depends(get_db),
    requester: Requester = Depends(require_operator),
) -> dict[str, Any]:
    ensure_branch_owner(requester, require_branch(db, branch_id))
    row = create_override(
        db,
        branch_id,
        body.override_date,
        body.override_type,
        start_time=body.start_time,
        end_time=body.end_time,
        new_max_seats=body.new_max_seats,
        new_max_tables=body.new_max_tables,
        note=body.note,
    )
    return _override_dict(row)


@router.get("/branches/{branch_id}/overrides")
def list_overrides_endpoint(
    branch_id: int,
    day: date | None = Query(None, alias="date"),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    require_branch(db, branch_id)
    rows = list_overrides(db, branch_id, day)
    return {"overrides": [_override_dict(o) for o in rows], "count": len(rows)}


@router.get("/overrides/{override_id}")
def get_override_endpoint(override_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return _override_dict(require_override(db, override_id))


@router.put("/overrides/{override_id}")
def update_override_endpoint(
    override_id: int,
    body: UpdateOverrideRequest,
    db: Session = Depends(get_db),
    requester: Requester = Depends(require_operator),
) -> dict[str, Any]:
    """Partial update: only fields present in the body change (send null to clear a capacity)."""
    row = require_override(db, override_id)
    ensure_branch_owner(requester, require_branch(db, row.branch_id))
    sent = body.model_fields_set
    extra = {
        name: getattr(body, name)
        for name in ("new_max_seats", "new_max_tables", "note")
        if name in sent
    }
    row = update_override(
        db,
        override_id,
        day=body.override_date,
        start_time=body.start_time,
        end_time=body.end_time,
        override_type=body.override_type,
        **extra,
    )
    return _override_dict(row)


@router.delete("/overrides/{override_id}")
def delete_override_endpoint(
    override_id: int,
    db: Session = Depends(get_db),
    requester: Requester = Depends(require_operator),
) -> dict[str, Any]:
    row = require_override(db, override_id)
    ensure_branch_owner(requester, require_branch(db, row.branch_id))
    delete_override(db, override_id)
    return {"deleted": True, "id": override_id}
