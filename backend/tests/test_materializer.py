from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from tablebook.core.constants import MATERIALIZE_MAX_DAYS
from tablebook.core.errors import InvalidSlot
from tablebook.models.slot_occupancy import SlotOccupancy
from tablebook.models.time_slot import TimeSlot
from tablebook.services import materializer
from tablebook.services.materializer import list_time_slots, materialize, retire_slot
from tablebook.services.availability import branch_availability

from conftest import DAY, MORNING


def _slot_count(db, branch_id: int) -> int:
    return db.query(TimeSlot).filter(TimeSlot.branch_id == branch_id).count()


def test_materialize_creates_one_slot_per_start(db, make_branch) -> None:
    branch = make_branch()
    assert materialize(db, branch.id, 1, start_date=DAY) == 22
    slots = list_time_slots(db, branch.id, DAY)
    assert [s.start_time.strftime("%H:%M") for s in slots][:3] == ["12:00", "12:30", "13:00"]
    first = slots[0]
    assert first.end_time - first.start_time == timedelta(minutes=30)
    assert (first.max_seats, first.max_tables, first.is_closed) == (10, 10, False)


def test_materialize_is_idempotent(db, make_branch) -> None:
    branch = make_branch()
    assert materialize(db, branch.id, 3, start_date=DAY) == 66
    assert materialize(db, branch.id, 3, start_date=DAY) == 0
    assert _slot_count(db, branch.id) == 66
    # overlapping window only adds the new day
    assert materialize(db, branch.id, 4, start_date=DAY) == 22
    assert _slot_count(db, branch.id) == 88


def test_every_slot_gets_an_occupancy_row(db, make_branch) -> None:
    branch = make_branch()
    materialize(db, branch.id, 2, start_date=DAY)
    slot_ids = {s.id for s in db.query(TimeSlot).filter(TimeSlot.branch_id == branch.id)}
    rows = db.query(SlotOccupancy).filter(SlotOccupancy.time_slot_id.in_(slot_ids)).all()
    assert {r.time_slot_id for r in rows} == slot_ids
    assert all(r.seats_held == 0 and r.tables_held == 0 for r in rows)


def test_branches_do_not_collide(db, make_branch) -> None:
    a = make_branch()
    b = make_branch()
    assert materialize(db, a.id, 1, start_date=DAY) == 22
    assert materialize(db, b.id, 1, start_date=DAY) == 22


def test_failing_day_is_skipped_and_the_rest_continue(db, make_branch, monkeypatch, caplog) -> None:
    branch = make_branch()
    real = materializer._materialize_day
    bad_day = DAY + timedelta(days=1)

    def flaky(db_, branch_id, cfg, day, times):
        if day == bad_day:
            raise OperationalError("INSERT INTO time_slots", {}, Exception("disk I/O error"))
        return real(db_, branch_id, cfg, day, times)

    monkeypatch.setattr(materializer, "_materialize_day", flaky)
    assert materialize(db, branch.id, 3, start_date=DAY) == 44
    assert list_time_slots(db, branch.id, bad_day) == []
    assert len(list_time_slots(db, branch.id, DAY + timedelta(days=2))) == 22
    assert "1 of 3 days failed" in caplog.text


def test_unmaterialized_day_has_empty_availability(db, make_branch) -> None:
    branch = make_branch()
    assert branch_availability(db, branch.id, DAY, now=MORNING) == {}


def test_retired_slot_reports_zero(db, make_branch) -> None:
    branch = make_branch()
    materialize(db, branch.id, 1, start_date=DAY)
    slot = list_time_slots(db, branch.id, DAY)[0]
    retired = retire_slot(db, slot.id)
    assert retired.is_closed is True
    availability = branch_availability(db, branch.id, DAY, now=MORNING)
    assert availability["12:00"] == 0
    assert availability["12:30"] == 10
    with pytest.raises(InvalidSlot):
        retire_slot(db, 10_000)


def test_default_start_date_is_branch_today(db, make_branch) -> None:
    branch = make_branch()
    assert materialize(db, branch.id, 1) == 22
    today = datetime.now(timezone.utc).date()
    assert len(list_time_slots(db, branch.id, today)) == 22


def test_window_is_capped_with_a_warning(db, make_branch, caplog) -> None:
    branch = make_branch(open_time="18:00", close_time="19:00", interval_minutes=60)
    assert materialize(db, branch.id, MATERIALIZE_MAX_DAYS + 10, start_date=DAY) == MATERIALIZE_MAX_DAYS
    assert "capped at" in caplog.text
