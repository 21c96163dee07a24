from datetime import datetime

import pytest

from tablebook.core.errors import CapacityExceeded
from tablebook.services.availability import branch_availability, slot_availability
from tablebook.services.booking_service import BookingRequest, cancel, complete, confirm, create_booking, mark_arrived
from tablebook.services.materializer import materialize

from conftest import DAY, MORNING


def _book(db, branch, time: str, party: int, tables: int = 1, user_id: int = 1, now: datetime = MORNING):
    return create_booking(
        db,
        BookingRequest(branch_id=branch.id, day=DAY, time=time, party_size=party, table_count=tables, user_id=user_id),
        "confirmed",
        now=now,
    )


def test_reference_scenario_fill_reject_cancel(db, make_branch) -> None:
    branch = make_branch()
    materialize(db, branch.id, 1, start_date=DAY)
    availability = branch_availability(db, branch.id, DAY, now=MORNING)
    assert len(availability) == 22
    assert set(availability.values()) == {10}

    booking = _book(db, branch, "19:00", 10)
    assert branch_availability(db, branch.id, DAY, now=MORNING)["19:00"] == 0
    with pytest.raises(CapacityExceeded):
        _book(db, branch, "19:00", 1, user_id=2)

    cancel(db, booking.id)
    assert branch_availability(db, branch.id, DAY, now=MORNING)["19:00"] == 10
    assert _book(db, branch, "19:00", 1, user_id=2).status == "confirmed"


def test_consumption_never_exceeds_active_party_sizes(db, make_branch) -> None:
    branch = make_branch()
    materialize(db, branch.id, 1, start_date=DAY)
    active = [_book(db, branch, "18:00", 3), _book(db, branch, "18:00", 4), _book(db, branch, "20:30", 2)]
    cancelled = _book(db, branch, "21:00", 5)
    cancel(db, cancelled.id)

    rows = slot_availability(db, branch.id, DAY, now=MORNING)
    consumed = sum(a.max_seats - a.seats_remaining for a in rows)
    assert consumed <= sum(b.party_size for b in active)
    assert consumed == 9
    assert {a.time: a.seats_remaining for a in rows}["18:00"] == 3


def test_remaining_is_zero_when_tables_run_out(db, make_branch) -> None:
    branch = make_branch(max_seats_per_slot=10, max_tables_per_slot=2)
    materialize(db, branch.id, 1, start_date=DAY)
    _book(db, branch, "19:00", 2)
    _book(db, branch, "19:00", 2)
    detail = {a.time: a for a in slot_availability(db, branch.id, DAY, now=MORNING)}["19:00"]
    assert detail.seats_remaining == 6
    assert detail.tables_remaining == 0
    assert detail.remaining == 0
    with pytest.raises(CapacityExceeded):
        _book(db, branch, "19:00", 1)


def test_large_party_can_take_several_tables(db, make_branch) -> None:
    branch = make_branch(max_seats_per_slot=12, max_tables_per_slot=3)
    materialize(db, branch.id, 1, start_date=DAY)
    _book(db, branch, "19:00", 8, tables=2)
    detail = {a.time: a for a in slot_availability(db, branch.id, DAY, now=MORNING)}["19:00"]
    assert (detail.seats_remaining, detail.tables_remaining) == (4, 1)
    with pytest.raises(CapacityExceeded):
        _book(db, branch, "19:00", 4, tables=2)


def test_seated_parties_count_against_the_current_slot(db, make_branch) -> None:
    branch = make_branch()
    materialize(db, branch.id, 1, start_date=DAY)
    early = _book(db, branch, "18:00", 4)
    upcoming = _book(db, branch, "19:00", 2)
    later = _book(db, branch, "20:00", 3)

    mark_arrived(db, early.id, now=datetime(2030, 6, 3, 18, 5))
    now = datetime(2030, 6, 3, 19, 10)
    detail = {a.time: a for a in slot_availability(db, branch.id, DAY, now=now)}

    assert detail["19:00"].is_current
    # seated party from 18:00 plus the 19:00 booking
    assert detail["19:00"].seats_booked == 6
    assert detail["18:00"].seats_booked == 0
    assert detail["20:00"].seats_booked == 3
    total = sum(a.seats_booked for a in detail.values())
    assert total == early.party_size + upcoming.party_size + later.party_size


def test_current_slot_rule_only_applies_today(db, make_branch) -> None:
    branch = make_branch()
    materialize(db, branch.id, 1, start_date=DAY)
    early = _book(db, branch, "18:00", 4)
    mark_arrived(db, early.id, now=datetime(2030, 6, 3, 18, 5))
    # viewing DAY from the day before: nothing is current, the party stays on its own slot
    detail = {a.time: a for a in slot_availability(db, branch.id, DAY, now=datetime(2030, 6, 2, 19, 10))}
    assert not any(a.is_current for a in detail.values())
    assert detail["18:00"].seats_booked == 4


def test_pending_bookings_hold_capacity(db, make_branch) -> None:
    branch = make_branch(max_seats_per_slot=4)
    materialize(db, branch.id, 1, start_date=DAY)
    pending = create_booking(
        db, BookingRequest(branch_id=branch.id, day=DAY, time="13:00", party_size=4, user_id=7), "pending", now=MORNING
    )
    assert branch_availability(db, branch.id, DAY, now=MORNING)["13:00"] == 0
    confirm(db, pending.id)
    assert branch_availability(db, branch.id, DAY, now=MORNING)["13:00"] == 0


def test_early_arrival_frees_its_booked_slot_for_admission(db, make_branch) -> None:
    branch = make_branch()
    materialize(db, branch.id, 1, start_date=DAY)
    early = _book(db, branch, "20:00", 3)
    mark_arrived(db, early.id, now=datetime(2030, 6, 3, 19, 10))
    now = datetime(2030, 6, 3, 19, 10)
    assert branch_availability(db, branch.id, DAY, now=now)["20:00"] == 10

    walk_in = _book(db, branch, "20:00", 10, user_id=2, now=now)
    assert walk_in.status == "confirmed"
    assert branch_availability(db, branch.id, DAY, now=now)["20:00"] == 0
    with pytest.raises(CapacityExceeded):
        _book(db, branch, "20:00", 1, user_id=3, now=now)

    # once the seated party leaves, the counter matches the bookings again
    complete(db, early.id)
    with pytest.raises(CapacityExceeded):
        _book(db, branch, "20:00", 1, user_id=3, now=now)
