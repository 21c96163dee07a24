import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from tablebook.core.errors import (
    AdmissionConflict,
    BookingNotFound,
    CapacityExceeded,
    ConfigurationMissing,
    IdempotencyKeyReused,
    InvalidBooking,
    InvalidSlot,
    InvalidTransition,
)
from tablebook.models.booking import Booking
from tablebook.models.slot_occupancy import SlotOccupancy
from tablebook.services import booking_service
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
)
from tablebook.services.materializer import list_time_slots, materialize, retire_slot

from conftest import DAY, MORNING


@pytest.fixture
def branch(db, make_branch):
    branch = make_branch()
    materialize(db, branch.id, 1, start_date=DAY)
    return branch


def _request(branch, time: str = "19:00", party: int = 2, **kwargs) -> BookingRequest:
    kwargs.setdefault("user_id", 1)
    return BookingRequest(branch_id=branch.id, day=DAY, time=time, party_size=party, **kwargs)


def _occupancy(db, slot_id: int) -> tuple[int, int]:
    db.expire_all()
    row = db.query(SlotOccupancy).filter(SlotOccupancy.time_slot_id == slot_id).one()
    return row.seats_held, row.tables_held


# --- Admission ---


def test_booking_takes_slot_times_and_interval(db, branch) -> None:
    booking = create_booking(db, _request(branch), "pending", now=MORNING)
    assert booking.status == "pending"
    assert booking.start_time == datetime(2030, 6, 3, 19, 0)
    assert booking.end_time == booking.start_time + timedelta(minutes=30)
    assert booking.table_count == 1
    assert _occupancy(db, booking.time_slot_id) == (2, 1)


def test_booking_by_slot_id(db, branch) -> None:
    slot = list_time_slots(db, branch.id, DAY)[3]
    booking = create_booking(
        db, BookingRequest(branch_id=branch.id, time_slot_id=slot.id, party_size=3, user_id=4), "confirmed", now=MORNING
    )
    assert booking.time_slot_id == slot.id
    assert booking.status == "confirmed"


def test_unknown_closed_foreign_and_past_slots_are_invalid(db, branch, make_branch) -> None:
    with pytest.raises(InvalidSlot):
        create_booking(db, _request(branch, time="23:30"), "pending", now=MORNING)
    with pytest.raises(InvalidSlot):
        create_booking(db, BookingRequest(branch_id=branch.id, time_slot_id=99_999, party_size=2, user_id=1), "pending", now=MORNING)

    slot = list_time_slots(db, branch.id, DAY)[0]
    retire_slot(db, slot.id)
    with pytest.raises(InvalidSlot):
        create_booking(db, _request(branch, time="12:00"), "pending", now=MORNING)

    other = make_branch()
    with pytest.raises(InvalidSlot):
        create_booking(
            db, BookingRequest(branch_id=other.id, time_slot_id=slot.id, party_size=2, user_id=1), "pending", now=MORNING
        )

    with pytest.raises(InvalidSlot):
        create_booking(db, _request(branch, time="13:00"), "pending", now=datetime(2030, 6, 3, 14, 0))
    assert db.query(Booking).count() == 0


def test_branch_without_settings(db, make_branch) -> None:
    bare = make_branch(with_settings=False)
    with pytest.raises(ConfigurationMissing):
        create_booking(db, _request(bare), "pending", now=MORNING)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"party": 0},
        {"table_count": 0},
        {"user_id": None, "guest_name": "Ada"},
        {"user_id": None, "guest_phone": "+44 113 496 0000"},
        {"user_id": None},
    ],
)
def test_malformed_requests(db, branch, kwargs) -> None:
    with pytest.raises(InvalidBooking):
        create_booking(db, _request(branch, **kwargs), "pending", now=MORNING)


def test_guest_booking(db, branch) -> None:
    booking = create_booking(
        db,
        _request(branch, user_id=None, guest_name="Ada Lovelace", guest_phone="+44 113 496 0000", restaurant_user_id=500),
        "confirmed",
        now=MORNING,
    )
    assert booking.is_guest
    assert booking.restaurant_user_id == 500


def test_initial_status_must_be_pending_or_confirmed(db, branch) -> None:
    with pytest.raises(ValueError):
        create_booking(db, _request(branch), "arrived", now=MORNING)


def test_idempotency_key_returns_the_same_booking(db, branch) -> None:
    first = create_booking(db, _request(branch, idempotency_key="req-1"), "pending", now=MORNING)
    again = create_booking(db, _request(branch, idempotency_key="req-1"), "pending", now=MORNING)
    assert again.id == first.id
    assert db.query(Booking).count() == 1
    assert _occupancy(db, first.time_slot_id) == (2, 1)


def test_idempotency_keys_are_scoped_to_the_requester(db, branch) -> None:
    mine = create_booking(db, _request(branch, idempotency_key="k1"), "pending", now=MORNING)
    theirs = create_booking(
        db, _request(branch, time="13:00", party=6, user_id=99, idempotency_key="k1"), "pending", now=MORNING
    )
    assert theirs.id != mine.id
    assert theirs.user_id == 99
    assert theirs.start_time == datetime(2030, 6, 3, 13, 0)
    assert db.query(Booking).count() == 2


def test_reused_key_with_a_different_request_is_refused(db, branch) -> None:
    first = create_booking(db, _request(branch, idempotency_key="k2"), "pending", now=MORNING)
    with pytest.raises(IdempotencyKeyReused):
        create_booking(db, _request(branch, time="20:00", idempotency_key="k2"), "pending", now=MORNING)
    with pytest.raises(IdempotencyKeyReused):
        create_booking(db, _request(branch, party=5, idempotency_key="k2"), "pending", now=MORNING)
    assert db.query(Booking).count() == 1
    assert _occupancy(db, first.time_slot_id) == (2, 1)


def test_guest_booking_key_needs_an_operator(db, branch) -> None:
    with pytest.raises(InvalidBooking):
        create_booking(
            db,
            _request(branch, user_id=None, guest_name="Ada", guest_phone="1", idempotency_key="k3"),
            "confirmed",
            now=MORNING,
        )


def test_lock_conflicts_are_retried(db, branch, monkeypatch) -> None:
    real = booking_service._admit_once
    calls = {"n": 0}

    def flaky(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("UPDATE slot_occupancy", {}, Exception("database is locked"))
        return real(*args, **kwargs)

    monkeypatch.setattr(booking_service, "_admit_once", flaky)
    monkeypatch.setattr(booking_service, "ADMISSION_RETRY_BACKOFF_SECONDS", 0)
    booking = create_booking(db, _request(branch, idempotency_key="retry-1"), "pending", now=MORNING)
    assert calls["n"] == 2
    assert booking.idempotency_key == "retry-1"


def test_retries_are_bounded(db, branch, monkeypatch) -> None:
    def always_locked(*args, **kwargs):
        raise OperationalError("UPDATE slot_occupancy", {}, Exception("database is locked"))

    monkeypatch.setattr(booking_service, "_admit_once", always_locked)
    monkeypatch.setattr(booking_service, "ADMISSION_RETRY_BACKOFF_SECONDS", 0)
    with pytest.raises(AdmissionConflict):
        create_booking(db, _request(branch), "pending", now=MORNING, max_attempts=3)


def test_concurrent_requests_for_the_last_seats_admit_exactly_one(session_factory, branch) -> None:
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt(user_id: int) -> None:
        session = session_factory()
        try:
            barrier.wait()
            create_booking(session, _request(branch, party=6, user_id=user_id), "pending", now=MORNING)
            result = "ok"
        except CapacityExceeded:
            result = "full"
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(uid,)) for uid in (1, 2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    assert sorted(outcomes) == ["full", "ok"]


def test_many_concurrent_requests_never_overbook(session_factory, db, branch) -> None:
    n = 8
    barrier = threading.Barrier(n)
    admitted: list[int] = []
    lock = threading.Lock()

    def attempt(user_id: int) -> None:
        session = session_factory()
        try:
            barrier.wait()
            booking = create_booking(session, _request(branch, time="20:00", party=3, user_id=user_id), "pending", now=MORNING)
            with lock:
                admitted.append(booking.id)
        except CapacityExceeded:
            pass
        finally:
            session.close()

    threads = [threading.Thread(target=attempt, args=(uid,)) for uid in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    assert len(admitted) == 3  # 3 parties of 3 fit under 10 seats
    slot_id = db.query(Booking).filter(Booking.id == admitted[0]).one().time_slot_id
    assert _occupancy(db, slot_id) == (9, 3)


# --- Status machine ---


def test_happy_path_to_completed(db, branch) -> None:
    booking = create_booking(db, _request(branch), "pending", now=MORNING)
    assert confirm(db, booking.id).status == "confirmed"
    arrived = mark_arrived(db, booking.id, now=datetime(2030, 6, 3, 19, 2))
    assert arrived.status == "arrived"
    assert arrived.arrived_at == datetime(2030, 6, 3, 19, 2)
    assert _occupancy(db, booking.time_slot_id) == (2, 1)
    assert complete(db, booking.id).status == "completed"
    assert _occupancy(db, booking.time_slot_id) == (0, 0)


@pytest.mark.parametrize(
    "path,bad",
    [
        ([], "arrived"),
        ([], "completed"),
        (["confirmed"], "pending"),
        (["confirmed"], "completed"),
        (["confirmed", "arrived"], "cancelled"),
        (["confirmed", "arrived", "completed"], "cancelled"),
        (["cancelled"], "confirmed"),
        (["confirmed"], "confirmed"),
        ([], "seated"),
    ],
)
def test_illegal_transitions(db, branch, path, bad) -> None:
    booking = create_booking(db, _request(branch), "pending", now=MORNING)
    for status in path:
        change_status(db, booking.id, status, now=MORNING)
    with pytest.raises(InvalidTransition):
        change_status(db, booking.id, bad, now=MORNING)
    db.expire_all()
    assert db.get(Booking, booking.id).status == (path[-1] if path else "pending")


def test_cancel_from_pending_and_confirmed_releases_capacity(db, branch) -> None:
    a = create_booking(db, _request(branch, party=4), "pending", now=MORNING)
    b = create_booking(db, _request(branch, party=3, user_id=2), "confirmed", now=MORNING)
    assert _occupancy(db, a.time_slot_id) == (7, 2)
    cancel(db, a.id)
    cancel(db, b.id)
    assert _occupancy(db, a.time_slot_id) == (0, 0)
    with pytest.raises(InvalidTransition):
        cancel(db, a.id)
    assert _occupancy(db, a.time_slot_id) == (0, 0)


def test_unknown_booking(db) -> None:
    with pytest.raises(BookingNotFound):
        cancel(db, 12345)


# --- Queries ---


def test_booking_queries(db, branch) -> None:
    mine = create_booking(db, _request(branch, time="18:00", user_id=11), "confirmed", now=MORNING)
    done = create_booking(db, _request(branch, time="12:30", user_id=11), "confirmed", now=MORNING)
    create_booking(db, _request(branch, time="19:30", user_id=12), "pending", now=MORNING)
    cancel(db, done.id)

    assert {b.id for b in list_bookings_for_user(db, 11)} == {mine.id, done.id}
    assert [b.id for b in list_previous_bookings(db, 11)] == [done.id]
    assert len(list_bookings_for_branch(db, branch.id, DAY)) == 3
    assert list_bookings_for_branch(db, branch.id, DAY + timedelta(days=1)) == []

    mark_arrived(db, mine.id, now=datetime(2030, 6, 3, 18, 1))
    seated = list_currently_seated(db, branch.id, now=datetime(2030, 6, 3, 18, 20))
    assert [b.id for b in seated] == [mine.id]
    assert list_currently_seated(db, branch.id, now=datetime(2030, 6, 4, 18, 20)) == []
