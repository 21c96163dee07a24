import sys
from datetime import date, datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

BACKEND = Path(__file__).resolve().parents[1]
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))

import tablebook.models  # noqa: E402,F401
from tablebook.db.base import Base  # noqa: E402
from tablebook.db.session import build_engine, build_session_factory  # noqa: E402
from tablebook.main import create_app  # noqa: E402
from tablebook.services.booking_settings_service import upsert_booking_settings  # noqa: E402
from tablebook.services.branch_service import create_branch  # noqa: E402

# Fixed service-level clock: slots on DAY are in the future relative to MORNING.
DAY = date(2030, 6, 3)
MORNING = datetime(2030, 6, 3, 9, 0)
OPERATOR_ID = 500


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'tablebook.db'}"


@pytest.fixture
def engine(db_url):
    engine = build_engine(db_url)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_branch(db):
    """Branch with booking settings (defaults: 12:00-23:00 every 30 min, 10 seats / 10 tables)."""

    def _make(
        open_time: str = "12:00",
        close_time: str = "23:00",
        interval_minutes: int = 30,
        max_seats_per_slot: int = 10,
        max_tables_per_slot: int = 10,
        restaurant_id: int = OPERATOR_ID,
        with_settings: bool = True,
    ):
        branch = create_branch(db, restaurant_id=restaurant_id, name="Harbour Street", city="Leeds", timezone="UTC")
        if with_settings:
            upsert_booking_settings(
                db,
                branch.id,
                open_time=open_time,
                close_time=close_time,
                interval_minutes=interval_minutes,
                max_seats_per_slot=max_seats_per_slot,
                max_tables_per_slot=max_tables_per_slot,
            )
        return branch

    return _make


@pytest.fixture
def client(engine, db_url):
    app = create_app(database_url=db_url, scheduler_enabled=False)
    with TestClient(app) as c:
        yield c
