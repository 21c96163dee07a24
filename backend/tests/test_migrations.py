from argparse import Namespace

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from tablebook.db.tables import ALL_TABLE_NAMES

from conftest import BACKEND


def _alembic_config(url: str) -> Config:
    # no ini file: fileConfig would reset the logging the other tests capture
    cfg = Config(cmd_opts=Namespace(x=[f"db_url={url}"]))
    cfg.set_main_option("script_location", str(BACKEND / "alembic"))
    return cfg


def test_upgrade_builds_the_booking_schema_on_the_given_url(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    command.upgrade(_alembic_config(url), "head")

    engine = create_engine(url)
    try:
        inspector = inspect(engine)
        assert set(ALL_TABLE_NAMES) <= set(inspector.get_table_names())
        unique = {c["name"]: c["column_names"] for c in inspector.get_unique_constraints("bookings")}
        assert unique["uq_bookings_idempotency_key"] == ["branch_id", "idempotency_owner", "idempotency_key"]
    finally:
        engine.dispose()

    command.downgrade(_alembic_config(url), "base")
    engine = create_engine(url)
    try:
        assert not set(ALL_TABLE_NAMES) & set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
