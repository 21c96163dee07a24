"""
Alembic environment for the booking schema.

The URL comes from tablebook settings (DATABASE_URL / .env). Pass `-x db_url=...` to migrate a
different database, e.g. a scratch SQLite file: alembic -x db_url=sqlite:///./scratch.db upgrade head
"""
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config
from sqlalchemy import pool
from alembic import context

from tablebook.config import settings
from tablebook.db.base import Base
from tablebook.db.tables import ALL_TABLE_NAMES
import tablebook.models  # noqa: F401

load_dotenv()

_registered = set(Base.metadata.tables)
_missing = set(ALL_TABLE_NAMES) - _registered
_unlisted = _registered - set(ALL_TABLE_NAMES)
assert not _missing and not _unlisted, (
    f"Booking models and tablebook.db.tables.ALL_TABLE_NAMES disagree: "
    f"no model for {sorted(_missing)}, not listed: {sorted(_unlisted)}"
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
db_url = context.get_x_argument(as_dictionary=True).get("db_url") or settings.database_url
config.set_main_option("sqlalchemy.url", db_url)


def _configure(**kwargs) -> None:
    # SQLite cannot ALTER constraints in place; batch mode rebuilds the table instead
    is_sqlite = db_url.startswith("sqlite")
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=is_sqlite,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=db_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
