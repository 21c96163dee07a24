from tablebook.db.base import Base
from tablebook.db.session import build_engine, build_session_factory, get_db
from tablebook.db.tables import ALL_TABLE_NAMES

__all__ = [
    "get_db",
    "build_engine",
    "build_session_factory",
    "Base",
    "ALL_TABLE_NAMES",
]
