"""
Rolling-window materialization: keep time slots for every configured branch materialized for
the next `materialize_window_days` days. Runs daily (cron) and once on startup.

Existing slots are skipped by the materializer, so overlapping runs are harmless.
"""
import logging

from sqlalchemy.orm import sessionmaker

from tablebook.config import settings
from tablebook.core.errors import BookingError
from tablebook.models.booking_settings import BookingSettings
from tablebook.services.materializer import materialize

logger = logging.getLogger(__name__)


def run_materialize_job(session_factory: sessionmaker, days: int | None = None) -> dict[int, int]:
    """Materialize every branch that has booking settings. Returns {branch_id: slots created}."""
    days = days or settings.materialize_window_days
    created: dict[int, int] = {}
    db = session_factory()
    try:
        configured = db.query(BookingSettings).order_by(BookingSettings.branch_id.asc()).all()
        for cfg in configured:
            branch_id = cfg.branch_id
            try:
                created[branch_id] = materialize(db, branch_id, days, booking_settings=cfg)
            except BookingError as e:
                logger.warning("Materialize job: branch %s skipped: %s", branch_id, e.reason)
        total = sum(created.values())
        logger.info("Materialize job: %s slots created for %s branches (%s days)", total, len(created), days)
    except Exception as e:
        logger.exception("Materialize job failed: %s", e)
        db.rollback()
    finally:
        db.close()
    return created
