"""Per-branch booking policy: operating hours, slot interval and per-slot capacity. One row per branch."""
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from tablebook.core.constants import (
    DEFAULT_MAX_SEATS_PER_SLOT,
    DEFAULT_MAX_TABLES_PER_SLOT,
    DEFAULT_SLOT_INTERVAL_MINUTES,
)
from tablebook.db.base import Base


class BookingSettings(Base):
    __tablename__ = "booking_settings"
    __table_args__ = (
        CheckConstraint("interval_minutes > 0", name="ck_booking_settings_interval_positive"),
        CheckConstraint("max_seats_per_slot >= 1", name="ck_booking_settings_seats_min"),
        CheckConstraint("max_tables_per_slot >= 1", name="ck_booking_settings_tables_min"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, unique=True)
    open_time = Column(String(5), nullable=False)   # HH:MM
    close_time = Column(String(5), nullable=False)  # HH:MM
    interval_minutes = Column(Integer, nullable=False, default=DEFAULT_SLOT_INTERVAL_MINUTES)
    max_seats_per_slot = Column(Integer, nullable=False, default=DEFAULT_MAX_SEATS_PER_SLOT)
    max_tables_per_slot = Column(Integer, nullable=False, default=DEFAULT_MAX_TABLES_PER_SLOT)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
