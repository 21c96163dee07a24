"""Operator override of slot capacity for a time range on one date: closed, capacity or custom."""
from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from tablebook.db.base import Base


class BookingOverride(Base):
    __tablename__ = "booking_overrides"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_booking_overrides_start_before_end"),
        CheckConstraint("override_type IN ('closed', 'capacity', 'custom')", name="ck_booking_overrides_type"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)  # branch wall-clock, on `date`
    end_time = Column(DateTime, nullable=False)
    override_type = Column(String(16), nullable=False)
    new_max_seats = Column(Integer, nullable=True)
    new_max_tables = Column(Integer, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
