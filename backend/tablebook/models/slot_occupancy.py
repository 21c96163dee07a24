"""Seats and tables held by active bookings of one time slot. Admission increments it with a conditional UPDATE."""
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer
from sqlalchemy.sql import func

from tablebook.db.base import Base


class SlotOccupancy(Base):
    __tablename__ = "slot_occupancy"
    __table_args__ = (
        CheckConstraint("seats_held >= 0", name="ck_slot_occupancy_seats_nonneg"),
        CheckConstraint("tables_held >= 0", name="ck_slot_occupancy_tables_nonneg"),
    )

    time_slot_id = Column(Integer, ForeignKey("time_slots.id", ondelete="CASCADE"), primary_key=True)
    seats_held = Column(Integer, nullable=False, default=0)
    tables_held = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
