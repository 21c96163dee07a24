"""Restaurant branch: owner of booking settings, time slots, overrides and bookings."""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from tablebook.db.base import Base


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, nullable=False, index=True)  # operator account that owns the branch
    name = Column(String(256), nullable=False)
    address = Column(String(512), nullable=True)
    city = Column(String(128), nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC")  # IANA name; slot times are wall-clock here
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
