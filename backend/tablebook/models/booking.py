"""
Reservation of seats in one time slot.

Never physically deleted: cancellation and completion are status changes. Guest bookings
(made by an operator for a walk-in or phone caller) have no user_id and carry guest_* fields.
"""
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from tablebook.core.constants import BOOKING_STATUS_PENDING
from tablebook.db.base import Base


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint(
            "branch_id", "idempotency_owner", "idempotency_key", name="uq_bookings_idempotency_key"
        ),
        CheckConstraint("party_size >= 1", name="ck_bookings_party_size_min"),
        CheckConstraint("table_count >= 1", name="ck_bookings_table_count_min"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'arrived', 'completed', 'cancelled')",
            name="ck_bookings_status",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, index=True)
    restaurant_user_id = Column(Integer, nullable=True)  # operator who created it (guest bookings)
    guest_name = Column(String(256), nullable=True)
    guest_phone = Column(String(64), nullable=True)
    guest_email = Column(String(256), nullable=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    time_slot_id = Column(Integer, ForeignKey("time_slots.id"), nullable=False, index=True)
    party_size = Column(Integer, nullable=False)
    table_count = Column(Integer, nullable=False, default=1)
    status = Column(String(16), nullable=False, default=BOOKING_STATUS_PENDING, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)  # slot start + branch interval at admission
    arrived_at = Column(DateTime, nullable=True)
    idempotency_key = Column(String(128), nullable=True)
    idempotency_owner = Column(String(64), nullable=True)  # "user:<id>" or "restaurant:<id>"
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_guest(self) -> bool:
        return self.user_id is None and bool(self.guest_name)
