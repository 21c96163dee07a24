"""
Materialized reservable slot for one branch on one date.

start_time/end_time are naive wall-clock timestamps in the branch timezone. Capacity is the
snapshot of the branch settings at materialization; overrides are resolved at read time and
never written here.
"""
from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.sql import func

from tablebook.db.base import Base


class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("branch_id", "start_time", name="uq_time_slots_branch_start"),
        CheckConstraint("start_time < end_time", name="ck_time_slots_start_before_end"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    max_seats = Column(Integer, nullable=False)
    max_tables = Column(Integer, nullable=False)
    is_closed = Column(Boolean, nullable=False, default=False)  # soft retire
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<TimeSlot {self.id} branch={self.branch_id} {self.start_time:%Y-%m-%d %H:%M}>"
