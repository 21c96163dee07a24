"""Booking schema: branches, booking_settings, time_slots, slot_occupancy, booking_overrides, bookings

Revision ID: 001
Revises:
Create Date: (run alembic upgrade head)

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("restaurant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("address", sa.String(512), nullable=True),
        sa.Column("city", sa.String(128), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_branches_restaurant_id", "branches", ["restaurant_id"])

    op.create_table(
        "booking_settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("open_time", sa.String(5), nullable=False),
        sa.Column("close_time", sa.String(5), nullable=False),
        sa.Column("interval_minutes", sa.Integer(), nullable=False, server_default="90"),
        sa.Column("max_seats_per_slot", sa.Integer(), nullable=False, server_default="25"),
        sa.Column("max_tables_per_slot", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("branch_id", name="uq_booking_settings_branch_id"),
        sa.CheckConstraint("interval_minutes > 0", name="ck_booking_settings_interval_positive"),
        sa.CheckConstraint("max_seats_per_slot >= 1", name="ck_booking_settings_seats_min"),
        sa.CheckConstraint("max_tables_per_slot >= 1", name="ck_booking_settings_tables_min"),
    )

    # time_slots: one row per (branch, start). Materializer relies on the unique key for ON CONFLICT DO NOTHING.
    op.create_table(
        "time_slots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("max_seats", sa.Integer(), nullable=False),
        sa.Column("max_tables", sa.Integer(), nullable=False),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("branch_id", "start_time", name="uq_time_slots_branch_start"),
        sa.CheckConstraint("start_time < end_time", name="ck_time_slots_start_before_end"),
    )
    op.create_index("ix_time_slots_branch_id", "time_slots", ["branch_id"])
    op.create_index("ix_time_slots_date", "time_slots", ["date"])

    # slot_occupancy: per-slot counters for the admission compare-and-swap.
    op.create_table(
        "slot_occupancy",
        sa.Column("time_slot_id", sa.Integer(), nullable=False),
        sa.Column("seats_held", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tables_held", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("time_slot_id"),
        sa.ForeignKeyConstraint(["time_slot_id"], ["time_slots.id"], ondelete="CASCADE"),
        sa.CheckConstraint("seats_held >= 0", name="ck_slot_occupancy_seats_nonneg"),
        sa.CheckConstraint("tables_held >= 0", name="ck_slot_occupancy_tables_nonneg"),
    )

    op.create_table(
        "booking_overrides",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("override_type", sa.String(16), nullable=False),
        sa.Column("new_max_seats", sa.Integer(), nullable=True),
        sa.Column("new_max_tables", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="CASCADE"),
        sa.CheckConstraint("start_time < end_time", name="ck_booking_overrides_start_before_end"),
        sa.CheckConstraint(
            "override_type IN ('closed', 'capacity', 'custom')", name="ck_booking_overrides_type"
        ),
    )
    op.create_index("ix_booking_overrides_branch_id", "booking_overrides", ["branch_id"])
    op.create_index("ix_booking_overrides_date", "booking_overrides", ["date"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("restaurant_user_id", sa.Integer(), nullable=True),
        sa.Column("guest_name", sa.String(256), nullable=True),
        sa.Column("guest_phone", sa.String(64), nullable=True),
        sa.Column("guest_email", sa.String(256), nullable=True),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("time_slot_id", sa.Integer(), nullable=False),
        sa.Column("party_size", sa.Integer(), nullable=False),
        sa.Column("table_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("arrived_at", sa.DateTime(), nullable=True),
        sa.Column("idempotency_key", sa.String(128), nullable=True),
        sa.Column("idempotency_owner", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["time_slot_id"], ["time_slots.id"]),
        sa.UniqueConstraint(
            "branch_id", "idempotency_owner", "idempotency_key", name="uq_bookings_idempotency_key"
        ),
        sa.CheckConstraint("party_size >= 1", name="ck_bookings_party_size_min"),
        sa.CheckConstraint("table_count >= 1", name="ck_bookings_table_count_min"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'arrived', 'completed', 'cancelled')",
            name="ck_bookings_status",
        ),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_branch_id", "bookings", ["branch_id"])
    op.create_index("ix_bookings_time_slot_id", "bookings", ["time_slot_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("booking_overrides")
    op.drop_table("slot_occupancy")
    op.drop_table("time_slots")
    op.drop_table("booking_settings")
    op.drop_index("ix_branches_restaurant_id", table_name="branches")
    op.drop_table("branches")
