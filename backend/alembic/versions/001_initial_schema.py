"""Initial schema: amenities, bookings, slot claims, visitor passes, audit events.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_BOOKING = sa.text("status IN ('pending', 'approved')")


def upgrade() -> None:
    # Amenities table
    op.create_table(
        "amenities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("operating_hours", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        # [{"name", "start", "end", "max_per_day"}]; NULL means the default slot
        sa.Column("booking_slots", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_amenities_id", "amenities", ["id"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("building_id", sa.Integer(), nullable=False),
        sa.Column("apartment_id", sa.Integer(), nullable=True),
        sa.Column("amenity_id", sa.Integer(), sa.ForeignKey("amenities.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("slot_name", sa.String(100), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=True),
        sa.Column("end_time", sa.String(5), nullable=True),
        sa.Column("purpose", sa.String(500), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_building_id", "bookings", ["building_id"])
    op.create_index("ix_bookings_amenity_id", "bookings", ["amenity_id"])
    op.create_index("ix_bookings_created_by", "bookings", ["created_by"])
    # Capacity counts: WHERE amenity/building/date/slot AND status IN (...)
    op.create_index(
        "ix_bookings_slot", "bookings",
        ["amenity_id", "building_id", "date", "slot_name", "status"],
    )
    # One open booking per resident per amenity per day, whatever the slot
    op.create_index(
        "uq_bookings_open_per_user_day", "bookings",
        ["created_by", "amenity_id", "date"],
        unique=True,
        postgresql_where=OPEN_BOOKING,
        sqlite_where=OPEN_BOOKING,
    )

    # Slot claims: per-slot version counter that serializes admissions
    op.create_table(
        "slot_claims",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("amenity_id", sa.Integer(), nullable=False),
        sa.Column("building_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("slot_name", sa.String(100), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.UniqueConstraint("amenity_id", "building_id", "date", "slot_name", name="uq_slot_claim"),
    )

    # Visitor passes
    op.create_table(
        "visitor_passes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("building_id", sa.Integer(), nullable=False),
        sa.Column("apartment_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(32), nullable=False, unique=True),
        sa.Column("visitor_name", sa.String(255), nullable=True),
        sa.Column("qr_data", sa.String(2000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.CheckConstraint(
            "status IN ('active', 'verified', 'cancelled', 'expired')",
            name="check_visitor_pass_status",
        ),
    )
    op.create_index("ix_visitor_passes_id", "visitor_passes", ["id"])
    op.create_index("ix_visitor_passes_building_id", "visitor_passes", ["building_id"])
    op.create_index("ix_visitor_passes_created_by", "visitor_passes", ["created_by"])
    op.create_index("ix_visitor_passes_building_code", "visitor_passes", ["building_id", "code"])
    # Gate dashboard: active passes ordered by expiry
    op.create_index(
        "ix_visitor_passes_building_status_expiry", "visitor_passes",
        ["building_id", "status", "expires_at"],
    )

    # Audit events
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("building_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("ref_id", sa.Integer(), nullable=True),
        sa.Column("message", sa.String(1000), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_events_id", "audit_events", ["id"])
    op.create_index("ix_audit_events_building_created", "audit_events", ["building_id", "created_at"])
    op.create_index("ix_audit_events_ref", "audit_events", ["type", "ref_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("visitor_passes")
    op.drop_table("slot_claims")
    op.drop_table("bookings")
    op.drop_table("amenities")
