from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_id", sa.String(), nullable=False),
        sa.Column("customer", sa.String(), nullable=False),
        sa.Column("technician", sa.String(), nullable=True),
        sa.Column("service_type", sa.String(length=100), nullable=False),
        sa.Column("device_info", sa.JSON(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("urgency", sa.String(), nullable=False, server_default="normal"),
        sa.Column("preferred_date", sa.Date(), nullable=False),
        sa.Column("preferred_time_slot", sa.String(), nullable=False, server_default="morning"),
        sa.Column("address", sa.JSON(), nullable=False),
        sa.Column("phone", sa.String(), nullable=False),
        sa.Column("alt_phone", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("estimated_cost", sa.Float(), nullable=True),
        sa.Column("final_cost", sa.Float(), nullable=True),
        sa.Column("payment_status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("cancellation_reason", sa.String(), nullable=True),
        sa.Column("rejection_reason", sa.String(), nullable=True),
        sa.Column("reschedule_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_bookings_booking_id", "bookings", ["booking_id"], unique=True)
    op.create_index("ix_bookings_customer", "bookings", ["customer"], unique=False)
    op.create_index("ix_bookings_technician", "bookings", ["technician"], unique=False)
    op.create_index("ix_bookings_service_type", "bookings", ["service_type"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)

    op.create_table(
        "booking_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_pk", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("changed_by", sa.String(), nullable=True),
        sa.Column("note", sa.String(), nullable=True),
    )
    op.create_index("ix_booking_status_history_booking_pk", "booking_status_history", ["booking_pk"], unique=False)

def downgrade():
    op.drop_index("ix_booking_status_history_booking_pk", table_name="booking_status_history")
    op.drop_table("booking_status_history")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_service_type", table_name="bookings")
    op.drop_index("ix_bookings_technician", table_name="bookings")
    op.drop_index("ix_bookings_customer", table_name="bookings")
    op.drop_index("ix_bookings_booking_id", table_name="bookings")
    op.drop_table("bookings")
