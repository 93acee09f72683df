from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "booking_reschedule_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_pk", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("from_date", sa.Date(), nullable=False),
        sa.Column("from_time_slot", sa.String(), nullable=False),
        sa.Column("to_date", sa.Date(), nullable=False),
        sa.Column("to_time_slot", sa.String(), nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("rescheduled_by", sa.String(), nullable=False),
        sa.Column("rescheduled_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_booking_reschedule_history_booking_pk", "booking_reschedule_history", ["booking_pk"], unique=False
    )


def downgrade():
    op.drop_index("ix_booking_reschedule_history_booking_pk", table_name="booking_reschedule_history")
    op.drop_table("booking_reschedule_history")
