from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .db import Base


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    booking_id = Column(String, unique=True, nullable=False, index=True)

    # parties are token subjects (emails) issued by auth-service
    customer = Column(String, nullable=False, index=True)
    technician = Column(String, nullable=True, index=True)

    service_type = Column(String(100), nullable=False, index=True)
    device_info = Column(JSON, nullable=True)  # {brand, model, issue}
    description = Column(Text, nullable=False)
    urgency = Column(String, nullable=False, default="normal")

    preferred_date = Column(Date, nullable=False)
    preferred_time_slot = Column(String, nullable=False, default="morning")

    address = Column(JSON, nullable=False)  # {street, city, state, zip_code, landmark}
    phone = Column(String, nullable=False)
    alt_phone = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    estimated_cost = Column(Float, nullable=True)
    final_cost = Column(Float, nullable=True)
    payment_status = Column(String, nullable=False, default="pending")

    status = Column(String, nullable=False, index=True)  # pending/assigned/in_progress/completed/cancelled
    cancellation_reason = Column(String, nullable=True)
    rejection_reason = Column(String, nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)

    # compare-and-swap guard: every UPDATE is conditional on the version read
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    status_history = relationship(
        "BookingStatusHistory",
        order_by="BookingStatusHistory.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    reschedule_history = relationship(
        "BookingRescheduleHistory",
        order_by="BookingRescheduleHistory.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}


class BookingStatusHistory(Base):
    __tablename__ = "booking_status_history"

    id = Column(Integer, primary_key=True)
    booking_pk = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String, nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False)
    changed_by = Column(String, nullable=True)
    note = Column(String, nullable=True)


class BookingRescheduleHistory(Base):
    __tablename__ = "booking_reschedule_history"

    id = Column(Integer, primary_key=True)
    booking_pk = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)

    from_date = Column(Date, nullable=False)
    from_time_slot = Column(String, nullable=False)
    to_date = Column(Date, nullable=False)
    to_time_slot = Column(String, nullable=False)
    reason = Column(String, nullable=True)
    rescheduled_by = Column(String, nullable=False)
    rescheduled_at = Column(DateTime(timezone=True), nullable=False)
