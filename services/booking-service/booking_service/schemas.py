from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Urgency = Literal["normal", "urgent", "emergency"]
TimeSlot = Literal["morning", "afternoon", "evening"]
StatusFilter = Literal["pending", "assigned", "in_progress", "completed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "refunded", "failed"]
SortOrder = Literal["createdAt", "-createdAt", "preferredDate", "-preferredDate"]

PHONE_PATTERN = r"^\+?[\d\s-]{7,15}$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class DeviceInfo(CamelModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    issue: Optional[str] = None


class Address(CamelModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: Optional[str] = None
    zip_code: Optional[str] = None
    landmark: Optional[str] = None


class CreateBookingRequest(CamelModel):
    service_type: str = Field(min_length=1, max_length=100)
    device_info: Optional[DeviceInfo] = None
    description: str = Field(min_length=1, max_length=1000)
    urgency: Urgency = "normal"
    preferred_date: date
    preferred_time_slot: TimeSlot = "morning"
    address: Address
    phone: str = Field(pattern=PHONE_PATTERN)
    alt_phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    notes: Optional[str] = Field(default=None, max_length=2000)
    estimated_cost: Optional[float] = Field(default=None, ge=0)

    @field_validator("preferred_date")
    @classmethod
    def not_in_past(cls, value: date) -> date:
        if value < date.today():
            raise ValueError("Preferred date must not be in the past")
        return value


class RejectAssignmentRequest(CamelModel):
    reason: str = Field(min_length=1, max_length=500)


class CompleteBookingRequest(CamelModel):
    final_cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=2000)


class CancelBookingRequest(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class AssignTechnicianRequest(CamelModel):
    technician_id: str = Field(min_length=1)


class RescheduleRequest(CamelModel):
    preferred_date: date
    preferred_time_slot: Optional[TimeSlot] = None
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("preferred_date")
    @classmethod
    def not_in_past(cls, value: date) -> date:
        if value < date.today():
            raise ValueError("Reschedule date must not be in the past")
        return value


class StatusHistoryEntry(CamelModel):
    status: str
    changed_at: datetime
    changed_by: Optional[str] = None
    note: Optional[str] = None


class RescheduleEntry(CamelModel):
    from_date: date
    from_time_slot: TimeSlot
    to_date: date
    to_time_slot: TimeSlot
    reason: Optional[str] = None
    rescheduled_by: str
    rescheduled_at: datetime


class BookingResponse(CamelModel):
    booking_id: str
    customer: str
    technician: Optional[str] = None

    service_type: str
    device_info: Optional[DeviceInfo] = None
    description: str
    urgency: Urgency

    preferred_date: date
    preferred_time_slot: TimeSlot

    address: Address
    phone: str
    alt_phone: Optional[str] = None
    notes: Optional[str] = None

    estimated_cost: Optional[float] = None
    final_cost: Optional[float] = None
    payment_status: PaymentStatus

    status: str
    status_history: List[StatusHistoryEntry]
    cancellation_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    reschedule_count: int = 0
    reschedule_history: List[RescheduleEntry] = []

    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    # derived, never stored
    is_active: bool
    is_terminal: bool
    progress: Optional[float] = None
