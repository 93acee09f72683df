"""
Read projections consumed by the customer, technician and admin dashboards.
"""

import math

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Booking
from .policy import ACTIVE_STATUSES, BookingStatus, is_active, is_terminal, progress
from .schemas import Address, BookingResponse, DeviceInfo, RescheduleEntry, StatusHistoryEntry

SORT_COLUMNS = {
    "createdAt": Booking.created_at,
    "preferredDate": Booking.preferred_date,
}


def to_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        booking_id=booking.booking_id,
        customer=booking.customer,
        technician=booking.technician,
        service_type=booking.service_type,
        device_info=DeviceInfo(**booking.device_info) if booking.device_info else None,
        description=booking.description,
        urgency=booking.urgency,
        preferred_date=booking.preferred_date,
        preferred_time_slot=booking.preferred_time_slot,
        address=Address(**booking.address),
        phone=booking.phone,
        alt_phone=booking.alt_phone,
        notes=booking.notes,
        estimated_cost=booking.estimated_cost,
        final_cost=booking.final_cost,
        payment_status=booking.payment_status,
        status=booking.status,
        status_history=[
            StatusHistoryEntry(
                status=h.status,
                changed_at=h.changed_at,
                changed_by=h.changed_by,
                note=h.note,
            )
            for h in booking.status_history
        ],
        cancellation_reason=booking.cancellation_reason,
        rejection_reason=booking.rejection_reason,
        reschedule_count=booking.reschedule_count,
        reschedule_history=[
            RescheduleEntry(
                from_date=r.from_date,
                from_time_slot=r.from_time_slot,
                to_date=r.to_date,
                to_time_slot=r.to_time_slot,
                reason=r.reason,
                rescheduled_by=r.rescheduled_by,
                rescheduled_at=r.rescheduled_at,
            )
            for r in booking.reschedule_history
        ],
        created_at=booking.created_at,
        updated_at=booking.updated_at,
        started_at=booking.started_at,
        completed_at=booking.completed_at,
        cancelled_at=booking.cancelled_at,
        is_active=is_active(booking.status),
        is_terminal=is_terminal(booking.status),
        progress=progress(booking.status),
    )


def serialize(booking: Booking) -> dict:
    return to_response(booking).model_dump(by_alias=True, mode="json")


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def _order_by(sort: str):
    descending = sort.startswith("-")
    column = SORT_COLUMNS[sort.lstrip("-")]
    if descending:
        return (column.desc(), Booking.id.desc())
    return (column.asc(), Booking.id.asc())


async def _paginate(db: AsyncSession, filters: list, page: int, limit: int, sort: str):
    total = await db.scalar(select(func.count()).select_from(Booking).where(*filters))

    res = await db.execute(
        select(Booking)
        .where(*filters)
        .order_by(*_order_by(sort))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(res.scalars().all()), total or 0


async def customer_bookings(
    db: AsyncSession,
    customer: str,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
):
    filters = [Booking.customer == customer]
    if status:
        filters.append(Booking.status == status)
    return await _paginate(db, filters, page, limit, "-createdAt")


async def active_bookings(db: AsyncSession, customer: str) -> list[Booking]:
    """Every non-terminal booking of ``customer``, most recent first."""
    res = await db.execute(
        select(Booking)
        .where(
            Booking.customer == customer,
            Booking.status.in_([s.value for s in ACTIVE_STATUSES]),
        )
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )
    return list(res.scalars().all())


async def open_jobs(db: AsyncSession, service_type: str | None = None) -> list[Booking]:
    filters = [
        Booking.status == BookingStatus.PENDING.value,
        Booking.technician.is_(None),
    ]
    if service_type:
        filters.append(func.lower(Booking.service_type) == service_type.strip().lower())

    res = await db.execute(
        select(Booking)
        .where(*filters)
        .order_by(Booking.preferred_date.asc(), Booking.id.asc())
    )
    return list(res.scalars().all())


async def assigned_jobs(db: AsyncSession, technician: str, status: str | None = None) -> list[Booking]:
    filters = [Booking.technician == technician]
    if status:
        filters.append(Booking.status == status)

    res = await db.execute(
        select(Booking)
        .where(*filters)
        .order_by(Booking.preferred_date.asc(), Booking.id.asc())
    )
    return list(res.scalars().all())


async def all_bookings(
    db: AsyncSession,
    status: str | None = None,
    customer: str | None = None,
    technician: str | None = None,
    page: int = 1,
    limit: int = 20,
    sort: str = "-createdAt",
):
    filters = []
    if status:
        filters.append(Booking.status == status)
    if customer:
        filters.append(Booking.customer == customer)
    if technician:
        filters.append(Booking.technician == technician)
    return await _paginate(db, filters, page, limit, sort)
