from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shared.rbac import require_role
from shared.redis import get_redis_client
from shared.responses import ApiResponse
from shared.security import Actor, make_current_actor

from . import lifecycle, projections
from .config import JWT_ALGORITHM, JWT_SECRET, REDIS_URL
from .db import get_db
from .policy import Role
from .schemas import (
    AssignTechnicianRequest,
    CancelBookingRequest,
    CompleteBookingRequest,
    CreateBookingRequest,
    RejectAssignmentRequest,
    RescheduleRequest,
    SortOrder,
    StatusFilter,
)

router = APIRouter(prefix="/bookings", tags=["Bookings"])

get_current_actor = make_current_actor(JWT_SECRET, JWT_ALGORITHM)

redis_client = get_redis_client(REDIS_URL)


def get_redis():
    return redis_client


def _booking(booking, message: str):
    return ApiResponse.success(data={"booking": projections.serialize(booking)}, message=message)


def _page(bookings, total: int, page: int, limit: int):
    return ApiResponse.success(
        data={
            "bookings": [projections.serialize(b) for b in bookings],
            "total": total,
            "page": page,
            "pages": projections.page_count(total, limit),
        },
        message="Bookings fetched",
    )


def _list(bookings):
    return ApiResponse.success(
        data={"bookings": [projections.serialize(b) for b in bookings]},
        message="Bookings fetched",
    )


# ================= CUSTOMER =================

@router.post("")
async def create_booking(
    data: CreateBookingRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    redis=Depends(get_redis),
):
    booking, created = await lifecycle.create_booking(db, actor, data, redis=redis, idempotency_key=idempotency_key)
    if not created:
        return _booking(booking, "Booking already created")
    return ApiResponse.created(
        data={"booking": projections.serialize(booking)},
        message="Booking created successfully",
    )


@router.get("/my")
async def my_bookings(
    status: Optional[StatusFilter] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, [Role.CUSTOMER.value])
    bookings, total = await projections.customer_bookings(db, actor.subject, status, page, limit)
    return _page(bookings, total, page, limit)


@router.get("/my/active")
async def my_active_bookings(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, [Role.CUSTOMER.value])
    return _list(await projections.active_bookings(db, actor.subject))


@router.patch("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: str,
    data: Optional[CancelBookingRequest] = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    reason = data.reason if data else None
    booking = await lifecycle.cancel_booking(db, actor, booking_id, reason)
    return _booking(booking, "Booking cancelled successfully")


# ================= TECHNICIAN =================

@router.get("/open")
async def open_jobs(
    service_type: Optional[str] = Query(default=None, alias="serviceType"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, [Role.TECHNICIAN.value])
    return _list(await projections.open_jobs(db, service_type))


@router.get("/assigned/me")
async def assigned_jobs(
    status: Optional[StatusFilter] = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, [Role.TECHNICIAN.value])
    return _list(await projections.assigned_jobs(db, actor.subject, status))


@router.patch("/{booking_id}/accept")
async def accept_job(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    booking = await lifecycle.accept_job(db, actor, booking_id)
    return _booking(booking, "Job accepted")


@router.patch("/{booking_id}/reject-assignment")
async def reject_assignment(
    booking_id: str,
    data: RejectAssignmentRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    booking = await lifecycle.reject_assignment(db, actor, booking_id, data.reason)
    return _booking(booking, "Assignment rejected, booking re-opened")


@router.patch("/{booking_id}/start")
async def start_job(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    booking = await lifecycle.start_job(db, actor, booking_id)
    return _booking(booking, "Job started")


@router.patch("/{booking_id}/complete")
async def complete_job(
    booking_id: str,
    data: Optional[CompleteBookingRequest] = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    final_cost = data.final_cost if data else None
    notes = data.notes if data else None
    booking = await lifecycle.complete_job(db, actor, booking_id, final_cost, notes)
    return _booking(booking, "Job completed")


# ================= ADMIN =================

@router.get("")
async def list_bookings(
    status: Optional[StatusFilter] = None,
    customer: Optional[str] = None,
    technician: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    sort: SortOrder = "-createdAt",
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    require_role(actor, [Role.ADMIN.value])
    bookings, total = await projections.all_bookings(db, status, customer, technician, page, limit, sort)
    return _page(bookings, total, page, limit)


@router.patch("/{booking_id}/admin-cancel")
async def admin_cancel(
    booking_id: str,
    data: Optional[CancelBookingRequest] = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    reason = data.reason if data else None
    booking = await lifecycle.admin_cancel(db, actor, booking_id, reason)
    return _booking(booking, "Booking cancelled by admin")


@router.patch("/{booking_id}/reschedule")
async def reschedule_booking(
    booking_id: str,
    data: RescheduleRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    booking = await lifecycle.reschedule(
        db, actor, booking_id, data.preferred_date, data.preferred_time_slot, data.reason
    )
    return _booking(booking, "Booking rescheduled")


@router.patch("/{booking_id}/assign")
async def assign_technician(
    booking_id: str,
    data: AssignTechnicianRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    booking = await lifecycle.assign_technician(db, actor, booking_id, data.technician_id)
    return _booking(booking, "Technician assigned successfully")


# ================= SHARED =================

@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    booking = await lifecycle.get_booking_for(db, actor, booking_id)
    return _booking(booking, "Booking fetched")
