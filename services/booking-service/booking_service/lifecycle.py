"""
Booking Lifecycle Service.

The only code that changes a booking's ``status`` and the fields that move
with it (``technician``, ``started_at``, ``completed_at``, ``cancelled_at``,
``status_history``). Each operation is one atomic read-modify-write: the
booking row is versioned, so a concurrent transition that committed first
makes the later one fail instead of both succeeding.
"""

import logging
import uuid
from datetime import date, datetime, timezone

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from shared import idempotency
from shared.errors import AppError, Forbidden, InvalidTransition, NotFound, ValidationError
from shared.rbac import require_role
from shared.security import Actor

from .config import MAX_RESCHEDULES
from .models import Booking, BookingRescheduleHistory, BookingStatusHistory
from .policy import BookingStatus, Operation, Role, authorize, can_view
from .publisher import publish_booking_event
from .schemas import CreateBookingRequest

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def find_booking(db: AsyncSession, booking_id: str) -> Booking:
    res = await db.execute(
        select(Booking)
        .where(Booking.booking_id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = res.scalar_one_or_none()
    if not booking:
        raise NotFound("Booking not found")
    return booking


async def get_booking_for(db: AsyncSession, actor: Actor, booking_id: str) -> Booking:
    booking = await find_booking(db, booking_id)
    if not can_view(booking, actor):
        raise Forbidden("Not authorized to view this booking")
    return booking


async def create_booking(
    db: AsyncSession,
    actor: Actor,
    data: CreateBookingRequest,
    redis=None,
    idempotency_key: str | None = None,
) -> tuple[Booking, bool]:
    """
    Create a ``pending`` booking owned by ``actor``.

    Returns ``(booking, created)``. With an idempotency key and a Redis
    client, a repeated request returns the booking made by the first one
    and ``created`` is False. The key is claimed together with the id the
    new booking will get, so a repeat still finds the booking when
    recording the result failed.
    """
    require_role(actor, [Role.CUSTOMER.value])

    booking_id = str(uuid.uuid4())

    use_key = redis is not None and bool(idempotency_key)
    if use_key:
        if len(idempotency_key) > idempotency.MAX_KEY_LENGTH:
            raise ValidationError("Idempotency-Key must be 255 characters or fewer")

        existing = await idempotency.claim(redis, actor.subject, idempotency_key, booking_id)
        if existing is not None:
            previous_id = idempotency.result_of(existing)
            res = await db.execute(select(Booking).where(Booking.booking_id == previous_id))
            replay = res.scalar_one_or_none()
            if replay is None:
                raise ValidationError("A request with this Idempotency-Key is already being processed")
            logger.info(f"Idempotent replay of booking {previous_id} for {actor.subject}")
            return replay, False

    try:
        booking = await _insert_booking(db, actor, data, booking_id)
    except Exception:
        if use_key:
            await idempotency.release(redis, actor.subject, idempotency_key)
        raise

    if use_key:
        try:
            await idempotency.complete(redis, actor.subject, idempotency_key, booking.booking_id)
        except RedisError as e:
            logger.warning(f"Could not record idempotency result for booking {booking.booking_id}: {e}")

    await publish_booking_event("booking.created", booking, None, actor.subject)
    return booking, True


async def _insert_booking(db: AsyncSession, actor: Actor, data: CreateBookingRequest, booking_id: str) -> Booking:
    now = utcnow()
    booking = Booking(
        booking_id=booking_id,
        customer=actor.subject,
        technician=None,
        service_type=data.service_type,
        device_info=data.device_info.model_dump() if data.device_info else None,
        description=data.description,
        urgency=data.urgency,
        preferred_date=data.preferred_date,
        preferred_time_slot=data.preferred_time_slot,
        address=data.address.model_dump(),
        phone=data.phone,
        alt_phone=data.alt_phone,
        notes=data.notes,
        estimated_cost=data.estimated_cost,
        final_cost=None,
        payment_status="pending",
        status=BookingStatus.PENDING.value,
        reschedule_count=0,
        reschedule_history=[],
        created_at=now,
        updated_at=now,
        status_history=[
            BookingStatusHistory(
                status=BookingStatus.PENDING.value,
                changed_at=now,
                changed_by=actor.subject,
                note="Booking created",
            )
        ],
    )
    db.add(booking)
    await db.commit()

    logger.info(f"Booking {booking.booking_id} created by {actor.subject} ({booking.service_type})")
    return booking


async def _transition(
    db: AsyncSession,
    actor: Actor,
    booking_id: str,
    operation: Operation,
    apply=None,
    note: str | None = None,
    check=None,
) -> Booking:
    """
    Run ``operation`` on one booking.

    ``check(booking)`` validates the request against the loaded booking and
    runs after ``authorize``, before anything is modified, so a rejection
    leaves the session untouched. ``apply(booking, now)`` makes the changes
    and may return extra event data.
    """
    booking = await find_booking(db, booking_id)
    previous = booking.status

    try:
        rule = authorize(operation, booking, actor)
        if check is not None:
            check(booking)
    except AppError as e:
        logger.warning(f"Rejected {operation.value} on booking {booking_id} by {actor.subject}: {e.message}")
        raise

    now = utcnow()
    extra = apply(booking, now) if apply is not None else None

    if rule.target is not None:
        booking.status = rule.target.value
        booking.status_history.append(
            BookingStatusHistory(
                status=rule.target.value,
                changed_at=now,
                changed_by=actor.subject,
                note=note,
            )
        )
    booking.updated_at = now

    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        logger.warning(f"Concurrent update lost on booking {booking_id} ({operation.value} by {actor.subject})")
        raise InvalidTransition("Booking was modified concurrently, reload and retry")

    logger.info(f"Booking {booking_id} {previous} -> {booking.status} ({operation.value} by {actor.subject})")
    await publish_booking_event(rule.event, booking, previous, actor.subject, extra=extra)
    return booking


def _require_text(value: str | None, message: str):
    def check(booking):
        if not value or not value.strip():
            raise ValidationError(message)

    return check


async def accept_job(db: AsyncSession, actor: Actor, booking_id: str) -> Booking:
    def apply(booking, now):
        booking.technician = actor.subject

    return await _transition(db, actor, booking_id, Operation.ACCEPT, apply, note="Accepted by technician")


async def reject_assignment(db: AsyncSession, actor: Actor, booking_id: str, reason: str) -> Booking:
    def apply(booking, now):
        booking.technician = None
        booking.rejection_reason = reason

    return await _transition(
        db,
        actor,
        booking_id,
        Operation.REJECT_ASSIGNMENT,
        apply,
        note=reason,
        check=_require_text(reason, "Rejection reason is required"),
    )


async def start_job(db: AsyncSession, actor: Actor, booking_id: str) -> Booking:
    def apply(booking, now):
        booking.started_at = now

    return await _transition(db, actor, booking_id, Operation.START, apply)


async def complete_job(
    db: AsyncSession,
    actor: Actor,
    booking_id: str,
    final_cost: float | None = None,
    notes: str | None = None,
) -> Booking:
    def check(booking):
        if final_cost is not None and final_cost < 0:
            raise ValidationError("Final cost cannot be negative")

    def apply(booking, now):
        booking.completed_at = now
        if final_cost is not None:
            booking.final_cost = final_cost

    return await _transition(db, actor, booking_id, Operation.COMPLETE, apply, note=notes, check=check)


def _cancel_apply(reason: str):
    def apply(booking, now):
        booking.cancelled_at = now
        booking.cancellation_reason = reason

    return apply


async def cancel_booking(db: AsyncSession, actor: Actor, booking_id: str, reason: str | None = None) -> Booking:
    reason = reason or "Cancelled by customer"
    return await _transition(db, actor, booking_id, Operation.CANCEL, _cancel_apply(reason), note=reason)


async def admin_cancel(db: AsyncSession, actor: Actor, booking_id: str, reason: str | None = None) -> Booking:
    reason = reason or "Cancelled by admin"
    return await _transition(db, actor, booking_id, Operation.ADMIN_CANCEL, _cancel_apply(reason), note=reason)


async def reschedule(
    db: AsyncSession,
    actor: Actor,
    booking_id: str,
    preferred_date: date,
    preferred_time_slot: str | None = None,
    reason: str | None = None,
) -> Booking:
    """Move the booking to a new date, keeping a record of the slot it had."""

    def check(booking):
        if preferred_date < date.today():
            raise ValidationError("Reschedule date must not be in the past")
        if booking.reschedule_count >= MAX_RESCHEDULES:
            raise InvalidTransition(
                f"Maximum reschedule limit ({MAX_RESCHEDULES}) reached, cancel and create a new booking"
            )

    def apply(booking, now):
        entry = BookingRescheduleHistory(
            from_date=booking.preferred_date,
            from_time_slot=booking.preferred_time_slot,
            to_date=preferred_date,
            to_time_slot=preferred_time_slot or booking.preferred_time_slot,
            reason=reason,
            rescheduled_by=actor.subject,
            rescheduled_at=now,
        )
        booking.reschedule_history.append(entry)
        booking.preferred_date = entry.to_date
        booking.preferred_time_slot = entry.to_time_slot
        booking.reschedule_count += 1

        return {
            "from": {"date": entry.from_date.isoformat(), "time_slot": entry.from_time_slot},
            "to": {"date": entry.to_date.isoformat(), "time_slot": entry.to_time_slot},
            "reason": reason,
        }

    return await _transition(db, actor, booking_id, Operation.RESCHEDULE, apply, check=check)


async def assign_technician(db: AsyncSession, actor: Actor, booking_id: str, technician_id: str) -> Booking:
    def apply(booking, now):
        booking.technician = technician_id

    return await _transition(
        db,
        actor,
        booking_id,
        Operation.ASSIGN,
        apply,
        note="Assigned by admin",
        check=_require_text(technician_id, "Technician ID is required"),
    )
