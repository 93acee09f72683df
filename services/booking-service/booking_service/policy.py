"""
Booking status lifecycle.

    pending ---> assigned ---> in_progress ---> completed
       |  ^         |              |
       |  +---------+ reject       |
       |            |              |
       +------------+--------------+---> cancelled

Every operation is one row of ``POLICY``: the role allowed to invoke it, the
statuses it may start from, the status it produces and, where the booking
has an owner for that role, the ownership predicate. Endpoints never carry
their own permission conditionals.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from shared.errors import Forbidden, InvalidTransition
from shared.security import Actor


class BookingStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Role(str, Enum):
    CUSTOMER = "customer"
    TECHNICIAN = "technician"
    ADMIN = "admin"


class Operation(str, Enum):
    ACCEPT = "accept"
    REJECT_ASSIGNMENT = "reject-assignment"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    ADMIN_CANCEL = "admin-cancel"
    RESCHEDULE = "reschedule"
    ASSIGN = "assign"


ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.ASSIGNED, BookingStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

# cancelled is a separate terminal badge, not a step
STEPPER = (
    BookingStatus.PENDING,
    BookingStatus.ASSIGNED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.COMPLETED,
)


def is_assigned_technician(booking, actor: Actor) -> bool:
    return booking.technician is not None and booking.technician == actor.subject


def is_owner(booking, actor: Actor) -> bool:
    return booking.customer == actor.subject


@dataclass(frozen=True)
class Rule:
    role: Role
    sources: frozenset
    target: BookingStatus | None  # None: status unchanged
    event: str
    ownership: Callable[[object, Actor], bool] | None = None


POLICY: dict[Operation, Rule] = {
    Operation.ACCEPT: Rule(
        role=Role.TECHNICIAN,
        sources=frozenset({BookingStatus.PENDING}),
        target=BookingStatus.ASSIGNED,
        event="booking.assigned",
    ),
    Operation.REJECT_ASSIGNMENT: Rule(
        role=Role.TECHNICIAN,
        sources=frozenset({BookingStatus.ASSIGNED}),
        target=BookingStatus.PENDING,
        event="booking.reopened",
        ownership=is_assigned_technician,
    ),
    Operation.START: Rule(
        role=Role.TECHNICIAN,
        sources=frozenset({BookingStatus.ASSIGNED}),
        target=BookingStatus.IN_PROGRESS,
        event="booking.started",
        ownership=is_assigned_technician,
    ),
    Operation.COMPLETE: Rule(
        role=Role.TECHNICIAN,
        sources=frozenset({BookingStatus.IN_PROGRESS}),
        target=BookingStatus.COMPLETED,
        event="booking.completed",
        ownership=is_assigned_technician,
    ),
    Operation.CANCEL: Rule(
        role=Role.CUSTOMER,
        sources=frozenset({BookingStatus.PENDING, BookingStatus.ASSIGNED}),
        target=BookingStatus.CANCELLED,
        event="booking.cancelled",
        ownership=is_owner,
    ),
    Operation.ADMIN_CANCEL: Rule(
        role=Role.ADMIN,
        sources=ACTIVE_STATUSES,
        target=BookingStatus.CANCELLED,
        event="booking.cancelled",
    ),
    Operation.RESCHEDULE: Rule(
        role=Role.ADMIN,
        sources=ACTIVE_STATUSES,
        target=None,
        event="booking.rescheduled",
    ),
    Operation.ASSIGN: Rule(
        role=Role.ADMIN,
        sources=frozenset({BookingStatus.PENDING}),
        target=BookingStatus.ASSIGNED,
        event="booking.assigned",
    ),
}


def authorize(operation: Operation, booking, actor: Actor) -> Rule:
    """
    Check ``actor`` may apply ``operation`` to ``booking`` in its current state.

    Order: role, then source status, then ownership. A terminal booking
    therefore always answers InvalidTransition to a caller holding the right
    role, while a valid-in-principle request from the wrong technician or
    customer answers Forbidden.
    """
    rule = POLICY[operation]

    if not actor.has_role(rule.role.value):
        raise Forbidden(f"Role not allowed to {operation.value} bookings")

    current = BookingStatus(booking.status)
    if current not in rule.sources:
        raise InvalidTransition(f"Cannot {operation.value} a booking with status '{current.value}'")

    if rule.ownership is not None and not rule.ownership(booking, actor):
        raise Forbidden(f"Not authorized to {operation.value} this booking")

    return rule


def can_view(booking, actor: Actor) -> bool:
    if actor.has_role(Role.ADMIN.value):
        return True
    return is_owner(booking, actor) or is_assigned_technician(booking, actor)


def progress(status: str) -> float | None:
    """Stepper position in [0, 1]; None for cancelled bookings."""
    status = BookingStatus(status)
    if status not in STEPPER:
        return None
    return STEPPER.index(status) / (len(STEPPER) - 1)


def is_active(status: str) -> bool:
    return BookingStatus(status) in ACTIVE_STATUSES


def is_terminal(status: str) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES
