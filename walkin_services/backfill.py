from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum

from .allocator import AllocationRequest
from .booking import Actor, ActorRole, BookingStatus, PRIVILEGED_ROLES
from .errors import InvalidTransitionError, PastDateWriteError
from .slots import Modality, ServiceType


class WriteMode(str, Enum):
    LIVE = "live"
    BACKFILL = "backfill"


BACKFILL_INITIAL_STATUSES = frozenset(
    {BookingStatus.BOOKED, BookingStatus.DONE, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)


@dataclass(frozen=True)
class BookingRequest:
    guest_id: str
    date: date
    service_type: ServiceType
    modality: Modality = Modality.ONSITE
    explicit_slot: str | None = None
    initial_status: BookingStatus = BookingStatus.BOOKED
    bag_number: str | None = None


def classify(actor_role: ActorRole | str, requested_date: date, today: date) -> WriteMode:
    """Decide whether a write against ``requested_date`` is live or a backfill.

    Today is live for every role. Past dates are backfill and need a privileged
    role. Future dates are never writable: backfill records services that
    already happened.
    """
    if requested_date == today:
        return WriteMode.LIVE
    if requested_date > today:
        raise PastDateWriteError(
            f"Bookings can only be written for today ({today.isoformat()}), not {requested_date.isoformat()}."
        )
    if ActorRole(actor_role) not in PRIVILEGED_ROLES:
        raise PastDateWriteError(
            f"Only staff or administrators can record services for {requested_date.isoformat()}."
        )
    return WriteMode.BACKFILL


def ensure_writable(actor_role: ActorRole | str, target_date: date, today: date) -> WriteMode:
    return classify(actor_role, target_date, today)


def prepare(request: BookingRequest, actor: Actor, today: date) -> AllocationRequest:
    mode = classify(actor.role, request.date, today)
    initial_status = BookingStatus(request.initial_status)

    if mode == WriteMode.LIVE and initial_status != BookingStatus.BOOKED:
        raise InvalidTransitionError(
            f"Live bookings start as booked; {initial_status.value} is only allowed when backfilling."
        )
    if mode == WriteMode.BACKFILL and initial_status not in BACKFILL_INITIAL_STATUSES:
        raise InvalidTransitionError(f"A backfilled booking cannot start as {initial_status.value}.")

    return AllocationRequest(
        guest_id=request.guest_id,
        date=request.date,
        service_type=ServiceType(request.service_type),
        modality=Modality(request.modality),
        explicit_slot=request.explicit_slot,
        is_backfill=mode == WriteMode.BACKFILL,
        created_by=actor.actor_id,
        initial_status=initial_status,
        bag_number=request.bag_number,
    )
