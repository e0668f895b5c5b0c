from __future__ import annotations

from datetime import datetime

from .booking import Booking, BookingStatus
from .errors import BagNumberRequiredError, InvalidTransitionError
from .slots import Modality, ServiceType

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.WAITING: frozenset({BookingStatus.BOOKED, BookingStatus.CANCELLED}),
    BookingStatus.BOOKED: frozenset({BookingStatus.DONE, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}),
    BookingStatus.CANCELLED: frozenset({BookingStatus.BOOKED}),
    BookingStatus.NO_SHOW: frozenset({BookingStatus.BOOKED}),
    BookingStatus.DONE: frozenset(),
}

# booked -> washer -> dryer -> done -> picked_up
ONSITE_LAUNDRY_STAGES: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.BOOKED: frozenset({BookingStatus.WASHER}),
    BookingStatus.WASHER: frozenset({BookingStatus.DRYER, BookingStatus.DONE}),
    BookingStatus.DRYER: frozenset({BookingStatus.DONE}),
    BookingStatus.DONE: frozenset({BookingStatus.PICKED_UP}),
    BookingStatus.PICKED_UP: frozenset(),
}

# booked (pending) -> transported -> returned -> offsite_picked_up
OFFSITE_LAUNDRY_STAGES: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.BOOKED: frozenset({BookingStatus.TRANSPORTED}),
    BookingStatus.TRANSPORTED: frozenset({BookingStatus.RETURNED}),
    BookingStatus.RETURNED: frozenset({BookingStatus.OFFSITE_PICKED_UP}),
    BookingStatus.OFFSITE_PICKED_UP: frozenset(),
}

# Leaving the booked stage hands the guest's bag over, so it must be labelled.
BAG_REQUIRED_STAGES = frozenset({BookingStatus.WASHER, BookingStatus.TRANSPORTED})

# Reopening a lapsed booking needs a fresh slot decision, not a status flip.
REBOOK_SOURCES = frozenset({BookingStatus.CANCELLED, BookingStatus.NO_SHOW})


def transitions_for(
    service_type: ServiceType | str | None = None,
    modality: Modality | str = Modality.ONSITE,
) -> dict[BookingStatus, frozenset[BookingStatus]]:
    """Return the transition table of a service; laundry adds its processing stages."""
    if service_type is None or ServiceType(service_type) != ServiceType.LAUNDRY:
        return ALLOWED_TRANSITIONS

    stages = OFFSITE_LAUNDRY_STAGES if Modality(modality) == Modality.OFFSITE else ONSITE_LAUNDRY_STAGES
    table = dict(ALLOWED_TRANSITIONS)
    for status, targets in stages.items():
        table[status] = table.get(status, frozenset()) | targets
    return table


def can_transition(
    current: BookingStatus | str,
    new_status: BookingStatus | str,
    service_type: ServiceType | str | None = None,
    modality: Modality | str = Modality.ONSITE,
) -> bool:
    table = transitions_for(service_type, modality)
    return BookingStatus(new_status) in table.get(BookingStatus(current), frozenset())


def is_rebook(current: BookingStatus | str, new_status: BookingStatus | str) -> bool:
    return BookingStatus(current) in REBOOK_SOURCES and BookingStatus(new_status) == BookingStatus.BOOKED


def validate_transition(
    current: BookingStatus | str,
    new_status: BookingStatus | str,
    service_type: ServiceType | str | None = None,
    modality: Modality | str = Modality.ONSITE,
) -> BookingStatus:
    try:
        target = BookingStatus(new_status)
    except ValueError as error:
        raise InvalidTransitionError(f"Unknown booking status: {new_status!r}") from error

    source = BookingStatus(current)
    if not can_transition(source, target, service_type, modality):
        raise InvalidTransitionError(f"Cannot move a booking from {source.value} to {target.value}.")
    return target


def apply_transition(
    booking: Booking,
    new_status: BookingStatus | str,
    actor_id: str,
    now: datetime,
    slot: str | None = None,
) -> Booking:
    """Return a copy of ``booking`` moved to ``new_status``.

    ``slot`` is only honoured for rebook transitions; any other transition keeps
    the booking's slot. The input record is never modified.
    """
    target = validate_transition(booking.status, new_status, booking.service_type, booking.modality)
    if target in BAG_REQUIRED_STAGES and not (booking.bag_number or "").strip():
        raise BagNumberRequiredError(
            f"Booking {booking.booking_id} needs a bag number before moving to {target.value}."
        )

    changes: dict[str, object] = {"status": target, "updated_at": now, "updated_by": actor_id}
    if slot is not None and is_rebook(booking.status, target):
        changes["slot"] = slot
    return booking.with_changes(**changes)
