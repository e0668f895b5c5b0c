from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, Iterable
from uuid import uuid4

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from .booking import Booking, BookingStatus, WaitlistEntry
from .capacity import CapacityLedger
from .clock import OrganizationClock
from .errors import (
    BookingNotFoundError,
    ConflictError,
    DuplicateBookingError,
    InvalidSlotError,
    InvalidTransitionError,
    SlotBlockedError,
    SlotFullError,
)
from .lifecycle import REBOOK_SOURCES, apply_transition
from .slots import Modality, ServiceSlot, ServiceType, find_slot, generate_slots
from .store import BlockLookup, RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationRequest:
    guest_id: str
    date: date
    service_type: ServiceType
    modality: Modality = Modality.ONSITE
    explicit_slot: str | None = None
    is_backfill: bool = False
    created_by: str = "system"
    initial_status: BookingStatus = BookingStatus.BOOKED
    bag_number: str | None = None


class AllocationOutcome(str, Enum):
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"


@dataclass(frozen=True)
class AllocationResult:
    outcome: AllocationOutcome
    booking: Booking | None = None
    waitlist_entry: WaitlistEntry | None = None

    @property
    def confirmed(self) -> bool:
        return self.outcome == AllocationOutcome.CONFIRMED

    @property
    def waitlisted(self) -> bool:
        return self.outcome == AllocationOutcome.WAITLISTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "booking": self.booking.to_dict() if self.booking is not None else None,
            "waitlist_entry": self.waitlist_entry.to_dict() if self.waitlist_entry is not None else None,
        }


def _log_conflict_retry(retry_state: RetryCallState) -> None:
    reason = None
    if retry_state.outcome is not None and retry_state.outcome.failed:
        reason = retry_state.outcome.exception()
    logger.warning("Capacity conflict on attempt %s, selecting again (%s)", retry_state.attempt_number, reason)


class Allocator:
    """Places bookings into slots.

    Selection reads a snapshot of the day's bookings; the commit re-checks
    capacity inside the record store. When another writer filled the slot in
    between, the store raises ``ConflictError`` and selection runs again, up to
    ``retry_attempts`` times.
    """

    def __init__(
        self,
        store: RecordStore,
        blocks: BlockLookup,
        ledger: CapacityLedger | None = None,
        clock: OrganizationClock | None = None,
        retry_attempts: int = 3,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        self.store = store
        self.blocks = blocks
        self.ledger = ledger or CapacityLedger()
        self.clock = clock or OrganizationClock()
        self.retry_attempts = retry_attempts
        self._new_id = id_factory or (lambda: str(uuid4()))

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            retry=retry_if_exception_type(ConflictError),
            before_sleep=_log_conflict_retry,
            reraise=True,
        )

    def is_available(
        self,
        slot: ServiceSlot,
        bookings: Iterable[Booking],
        target_date: date,
        modality: Modality = Modality.ONSITE,
    ) -> bool:
        if self.blocks.is_blocked(target_date, slot.service_type, slot.start_label):
            return False
        return not self.ledger.is_full(bookings, target_date, slot.service_type, slot.start_label, modality)

    def next_available_slot(
        self,
        catalog: list[ServiceSlot],
        bookings: list[Booking],
        target_date: date,
        modality: Modality = Modality.ONSITE,
    ) -> ServiceSlot | None:
        """First fit over the chronological catalog: the earliest open slot always wins."""
        for slot in catalog:
            if self.is_available(slot, bookings, target_date, modality):
                return slot
        return None

    def allocate(self, request: AllocationRequest) -> AllocationResult:
        if request.modality == Modality.OFFSITE and request.service_type != ServiceType.LAUNDRY:
            raise InvalidSlotError(f"Offsite delivery is not offered for {request.service_type.value}.")

        return self._retrying()(self._allocate_once, request)

    def _allocate_once(self, request: AllocationRequest) -> AllocationResult:
        snapshot = self.store.list_bookings(request.date, request.service_type)
        if not request.is_backfill:
            self._ensure_no_active_duplicate(snapshot, request.guest_id, request.date, request.service_type)

        if request.modality == Modality.OFFSITE:
            booking = self._new_booking(request, slot=None)
            created = self.store.create_booking(booking, exclusive_guest=not request.is_backfill)
            return self._confirmed(created)

        catalog = generate_slots(request.service_type, request.date)
        chosen = self._select_slot(request, catalog, snapshot)
        if chosen is None:
            entry = self._waitlist(request.guest_id, request.date, request.service_type, request.created_by)
            logger.info(
                "No open %s slot on %s, guest %s waitlisted",
                request.service_type.value,
                request.date.isoformat(),
                request.guest_id,
            )
            return AllocationResult(AllocationOutcome.WAITLISTED, waitlist_entry=entry)

        booking = self._new_booking(request, slot=chosen.start_label)
        capacity = None if request.is_backfill else self.ledger.capacity_for(request.service_type, request.modality)
        created = self.store.create_booking(booking, capacity=capacity, exclusive_guest=not request.is_backfill)
        return self._confirmed(created)

    def _select_slot(
        self,
        request: AllocationRequest,
        catalog: list[ServiceSlot],
        snapshot: list[Booking],
    ) -> ServiceSlot | None:
        if request.explicit_slot:
            slot = find_slot(catalog, request.explicit_slot)
            if slot is None:
                raise InvalidSlotError(
                    f"{request.explicit_slot} is not a {request.service_type.value} slot on {request.date.isoformat()}."
                )
            if request.is_backfill:
                return slot
            if self.blocks.is_blocked(request.date, request.service_type, slot.start_label):
                raise SlotBlockedError(f"Slot {slot.start_label} on {request.date.isoformat()} is blocked.")
            if self.ledger.is_full(snapshot, request.date, request.service_type, slot.start_label, request.modality):
                capacity = self.ledger.capacity_for(request.service_type, request.modality)
                raise SlotFullError(
                    f"Slot {slot.start_label} on {request.date.isoformat()} is at full capacity ({capacity} of {capacity} taken)."
                )
            return slot

        if request.is_backfill:
            if not catalog:
                raise InvalidSlotError(f"No {request.service_type.value} slots exist on {request.date.isoformat()}.")
            return catalog[0]

        return self.next_available_slot(catalog, snapshot, request.date, request.modality)

    def rebook(self, booking_id: str, actor_id: str, is_backfill: bool = False) -> AllocationResult:
        """Reopen a cancelled or no-show booking into a slot.

        The original slot is kept when it is still open, otherwise first fit
        applies. The same record is updated; when nothing is open the guest is
        waitlisted and the booking is left unchanged.
        """
        return self.place_existing(booking_id, actor_id, REBOOK_SOURCES, is_backfill=is_backfill)

    def place_existing(
        self,
        booking_id: str,
        actor_id: str,
        allowed_sources: Iterable[BookingStatus],
        is_backfill: bool = False,
    ) -> AllocationResult:
        allowed = frozenset(allowed_sources)
        return self._retrying()(self._place_once, booking_id, actor_id, allowed, is_backfill)

    def _place_once(
        self,
        booking_id: str,
        actor_id: str,
        allowed: frozenset[BookingStatus],
        is_backfill: bool,
    ) -> AllocationResult:
        current = self.store.get_booking(booking_id)
        if current is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found.")
        if current.status not in allowed:
            raise InvalidTransitionError(f"Cannot rebook a booking that is {current.status.value}.")

        snapshot = [record for record in self.store.list_bookings(current.date, current.service_type) if record.booking_id != booking_id]
        if not is_backfill:
            self._ensure_no_active_duplicate(snapshot, current.guest_id, current.date, current.service_type)

        now = self.clock.now()
        if current.modality == Modality.OFFSITE:
            updated = apply_transition(current, BookingStatus.BOOKED, actor_id, now)
            self.store.update_booking(
                updated,
                expected_status=current.status,
                event_type="BOOKING_REBOOKED",
                exclusive_guest=not is_backfill,
            )
            return self._confirmed(updated)

        catalog = generate_slots(current.service_type, current.date)
        original = find_slot(catalog, current.slot)
        if is_backfill:
            chosen = original or (catalog[0] if catalog else None)
            if chosen is None:
                raise InvalidSlotError(f"No {current.service_type.value} slots exist on {current.date.isoformat()}.")
        elif original is not None and self.is_available(original, snapshot, current.date, current.modality):
            chosen = original
        else:
            chosen = self.next_available_slot(catalog, snapshot, current.date, current.modality)

        if chosen is None:
            entry = self._waitlist(current.guest_id, current.date, current.service_type, actor_id)
            return AllocationResult(AllocationOutcome.WAITLISTED, booking=current, waitlist_entry=entry)

        updated = apply_transition(current, BookingStatus.BOOKED, actor_id, now, slot=chosen.start_label)
        capacity = None if is_backfill else self.ledger.capacity_for(current.service_type, current.modality)
        self.store.update_booking(
            updated,
            capacity=capacity,
            expected_status=current.status,
            event_type="BOOKING_REBOOKED",
            exclusive_guest=not is_backfill,
        )
        return self._confirmed(updated)

    def _confirmed(self, booking: Booking) -> AllocationResult:
        # A guest who got a slot no longer waits for one.
        if booking.is_active:
            self.store.remove_waitlist_entries_for(
                booking.guest_id,
                booking.date,
                booking.service_type,
                now=self.clock.now(),
            )
        return AllocationResult(AllocationOutcome.CONFIRMED, booking=booking)

    def join_waitlist(self, guest_id: str, target_date: date, service_type: ServiceType, created_by: str) -> WaitlistEntry:
        return self._waitlist(guest_id, target_date, ServiceType(service_type), created_by)

    def _waitlist(self, guest_id: str, target_date: date, service_type: ServiceType, created_by: str) -> WaitlistEntry:
        # The store returns the guest's existing entry instead of adding a second one.
        entry = WaitlistEntry(
            entry_id=self._new_id(),
            guest_id=guest_id,
            date=target_date,
            service_type=service_type,
            created_at=self.clock.now(),
            created_by=created_by,
        )
        return self.store.create_waitlist_entry(entry)

    def _new_booking(self, request: AllocationRequest, slot: str | None) -> Booking:
        now = self.clock.now()
        return Booking(
            booking_id=self._new_id(),
            guest_id=request.guest_id,
            date=request.date,
            service_type=request.service_type,
            modality=request.modality,
            slot=slot,
            status=request.initial_status,
            created_at=now,
            created_by=request.created_by,
            updated_at=now,
            updated_by=request.created_by,
            bag_number=request.bag_number,
        )

    @staticmethod
    def _ensure_no_active_duplicate(
        snapshot: Iterable[Booking],
        guest_id: str,
        target_date: date,
        service_type: ServiceType,
    ) -> None:
        for record in snapshot:
            if record.guest_id == guest_id and record.is_active:
                raise DuplicateBookingError(
                    f"Guest {guest_id} already has an active {service_type.value} booking on {target_date.isoformat()}."
                )
