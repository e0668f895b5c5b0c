from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable

from .allocator import AllocationOutcome, AllocationRequest, AllocationResult, Allocator
from .backfill import BookingRequest, WriteMode, ensure_writable, prepare
from .blocks import BlockRegistry
from .booking import Actor, Booking, BookingStatus, BlockedSlot, WaitlistEntry
from .capacity import CapacityLedger
from .clock import OrganizationClock
from .config import Settings
from .errors import BookingNotFoundError, InvalidSlotError, PermissionDeniedError
from .lifecycle import REBOOK_SOURCES, validate_transition
from .slots import Modality, ServiceSlot, ServiceType, find_slot, generate_slots
from .yaml_store import BookingYamlRepository

logger = logging.getLogger(__name__)

# Bookings still open when the service day closes.
END_OF_DAY_STATUS = {
    ServiceType.SHOWER: BookingStatus.NO_SHOW,
    ServiceType.LAUNDRY: BookingStatus.CANCELLED,
}


@dataclass(frozen=True)
class SlotAvailability:
    slot: ServiceSlot
    occupancy: int
    capacity: int | None
    blocked: bool
    block_reason: str | None = None

    @property
    def available(self) -> bool:
        if self.blocked:
            return False
        return self.capacity is None or self.occupancy < self.capacity

    def to_dict(self) -> dict[str, Any]:
        return {
            "slot": self.slot.start_label,
            "label": self.slot.display_label,
            "ordinal": self.slot.ordinal,
            "occupancy": self.occupancy,
            "capacity": self.capacity,
            "blocked": self.blocked,
            "block_reason": self.block_reason,
            "available": self.available,
        }


class BookingService:
    """Operations the application layer calls; every write goes through the allocator or the store."""

    def __init__(
        self,
        repository: BookingYamlRepository,
        settings: Settings | None = None,
        clock: OrganizationClock | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.repository = repository
        self.clock = clock or OrganizationClock(self.settings.timezone)
        self.ledger = CapacityLedger(self.settings.shower_capacity, self.settings.laundry_capacity)
        self.blocks = BlockRegistry(repository, self.settings.holiday_country, self.settings.holiday_subdivision)
        self.allocator = Allocator(
            repository,
            self.blocks,
            ledger=self.ledger,
            clock=self.clock,
            retry_attempts=self.settings.conflict_retry_attempts,
            id_factory=id_factory,
        )

    @classmethod
    def from_settings(cls, settings: Settings, clock: OrganizationClock | None = None) -> "BookingService":
        return cls(BookingYamlRepository(settings.data_dir), settings=settings, clock=clock)

    def today(self) -> date:
        return self.clock.today()

    def get_available_slots(
        self,
        target_date: date,
        service_type: ServiceType | str,
        modality: Modality | str = Modality.ONSITE,
    ) -> list[SlotAvailability]:
        service_type = ServiceType(service_type)
        modality = Modality(modality)
        if modality == Modality.OFFSITE:
            return []

        bookings = self.repository.list_bookings(target_date, service_type)
        capacity = self.ledger.capacity_for(service_type, modality)
        rows: list[SlotAvailability] = []
        for slot in generate_slots(service_type, target_date):
            reason = self.blocks.block_reason(target_date, service_type, slot.start_label)
            rows.append(
                SlotAvailability(
                    slot=slot,
                    occupancy=self.ledger.occupancy(bookings, target_date, service_type, slot.start_label),
                    capacity=capacity,
                    blocked=reason is not None,
                    block_reason=reason,
                )
            )
        return rows

    def book_slot(self, request: BookingRequest, actor: Actor) -> AllocationResult:
        allocation = prepare(request, actor, self.today())
        result = self.allocator.allocate(allocation)
        if result.confirmed and result.booking is not None:
            logger.info(
                "Booked %s %s for guest %s on %s (%s)",
                result.booking.service_type.value,
                result.booking.slot or result.booking.modality.value,
                result.booking.guest_id,
                result.booking.date.isoformat(),
                "backfill" if allocation.is_backfill else "live",
            )
        return result

    def transition_booking(self, booking_id: str, new_status: BookingStatus | str, actor: Actor) -> AllocationResult:
        """Move a booking to ``new_status``.

        Moving a cancelled, no-show or waiting booking back to booked is a slot
        request and is delegated to the allocator. When nothing is open the
        result is waitlisted and carries the unchanged booking; every other
        transition comes back confirmed with the updated booking.
        """
        current = self._require_booking(booking_id)
        mode = ensure_writable(actor.role, current.date, self.today())
        target = validate_transition(current.status, new_status, current.service_type, current.modality)

        if target == BookingStatus.BOOKED:
            sources = REBOOK_SOURCES | {BookingStatus.WAITING}
            return self.allocator.place_existing(
                booking_id,
                actor.actor_id,
                sources,
                is_backfill=mode == WriteMode.BACKFILL,
            )

        updated = self.repository.update_booking_status(booking_id, target, actor.actor_id, self.clock.now())
        return AllocationResult(AllocationOutcome.CONFIRMED, booking=updated)

    def rebook(self, booking_id: str, actor: Actor) -> AllocationResult:
        current = self._require_booking(booking_id)
        mode = ensure_writable(actor.role, current.date, self.today())
        return self.allocator.rebook(booking_id, actor.actor_id, is_backfill=mode == WriteMode.BACKFILL)

    def join_waitlist(self, guest_id: str, target_date: date, service_type: ServiceType | str, actor: Actor) -> WaitlistEntry:
        mode = ensure_writable(actor.role, target_date, self.today())
        if mode != WriteMode.LIVE:
            raise InvalidSlotError("The waitlist only exists for today's service.")
        return self.allocator.join_waitlist(guest_id, target_date, ServiceType(service_type), actor.actor_id)

    def promote_waitlist_entry(self, entry_id: str, actor: Actor) -> AllocationResult:
        entry = self.repository.get_waitlist_entry(entry_id)
        if entry is None:
            raise BookingNotFoundError(f"Waitlist entry {entry_id} not found.")
        ensure_writable(actor.role, entry.date, self.today())

        # A confirmed allocation clears the guest's entry.
        return self.allocator.allocate(
            AllocationRequest(
                guest_id=entry.guest_id,
                date=entry.date,
                service_type=entry.service_type,
                created_by=actor.actor_id,
            )
        )

    def leave_waitlist(self, entry_id: str, actor: Actor) -> WaitlistEntry:
        entry = self.repository.get_waitlist_entry(entry_id)
        if entry is None:
            raise BookingNotFoundError(f"Waitlist entry {entry_id} not found.")
        ensure_writable(actor.role, entry.date, self.today())
        return self.repository.remove_waitlist_entry(entry_id, now=self.clock.now())

    def set_bag_number(self, booking_id: str, bag_number: str, actor: Actor) -> Booking:
        current = self._require_booking(booking_id)
        ensure_writable(actor.role, current.date, self.today())
        if current.service_type != ServiceType.LAUNDRY:
            raise InvalidSlotError("Bag numbers are only tracked for laundry.")

        cleaned = str(bag_number).strip()
        if not cleaned:
            raise ValueError("bag_number must not be empty")

        updated = current.with_changes(bag_number=cleaned, updated_at=self.clock.now(), updated_by=actor.actor_id)
        return self.repository.update_booking(updated, expected_status=current.status, event_type="BOOKING_BAG_UPDATED")

    def end_service_day(self, target_date: date, service_type: ServiceType | str, actor: Actor) -> list[Booking]:
        ensure_writable(actor.role, target_date, self.today())
        service_type = ServiceType(service_type)
        closing_status = END_OF_DAY_STATUS[service_type]

        closed: list[Booking] = []
        for booking in self.repository.list_bookings(target_date, service_type):
            if booking.status != BookingStatus.BOOKED:
                continue
            closed.append(
                self.repository.update_booking_status(booking.booking_id, closing_status, actor.actor_id, self.clock.now())
            )
        logger.info("Closed %d open %s bookings on %s", len(closed), service_type.value, target_date.isoformat())
        return closed

    def list_bookings(self, target_date: date, service_type: ServiceType | str | None = None) -> list[Booking]:
        records = self.repository.list_bookings(target_date, service_type)
        return sorted(records, key=lambda record: (record.slot or "99:99", record.created_at))

    def list_waitlist(self, target_date: date, service_type: ServiceType | str | None = None) -> list[WaitlistEntry]:
        return self.repository.list_waitlist(target_date, service_type)

    def block_slot(
        self,
        target_date: date,
        service_type: ServiceType | str,
        slot: str,
        actor: Actor,
        reason: str | None = None,
    ) -> BlockedSlot:
        catalog_slot = self._require_catalog_slot(target_date, service_type, slot, actor)
        return self.blocks.block_slot(
            target_date,
            service_type,
            catalog_slot.start_label,
            reason=reason,
            created_by=actor.actor_id,
            now=self.clock.now(),
        )

    def unblock_slot(self, target_date: date, service_type: ServiceType | str, slot: str, actor: Actor) -> bool:
        catalog_slot = self._require_catalog_slot(target_date, service_type, slot, actor)
        return self.blocks.unblock_slot(target_date, service_type, catalog_slot.start_label, now=self.clock.now())

    def _require_catalog_slot(self, target_date: date, service_type: ServiceType | str, slot: str, actor: Actor) -> ServiceSlot:
        if not actor.is_privileged:
            raise PermissionDeniedError("Only staff or administrators can manage slot blocks.")
        catalog_slot = find_slot(generate_slots(service_type, target_date), slot)
        if catalog_slot is None:
            raise InvalidSlotError(f"{slot} is not a {ServiceType(service_type).value} slot on {target_date.isoformat()}.")
        return catalog_slot

    def _require_booking(self, booking_id: str) -> Booking:
        booking = self.repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found.")
        return booking
