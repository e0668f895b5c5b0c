from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from .booking import Booking, BookingStatus, WaitlistEntry
from .slots import ServiceType


class RecordStore(Protocol):
    """Persistence boundary the allocator commits through.

    ``create_booking`` and ``update_booking`` accept a capacity precondition:
    when given, the store re-counts active bookings in the booking's slot inside
    its own critical section and raises ``ConflictError`` if the slot is full.
    With ``exclusive_guest`` the same section rejects a second active booking
    for the guest, date and service with ``DuplicateBookingError``.
    """

    def list_bookings(self, target_date: date | None = None, service_type: ServiceType | None = None) -> list[Booking]: ...

    def get_booking(self, booking_id: str) -> Booking | None: ...

    def create_booking(self, booking: Booking, capacity: int | None = None, exclusive_guest: bool = False) -> Booking: ...

    def update_booking(
        self,
        booking: Booking,
        capacity: int | None = None,
        expected_status: BookingStatus | None = None,
        event_type: str = "BOOKING_UPDATED",
        exclusive_guest: bool = False,
    ) -> Booking: ...

    def update_booking_status(self, booking_id: str, new_status: BookingStatus, actor_id: str, now: datetime) -> Booking: ...

    def create_waitlist_entry(self, entry: WaitlistEntry) -> WaitlistEntry: ...

    def list_waitlist(self, target_date: date | None = None, service_type: ServiceType | None = None) -> list[WaitlistEntry]: ...

    def get_waitlist_entry(self, entry_id: str) -> WaitlistEntry | None: ...

    def remove_waitlist_entry(self, entry_id: str, now: datetime | None = None) -> WaitlistEntry: ...

    def remove_waitlist_entries_for(
        self,
        guest_id: str,
        target_date: date,
        service_type: ServiceType,
        now: datetime | None = None,
    ) -> list[WaitlistEntry]: ...


class BlockLookup(Protocol):
    def is_blocked(self, target_date: date, service_type: ServiceType, slot: str) -> bool: ...
