from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from .booking import Booking
from .slots import Modality, ServiceType

SHOWER_CAPACITY = 2
LAUNDRY_CAPACITY = 1


@dataclass(frozen=True)
class CapacityLedger:
    """Occupancy arithmetic over a caller-supplied snapshot of bookings."""

    shower_capacity: int = SHOWER_CAPACITY
    laundry_capacity: int = LAUNDRY_CAPACITY

    def __post_init__(self) -> None:
        if self.shower_capacity < 1 or self.laundry_capacity < 1:
            raise ValueError("slot capacity must be at least 1")

    def capacity_for(self, service_type: ServiceType | str, modality: Modality | str = Modality.ONSITE) -> int | None:
        """Return the per-slot capacity, or None when the modality is uncapacitated."""
        if Modality(modality) == Modality.OFFSITE:
            return None
        if ServiceType(service_type) == ServiceType.SHOWER:
            return self.shower_capacity
        return self.laundry_capacity

    def occupancy(self, bookings: Iterable[Booking], target_date: date, service_type: ServiceType | str, slot: str) -> int:
        service_type = ServiceType(service_type)
        return sum(
            1
            for booking in bookings
            if booking.date == target_date
            and booking.service_type == service_type
            and booking.slot == slot
            and booking.is_active
        )

    def is_full(
        self,
        bookings: Iterable[Booking],
        target_date: date,
        service_type: ServiceType | str,
        slot: str,
        modality: Modality | str = Modality.ONSITE,
    ) -> bool:
        capacity = self.capacity_for(service_type, modality)
        if capacity is None:
            return False
        return self.occupancy(bookings, target_date, service_type, slot) >= capacity
