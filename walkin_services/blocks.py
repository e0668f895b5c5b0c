from __future__ import annotations

from datetime import date, datetime

import holidays as pyholidays

from .booking import BlockedSlot
from .slots import ServiceType, normalize_slot_label
from .yaml_store import BookingYamlRepository


class BlockRegistry:
    """Answers whether a (date, service, slot) is closed to new bookings.

    Operator blocks are stored per slot. When a holiday country is configured,
    every slot on a public holiday is blocked as well. Blocks never touch
    bookings that already exist in the slot.
    """

    def __init__(
        self,
        repository: BookingYamlRepository,
        holiday_country: str | None = None,
        holiday_subdivision: str | None = None,
    ) -> None:
        self.repository = repository
        self.holiday_country = holiday_country
        self.holiday_subdivision = holiday_subdivision
        self._holiday_cache: dict[int, dict[date, str]] = {}

    def holiday_name(self, target_date: date) -> str | None:
        if not self.holiday_country:
            return None
        year = target_date.year
        if year not in self._holiday_cache:
            holiday_map = pyholidays.country_holidays(
                self.holiday_country,
                subdiv=self.holiday_subdivision,
                years=[year],
            )
            self._holiday_cache[year] = dict(holiday_map.items())
        return self._holiday_cache[year].get(target_date)

    def is_blocked(self, target_date: date, service_type: ServiceType | str, slot: str) -> bool:
        return self.block_reason(target_date, service_type, slot) is not None

    def block_reason(self, target_date: date, service_type: ServiceType | str, slot: str) -> str | None:
        holiday = self.holiday_name(target_date)
        if holiday is not None:
            return holiday
        label = normalize_slot_label(slot)
        for block in self.repository.list_blocked_slots(target_date, service_type):
            if block.start_label == label:
                return block.reason or "blocked"
        return None

    def list_blocks(self, target_date: date | None = None, service_type: ServiceType | str | None = None) -> list[BlockedSlot]:
        return self.repository.list_blocked_slots(target_date, service_type)

    def block_slot(
        self,
        target_date: date,
        service_type: ServiceType | str,
        slot: str,
        reason: str | None = None,
        created_by: str | None = None,
        now: datetime | None = None,
    ) -> BlockedSlot:
        block = BlockedSlot(
            date=target_date,
            service_type=ServiceType(service_type),
            start_label=normalize_slot_label(slot) or slot,
            reason=reason,
            created_by=created_by,
        )
        return self.repository.add_blocked_slot(block, now=now)

    def unblock_slot(self, target_date: date, service_type: ServiceType | str, slot: str, now: datetime | None = None) -> bool:
        return self.repository.remove_blocked_slot(target_date, service_type, normalize_slot_label(slot) or slot, now=now)
