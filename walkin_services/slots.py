from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable


class ServiceType(str, Enum):
    SHOWER = "shower"
    LAUNDRY = "laundry"


class Modality(str, Enum):
    ONSITE = "onsite"
    OFFSITE = "offsite"


class DayClass(str, Enum):
    WEEKDAY = "weekday"
    SATURDAY = "saturday"


@dataclass(frozen=True)
class SlotSchedule:
    first_start: str
    duration_minutes: int
    count: int


# Sunday has no entry: the center is closed and the catalog is empty.
SLOT_SCHEDULES: dict[tuple[ServiceType, DayClass], SlotSchedule] = {
    (ServiceType.SHOWER, DayClass.WEEKDAY): SlotSchedule("07:30", 30, 10),
    (ServiceType.SHOWER, DayClass.SATURDAY): SlotSchedule("08:30", 30, 6),
    (ServiceType.LAUNDRY, DayClass.WEEKDAY): SlotSchedule("07:30", 60, 5),
    (ServiceType.LAUNDRY, DayClass.SATURDAY): SlotSchedule("08:30", 60, 3),
}


@dataclass(frozen=True)
class ServiceSlot:
    service_type: ServiceType
    day_class: DayClass
    start_label: str
    ordinal: int
    duration_minutes: int

    @property
    def end_label(self) -> str:
        start = datetime.strptime(self.start_label, "%H:%M")
        return (start + timedelta(minutes=self.duration_minutes)).strftime("%H:%M")

    @property
    def display_label(self) -> str:
        return f"{self.start_label} - {self.end_label}"

    def to_dict(self) -> dict[str, str | int]:
        return {
            "service_type": self.service_type.value,
            "day_class": self.day_class.value,
            "start_label": self.start_label,
            "end_label": self.end_label,
            "ordinal": self.ordinal,
        }


def day_class_for(target_date: date) -> DayClass | None:
    weekday = target_date.weekday()
    if weekday < 5:
        return DayClass.WEEKDAY
    if weekday == 5:
        return DayClass.SATURDAY
    return None


def generate_slots(service_type: ServiceType | str, target_date: date) -> list[ServiceSlot]:
    """Return the chronologically ordered slot catalog for one service and day.

    The result depends only on the service type and the day of week, so calling
    it twice with the same arguments always yields the same sequence.
    """
    service_type = ServiceType(service_type)
    day_class = day_class_for(target_date)
    if day_class is None:
        return []

    schedule = SLOT_SCHEDULES[(service_type, day_class)]
    cursor = datetime.strptime(schedule.first_start, "%H:%M")
    step = timedelta(minutes=schedule.duration_minutes)

    slots: list[ServiceSlot] = []
    for ordinal in range(schedule.count):
        slots.append(
            ServiceSlot(
                service_type=service_type,
                day_class=day_class,
                start_label=cursor.strftime("%H:%M"),
                ordinal=ordinal,
                duration_minutes=schedule.duration_minutes,
            )
        )
        cursor += step
    return slots


def normalize_slot_label(label: str | None) -> str | None:
    """Reduce "7:30", "07:30" or "07:30 - 08:30" to the start label "07:30"."""
    if label is None:
        return None
    start = str(label).split("-")[0].strip()
    if not start:
        return None
    try:
        parsed = datetime.strptime(start, "%H:%M")
    except ValueError:
        return start
    return parsed.strftime("%H:%M")


def find_slot(catalog: Iterable[ServiceSlot], label: str | None) -> ServiceSlot | None:
    normalized = normalize_slot_label(label)
    for slot in catalog:
        if slot.start_label == normalized:
            return slot
    return None
