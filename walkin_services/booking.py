from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

from .slots import Modality, ServiceType


class BookingStatus(str, Enum):
    WAITING = "waiting"
    BOOKED = "booked"
    DONE = "done"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    # Onsite laundry processing after the slot starts.
    WASHER = "washer"
    DRYER = "dryer"
    PICKED_UP = "picked_up"

    # Offsite laundry; a booked offsite record is the pending stage.
    TRANSPORTED = "transported"
    RETURNED = "returned"
    OFFSITE_PICKED_UP = "offsite_picked_up"


# Laundry in the washer or dryer still occupies its slot.
ACTIVE_STATUSES = frozenset(
    {
        BookingStatus.WAITING,
        BookingStatus.BOOKED,
        BookingStatus.WASHER,
        BookingStatus.DRYER,
        BookingStatus.TRANSPORTED,
    }
)


class ActorRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    CHECKIN = "checkin"


PRIVILEGED_ROLES = frozenset({ActorRole.ADMIN, ActorRole.STAFF})


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: ActorRole

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


@dataclass(frozen=True)
class Booking:
    booking_id: str
    guest_id: str
    date: date
    service_type: ServiceType
    modality: Modality
    slot: str | None
    status: BookingStatus
    created_at: datetime
    created_by: str
    updated_at: datetime
    updated_by: str
    bag_number: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def with_changes(self, **changes: Any) -> "Booking":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "booking_id": self.booking_id,
            "guest_id": self.guest_id,
            "date": self.date.isoformat(),
            "service_type": self.service_type.value,
            "modality": self.modality.value,
            "slot": self.slot,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "created_by": self.created_by,
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
            "updated_by": self.updated_by,
        }
        if self.bag_number is not None:
            payload["bag_number"] = self.bag_number
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Booking":
        return Booking(
            booking_id=str(data["booking_id"]),
            guest_id=str(data["guest_id"]),
            date=date.fromisoformat(str(data["date"])),
            service_type=ServiceType(str(data["service_type"])),
            modality=Modality(str(data.get("modality") or Modality.ONSITE.value)),
            slot=(str(data["slot"]) if data.get("slot") is not None else None),
            status=BookingStatus(str(data["status"])),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            created_by=str(data["created_by"]),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
            updated_by=str(data["updated_by"]),
            bag_number=(str(data["bag_number"]) if data.get("bag_number") is not None else None),
        )


@dataclass(frozen=True)
class WaitlistEntry:
    entry_id: str
    guest_id: str
    date: date
    service_type: ServiceType
    created_at: datetime
    created_by: str

    def to_dict(self) -> dict[str, str]:
        return {
            "entry_id": self.entry_id,
            "guest_id": self.guest_id,
            "date": self.date.isoformat(),
            "service_type": self.service_type.value,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "created_by": self.created_by,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "WaitlistEntry":
        return WaitlistEntry(
            entry_id=str(data["entry_id"]),
            guest_id=str(data["guest_id"]),
            date=date.fromisoformat(str(data["date"])),
            service_type=ServiceType(str(data["service_type"])),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            created_by=str(data.get("created_by") or "unknown"),
        )


@dataclass(frozen=True)
class BlockedSlot:
    date: date
    service_type: ServiceType
    start_label: str
    reason: str | None = None
    created_by: str | None = None

    def to_dict(self) -> dict[str, str]:
        payload = {
            "date": self.date.isoformat(),
            "service_type": self.service_type.value,
            "start_label": self.start_label,
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.created_by is not None:
            payload["created_by"] = self.created_by
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BlockedSlot":
        return BlockedSlot(
            date=date.fromisoformat(str(data["date"])),
            service_type=ServiceType(str(data["service_type"])),
            start_label=str(data["start_label"]),
            reason=(str(data["reason"]) if data.get("reason") is not None else None),
            created_by=(str(data["created_by"]) if data.get("created_by") is not None else None),
        )
