from __future__ import annotations

import logging
import shutil
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

from .booking import Booking, BookingStatus, BlockedSlot, WaitlistEntry
from .capacity import CapacityLedger
from .errors import BookingNotFoundError, BookingStorageError, ConflictError, DuplicateBookingError
from .lifecycle import apply_transition
from .slots import ServiceType

logger = logging.getLogger(__name__)

_LEDGER = CapacityLedger()


class BookingYamlRepository:
    """Record store backed by YAML files in ``base_dir``.

    Every mutation runs under one re-entrant lock so that the capacity
    precondition and the write that depends on it form a single critical
    section for all threads sharing this repository.
    """

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.bookings_file = self.base_dir / "bookings.yaml"
        self.waitlist_file = self.base_dir / "waitlist.yaml"
        self.blocks_file = self.base_dir / "blocked_slots.yaml"
        self.log_file = self.base_dir / "booking_events.yaml"
        self._lock = threading.RLock()
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.bookings_file, self.waitlist_file, self.blocks_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        rows: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                rows.append(row)
            else:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {"file": path.name, "index": index, "reason": "row is not a mapping"},
                )
        return rows

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise BookingStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted file %s", path, exc_info=True)

        logger.warning("Recovered corrupted YAML file %s (%s)", path.name, error)
        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {"file": path.name, "backup": backup_path.name, "reason": str(error)},
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        with self._lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            self._write_yaml_list(self.log_file, events)

    def get_events(self) -> list[dict[str, Any]]:
        with self._lock:
            return self._read_yaml_list(self.log_file)

    # Bookings

    def list_bookings(self, target_date: date | None = None, service_type: ServiceType | str | None = None) -> list[Booking]:
        wanted_service = ServiceType(service_type) if service_type is not None else None
        with self._lock:
            rows = self._read_yaml_list(self.bookings_file)
        records = [Booking.from_dict(row) for row in rows]
        return [
            record
            for record in records
            if (target_date is None or record.date == target_date)
            and (wanted_service is None or record.service_type == wanted_service)
        ]

    def get_booking(self, booking_id: str) -> Booking | None:
        with self._lock:
            rows = self._read_yaml_list(self.bookings_file)
        for row in rows:
            if str(row.get("booking_id")) == booking_id:
                return Booking.from_dict(row)
        return None

    def create_booking(self, booking: Booking, capacity: int | None = None, exclusive_guest: bool = False) -> Booking:
        with self._lock:
            rows = self._read_yaml_list(self.bookings_file)
            existing = [Booking.from_dict(row) for row in rows]
            if any(record.booking_id == booking.booking_id for record in existing):
                raise ConflictError(f"Booking {booking.booking_id} already exists.")
            _check_preconditions(existing, booking, capacity, exclusive_guest)

            rows.append(booking.to_dict())
            self._write_yaml_list(self.bookings_file, rows)

        self._log_event(
            "BOOKING_CREATED",
            {
                "booking_id": booking.booking_id,
                "guest_id": booking.guest_id,
                "date": booking.date.isoformat(),
                "service_type": booking.service_type.value,
                "modality": booking.modality.value,
                "slot": booking.slot,
                "status": booking.status.value,
                "created_by": booking.created_by,
            },
            booking.created_at,
        )
        return booking

    def update_booking(
        self,
        booking: Booking,
        capacity: int | None = None,
        expected_status: BookingStatus | None = None,
        event_type: str = "BOOKING_UPDATED",
        exclusive_guest: bool = False,
    ) -> Booking:
        with self._lock:
            rows = self._read_yaml_list(self.bookings_file)
            found_index = _find_index(rows, "booking_id", booking.booking_id)
            if found_index < 0:
                raise BookingNotFoundError(f"Booking {booking.booking_id} not found.")

            current = Booking.from_dict(rows[found_index])
            if expected_status is not None and current.status != expected_status:
                raise ConflictError(
                    f"Booking {booking.booking_id} changed concurrently "
                    f"(expected {expected_status.value}, found {current.status.value})."
                )

            others = [Booking.from_dict(row) for i, row in enumerate(rows) if i != found_index]
            _check_preconditions(others, booking, capacity, exclusive_guest)

            rows[found_index] = booking.to_dict()
            self._write_yaml_list(self.bookings_file, rows)

        self._log_event(
            event_type,
            {
                "booking_id": booking.booking_id,
                "from_status": current.status.value,
                "status": booking.status.value,
                "slot": booking.slot,
                "bag_number": booking.bag_number,
                "updated_by": booking.updated_by,
            },
            booking.updated_at,
        )
        return booking

    def update_booking_status(self, booking_id: str, new_status: BookingStatus | str, actor_id: str, now: datetime) -> Booking:
        with self._lock:
            current = self.get_booking(booking_id)
            if current is None:
                raise BookingNotFoundError(f"Booking {booking_id} not found.")
            updated = apply_transition(current, new_status, actor_id, now)
            return self.update_booking(updated, expected_status=current.status, event_type="BOOKING_STATUS_CHANGED")

    # Waitlist

    def create_waitlist_entry(self, entry: WaitlistEntry) -> WaitlistEntry:
        """Store ``entry`` unless the guest already waits for that date and service."""
        with self._lock:
            rows = self._read_yaml_list(self.waitlist_file)
            for row in rows:
                current = WaitlistEntry.from_dict(row)
                if _same_waitlist(current, entry.guest_id, entry.date, entry.service_type):
                    return current
            rows.append(entry.to_dict())
            self._write_yaml_list(self.waitlist_file, rows)

        self._log_event(
            "WAITLIST_JOINED",
            {
                "entry_id": entry.entry_id,
                "guest_id": entry.guest_id,
                "date": entry.date.isoformat(),
                "service_type": entry.service_type.value,
                "created_by": entry.created_by,
            },
            entry.created_at,
        )
        return entry

    def list_waitlist(self, target_date: date | None = None, service_type: ServiceType | str | None = None) -> list[WaitlistEntry]:
        wanted_service = ServiceType(service_type) if service_type is not None else None
        with self._lock:
            rows = self._read_yaml_list(self.waitlist_file)
        entries = [WaitlistEntry.from_dict(row) for row in rows]
        entries = [
            entry
            for entry in entries
            if (target_date is None or entry.date == target_date)
            and (wanted_service is None or entry.service_type == wanted_service)
        ]
        return sorted(entries, key=lambda entry: entry.created_at)

    def get_waitlist_entry(self, entry_id: str) -> WaitlistEntry | None:
        with self._lock:
            rows = self._read_yaml_list(self.waitlist_file)
        for row in rows:
            if str(row.get("entry_id")) == entry_id:
                return WaitlistEntry.from_dict(row)
        return None

    def remove_waitlist_entry(self, entry_id: str, now: datetime | None = None) -> WaitlistEntry:
        with self._lock:
            rows = self._read_yaml_list(self.waitlist_file)
            found_index = _find_index(rows, "entry_id", entry_id)
            if found_index < 0:
                raise BookingNotFoundError(f"Waitlist entry {entry_id} not found.")
            removed = WaitlistEntry.from_dict(rows.pop(found_index))
            self._write_yaml_list(self.waitlist_file, rows)

        self._log_event("WAITLIST_REMOVED", {"entry_id": entry_id, "guest_id": removed.guest_id}, now)
        return removed

    def remove_waitlist_entries_for(
        self,
        guest_id: str,
        target_date: date,
        service_type: ServiceType | str,
        now: datetime | None = None,
    ) -> list[WaitlistEntry]:
        service_type = ServiceType(service_type)
        with self._lock:
            rows = self._read_yaml_list(self.waitlist_file)
            kept: list[dict[str, Any]] = []
            removed: list[WaitlistEntry] = []
            for row in rows:
                entry = WaitlistEntry.from_dict(row)
                if _same_waitlist(entry, guest_id, target_date, service_type):
                    removed.append(entry)
                else:
                    kept.append(row)
            if removed:
                self._write_yaml_list(self.waitlist_file, kept)

        for entry in removed:
            self._log_event("WAITLIST_REMOVED", {"entry_id": entry.entry_id, "guest_id": entry.guest_id}, now)
        return removed

    # Blocked slots

    def list_blocked_slots(self, target_date: date | None = None, service_type: ServiceType | str | None = None) -> list[BlockedSlot]:
        wanted_service = ServiceType(service_type) if service_type is not None else None
        with self._lock:
            rows = self._read_yaml_list(self.blocks_file)
        blocks = [BlockedSlot.from_dict(row) for row in rows]
        return [
            block
            for block in blocks
            if (target_date is None or block.date == target_date)
            and (wanted_service is None or block.service_type == wanted_service)
        ]

    def add_blocked_slot(self, block: BlockedSlot, now: datetime | None = None) -> BlockedSlot:
        with self._lock:
            existing = self.list_blocked_slots(block.date, block.service_type)
            for current in existing:
                if current.start_label == block.start_label:
                    return current

            rows = self._read_yaml_list(self.blocks_file)
            rows.append(block.to_dict())
            self._write_yaml_list(self.blocks_file, rows)

        self._log_event("SLOT_BLOCKED", block.to_dict(), now)
        return block

    def remove_blocked_slot(
        self,
        target_date: date,
        service_type: ServiceType | str,
        start_label: str,
        now: datetime | None = None,
    ) -> bool:
        service_type = ServiceType(service_type)
        with self._lock:
            rows = self._read_yaml_list(self.blocks_file)
            remaining = [
                row
                for row in rows
                if not (
                    str(row.get("date")) == target_date.isoformat()
                    and str(row.get("service_type")) == service_type.value
                    and str(row.get("start_label")) == start_label
                )
            ]
            if len(remaining) == len(rows):
                return False
            self._write_yaml_list(self.blocks_file, remaining)

        self._log_event(
            "SLOT_UNBLOCKED",
            {"date": target_date.isoformat(), "service_type": service_type.value, "start_label": start_label},
            now,
        )
        return True


def _find_index(rows: list[dict[str, Any]], key: str, value: str) -> int:
    for index, row in enumerate(rows):
        if str(row.get(key)) == value:
            return index
    return -1


def _same_waitlist(entry: WaitlistEntry, guest_id: str, target_date: date, service_type: ServiceType) -> bool:
    return entry.guest_id == guest_id and entry.date == target_date and entry.service_type == service_type


def _check_preconditions(others: list[Booking], booking: Booking, capacity: int | None, exclusive_guest: bool) -> None:
    if not booking.is_active:
        return

    if exclusive_guest:
        for record in others:
            if (
                record.guest_id == booking.guest_id
                and record.date == booking.date
                and record.service_type == booking.service_type
                and record.is_active
            ):
                raise DuplicateBookingError(
                    f"Guest {booking.guest_id} already has an active {booking.service_type.value} "
                    f"booking on {booking.date.isoformat()}."
                )

    if capacity is not None and booking.slot is not None:
        taken = _LEDGER.occupancy(others, booking.date, booking.service_type, booking.slot)
        if taken >= capacity:
            raise ConflictError(
                f"Slot {booking.slot} on {booking.date.isoformat()} filled up ({taken} of {capacity} taken)."
            )
