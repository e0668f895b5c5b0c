import tempfile
import threading
import unittest
from datetime import date, datetime, timezone
from pathlib import Path

from walkin_services.booking import BlockedSlot, Booking, BookingStatus, WaitlistEntry
from walkin_services.errors import BookingNotFoundError, ConflictError, DuplicateBookingError, InvalidTransitionError
from walkin_services.slots import Modality, ServiceType
from walkin_services.yaml_store import BookingYamlRepository

DAY = date(2026, 2, 24)
NOW = datetime(2026, 2, 24, 17, 0, tzinfo=timezone.utc)


def _booking(booking_id: str, slot: str | None = "07:30", status: BookingStatus = BookingStatus.BOOKED, **overrides: object) -> Booking:
    values: dict[str, object] = {
        "booking_id": booking_id,
        "guest_id": f"guest-{booking_id}",
        "date": DAY,
        "service_type": ServiceType.SHOWER,
        "modality": Modality.ONSITE,
        "slot": slot,
        "status": status,
        "created_at": NOW,
        "created_by": "operator",
        "updated_at": NOW,
        "updated_by": "operator",
    }
    values.update(overrides)
    return Booking(**values)


class TestBookingPersistence(unittest.TestCase):
    def test_bookings_survive_reopening_the_repository(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = BookingYamlRepository(data_dir)
            repo.create_booking(_booking("b1", bag_number="17", service_type=ServiceType.LAUNDRY))

            reopened = BookingYamlRepository(data_dir)
            loaded = reopened.get_booking("b1")

            self.assertIsNotNone(loaded)
            self.assertEqual(loaded.bag_number, "17")
            self.assertEqual(loaded.created_at, NOW)
            self.assertEqual(loaded.service_type, ServiceType.LAUNDRY)
            self.assertEqual(reopened.list_bookings(DAY, ServiceType.SHOWER), [])

    def test_capacity_precondition_raises_conflict(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.create_booking(_booking("b1"), capacity=2)
            repo.create_booking(_booking("b2"), capacity=2)

            with self.assertRaises(ConflictError):
                repo.create_booking(_booking("b3"), capacity=2)

            self.assertEqual(len(repo.list_bookings(DAY)), 2)

    def test_inactive_bookings_do_not_count_for_precondition(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.create_booking(_booking("b1", status=BookingStatus.CANCELLED))
            repo.create_booking(_booking("b2", status=BookingStatus.DONE))

            repo.create_booking(_booking("b3"), capacity=1)

            self.assertEqual(len(repo.list_bookings(DAY)), 3)

    def test_duplicate_booking_id_conflicts(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.create_booking(_booking("b1"))
            with self.assertRaises(ConflictError):
                repo.create_booking(_booking("b1", slot="08:00"))

    def test_exclusive_guest_rejects_second_active_booking(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.create_booking(_booking("b1", guest_id="g1"), exclusive_guest=True)
            repo.create_booking(_booking("b2", guest_id="g1", service_type=ServiceType.LAUNDRY), exclusive_guest=True)
            lapsed = repo.create_booking(_booking("b3", guest_id="g1", status=BookingStatus.CANCELLED))

            with self.assertRaises(DuplicateBookingError):
                repo.create_booking(_booking("b4", guest_id="g1", slot="09:00"), exclusive_guest=True)
            with self.assertRaises(DuplicateBookingError):
                repo.update_booking(
                    lapsed.with_changes(status=BookingStatus.BOOKED),
                    expected_status=BookingStatus.CANCELLED,
                    exclusive_guest=True,
                )

            self.assertEqual(repo.get_booking("b3").status, BookingStatus.CANCELLED)
            self.assertIsNone(repo.get_booking("b4"))

    def test_status_update_validates_transition(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.create_booking(_booking("b1"))

            done = repo.update_booking_status("b1", BookingStatus.DONE, "volunteer", NOW)
            self.assertEqual(done.status, BookingStatus.DONE)
            self.assertEqual(done.updated_by, "volunteer")

            with self.assertRaises(InvalidTransitionError):
                repo.update_booking_status("b1", BookingStatus.WAITING, "volunteer", NOW)
            self.assertEqual(repo.get_booking("b1").status, BookingStatus.DONE)

    def test_update_with_stale_status_conflicts(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            created = repo.create_booking(_booking("b1"))
            repo.update_booking_status("b1", BookingStatus.CANCELLED, "volunteer", NOW)

            with self.assertRaises(ConflictError):
                repo.update_booking(
                    created.with_changes(status=BookingStatus.DONE),
                    expected_status=BookingStatus.BOOKED,
                )

    def test_missing_booking_raises_not_found(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            with self.assertRaises(BookingNotFoundError):
                repo.update_booking_status("nope", BookingStatus.DONE, "volunteer", NOW)


class TestWaitlistAndBlocks(unittest.TestCase):
    def test_waitlist_entries_are_listed_and_removed(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            entry = WaitlistEntry("w1", "g1", DAY, ServiceType.SHOWER, NOW, "volunteer")
            repo.create_waitlist_entry(entry)

            self.assertEqual(repo.list_waitlist(DAY, ServiceType.SHOWER), [entry])
            self.assertEqual(repo.list_waitlist(DAY, ServiceType.LAUNDRY), [])

            repo.remove_waitlist_entry("w1")
            self.assertIsNone(repo.get_waitlist_entry("w1"))
            with self.assertRaises(BookingNotFoundError):
                repo.remove_waitlist_entry("w1")

    def test_waitlist_keeps_one_entry_per_guest_and_service(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            first = repo.create_waitlist_entry(WaitlistEntry("w1", "g1", DAY, ServiceType.SHOWER, NOW, "volunteer"))
            again = repo.create_waitlist_entry(WaitlistEntry("w2", "g1", DAY, ServiceType.SHOWER, NOW, "volunteer"))
            repo.create_waitlist_entry(WaitlistEntry("w3", "g1", DAY, ServiceType.LAUNDRY, NOW, "volunteer"))
            repo.create_waitlist_entry(WaitlistEntry("w4", "g2", DAY, ServiceType.SHOWER, NOW, "volunteer"))

            self.assertEqual(again, first)

            removed = repo.remove_waitlist_entries_for("g1", DAY, ServiceType.SHOWER, now=NOW)

            self.assertEqual([entry.entry_id for entry in removed], ["w1"])
            self.assertEqual([entry.entry_id for entry in repo.list_waitlist(DAY)], ["w3", "w4"])
            self.assertEqual(repo.remove_waitlist_entries_for("g1", DAY, ServiceType.SHOWER), [])

    def test_blocking_is_idempotent_and_reversible(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            block = BlockedSlot(DAY, ServiceType.SHOWER, "08:00", reason="repairs")
            repo.add_blocked_slot(block)
            repo.add_blocked_slot(block)

            self.assertEqual(len(repo.list_blocked_slots(DAY, ServiceType.SHOWER)), 1)
            self.assertTrue(repo.remove_blocked_slot(DAY, ServiceType.SHOWER, "08:00"))
            self.assertFalse(repo.remove_blocked_slot(DAY, ServiceType.SHOWER, "08:00"))


class TestEventLogAndRecovery(unittest.TestCase):
    def test_logs_create_status_and_waitlist_events(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.create_booking(_booking("b1"))
            repo.update_booking_status("b1", BookingStatus.NO_SHOW, "volunteer", NOW)
            repo.create_waitlist_entry(WaitlistEntry("w1", "g1", DAY, ServiceType.SHOWER, NOW, "volunteer"))

            contents = (Path(temp_dir) / "data" / "booking_events.yaml").read_text(encoding="utf-8")
            self.assertIn("BOOKING_CREATED", contents)
            self.assertIn("BOOKING_STATUS_CHANGED", contents)
            self.assertIn("WAITLIST_JOINED", contents)

    def test_corrupted_bookings_file_is_backed_up_and_reset(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = BookingYamlRepository(data_dir)
            repo.bookings_file.write_text("- booking_id: [unclosed\n", encoding="utf-8")

            self.assertEqual(repo.list_bookings(), [])

            backups = list(data_dir.glob("bookings.corrupt.*.yaml"))
            self.assertEqual(len(backups), 1)
            event_types = [event["event_type"] for event in repo.get_events()]
            self.assertIn("YAML_RECOVERED", event_types)

    def test_non_list_top_level_is_recovered(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.waitlist_file.write_text("entry_id: w1\n", encoding="utf-8")

            self.assertEqual(repo.list_waitlist(), [])
            self.assertEqual(repo.waitlist_file.read_text(encoding="utf-8"), "[]\n")

    def test_reads_wait_for_writers_holding_the_lock(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.create_booking(_booking("b1"))
            seen: list[int] = []
            reader = threading.Thread(target=lambda: seen.append(len(repo.list_bookings(DAY))))

            with repo._lock:
                repo.bookings_file.write_text("- booking_id: [unclosed\n", encoding="utf-8")
                reader.start()
                reader.join(timeout=0.2)
                self.assertTrue(reader.is_alive())
                repo.bookings_file.write_text("[]\n", encoding="utf-8")
            reader.join(timeout=5)

            self.assertEqual(seen, [0])
            self.assertEqual(list((Path(temp_dir) / "data").glob("bookings.corrupt.*.yaml")), [])


if __name__ == "__main__":
    unittest.main()
