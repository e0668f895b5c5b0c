import tempfile
import unittest
from datetime import date
from pathlib import Path

from walkin_services.blocks import BlockRegistry
from walkin_services.slots import ServiceType
from walkin_services.yaml_store import BookingYamlRepository

DAY = date(2026, 2, 24)
NEW_YEARS_DAY = date(2026, 1, 1)


class TestBlockRegistry(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp_dir.cleanup)
        self.repo = BookingYamlRepository(Path(self._temp_dir.name) / "data")

    def test_operator_block_is_per_date_service_and_slot(self) -> None:
        registry = BlockRegistry(self.repo)
        registry.block_slot(DAY, ServiceType.SHOWER, "08:00", reason="no hot water", created_by="staff-1")

        self.assertTrue(registry.is_blocked(DAY, ServiceType.SHOWER, "08:00"))
        self.assertEqual(registry.block_reason(DAY, "shower", "08:00"), "no hot water")
        self.assertFalse(registry.is_blocked(DAY, ServiceType.SHOWER, "08:30"))
        self.assertFalse(registry.is_blocked(DAY, ServiceType.LAUNDRY, "08:00"))
        self.assertFalse(registry.is_blocked(date(2026, 2, 25), ServiceType.SHOWER, "08:00"))

    def test_unblock_reopens_slot(self) -> None:
        registry = BlockRegistry(self.repo)
        registry.block_slot(DAY, ServiceType.LAUNDRY, "07:30 - 08:30")

        self.assertTrue(registry.is_blocked(DAY, ServiceType.LAUNDRY, "07:30"))
        self.assertTrue(registry.unblock_slot(DAY, ServiceType.LAUNDRY, "07:30"))
        self.assertFalse(registry.is_blocked(DAY, ServiceType.LAUNDRY, "07:30"))

    def test_block_without_reason_reports_generic_reason(self) -> None:
        registry = BlockRegistry(self.repo)
        registry.block_slot(DAY, ServiceType.SHOWER, "09:00")
        self.assertEqual(registry.block_reason(DAY, ServiceType.SHOWER, "09:00"), "blocked")

    def test_public_holiday_blocks_every_slot_when_configured(self) -> None:
        registry = BlockRegistry(self.repo, holiday_country="US")

        self.assertTrue(registry.is_blocked(NEW_YEARS_DAY, ServiceType.SHOWER, "07:30"))
        self.assertIn("New Year", registry.block_reason(NEW_YEARS_DAY, ServiceType.LAUNDRY, "08:30"))
        self.assertFalse(registry.is_blocked(DAY, ServiceType.SHOWER, "07:30"))

    def test_holidays_ignored_without_country(self) -> None:
        registry = BlockRegistry(self.repo)
        self.assertIsNone(registry.holiday_name(NEW_YEARS_DAY))
        self.assertFalse(registry.is_blocked(NEW_YEARS_DAY, ServiceType.SHOWER, "07:30"))


if __name__ == "__main__":
    unittest.main()
