import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from walkin_services.config import Settings, load_settings

ENV_KEYS = (
    "WALKIN_DATA_DIR",
    "WALKIN_TIMEZONE",
    "WALKIN_SHOWER_CAPACITY",
    "WALKIN_LAUNDRY_CAPACITY",
    "WALKIN_CONFLICT_RETRY_ATTEMPTS",
    "WALKIN_HOLIDAY_COUNTRY",
    "WALKIN_HOLIDAY_SUBDIVISION",
)


class TestLoadSettings(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp_dir.cleanup)
        self.dotenv_path = Path(self._temp_dir.name) / ".env"
        self.dotenv_path.write_text("", encoding="utf-8")

    def _load(self, **values: str) -> Settings:
        env = {key: "" for key in ENV_KEYS}
        env.update(values)
        with mock.patch.dict(os.environ, env):
            return load_settings(dotenv_path=str(self.dotenv_path))

    def test_defaults(self) -> None:
        settings = self._load()

        self.assertEqual(settings, Settings())
        self.assertEqual(settings.timezone, "America/Los_Angeles")
        self.assertEqual(settings.shower_capacity, 2)
        self.assertEqual(settings.laundry_capacity, 1)
        self.assertIsNone(settings.holiday_country)

    def test_overrides_from_environment(self) -> None:
        settings = self._load(
            WALKIN_DATA_DIR="/srv/walkin",
            WALKIN_LAUNDRY_CAPACITY="2",
            WALKIN_CONFLICT_RETRY_ATTEMPTS="5",
            WALKIN_HOLIDAY_COUNTRY="us",
            WALKIN_HOLIDAY_SUBDIVISION="ca",
        )

        self.assertEqual(settings.data_dir, "/srv/walkin")
        self.assertEqual(settings.laundry_capacity, 2)
        self.assertEqual(settings.conflict_retry_attempts, 5)
        self.assertEqual(settings.holiday_country, "US")
        self.assertEqual(settings.holiday_subdivision, "CA")

    def test_values_from_dotenv_file(self) -> None:
        self.dotenv_path.write_text("WALKIN_SHOWER_CAPACITY=3\n", encoding="utf-8")
        env = {key: "" for key in ENV_KEYS if key != "WALKIN_SHOWER_CAPACITY"}
        with mock.patch.dict(os.environ, env):
            os.environ.pop("WALKIN_SHOWER_CAPACITY", None)
            settings = load_settings(dotenv_path=str(self.dotenv_path))

        self.assertEqual(settings.shower_capacity, 3)

    def test_rejects_non_integer_capacity(self) -> None:
        with self.assertRaisesRegex(RuntimeError, "Invalid WALKIN_SHOWER_CAPACITY"):
            self._load(WALKIN_SHOWER_CAPACITY="two")

    def test_rejects_zero_retry_attempts(self) -> None:
        with self.assertRaisesRegex(RuntimeError, "WALKIN_CONFLICT_RETRY_ATTEMPTS must be >= 1"):
            self._load(WALKIN_CONFLICT_RETRY_ATTEMPTS="0")

    def test_rejects_unknown_timezone(self) -> None:
        with self.assertRaisesRegex(RuntimeError, "Unknown WALKIN_TIMEZONE"):
            self._load(WALKIN_TIMEZONE="Mars/Olympus_Mons")

    def test_subdivision_requires_country(self) -> None:
        with self.assertRaises(RuntimeError):
            self._load(WALKIN_HOLIDAY_SUBDIVISION="CA")


if __name__ == "__main__":
    unittest.main()
