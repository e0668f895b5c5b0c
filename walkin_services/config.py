from __future__ import annotations

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .capacity import LAUNDRY_CAPACITY, SHOWER_CAPACITY
from .clock import DEFAULT_TIMEZONE


@dataclass(frozen=True)
class Settings:
    data_dir: str = "data"
    timezone: str = DEFAULT_TIMEZONE

    # Per-slot capacities for onsite services. Offsite laundry is uncapacitated.
    shower_capacity: int = SHOWER_CAPACITY
    laundry_capacity: int = LAUNDRY_CAPACITY

    # How many times slot selection is redone after a concurrent booking took the seat.
    conflict_retry_attempts: int = 3

    # Public holidays close the center when a country is configured (e.g. "US").
    holiday_country: str | None = None
    holiday_subdivision: str | None = None


def _positive_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or str(default)).strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected an integer.") from e
    if value < 1:
        raise RuntimeError(f"{name} must be >= 1")
    return value


def _optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def load_settings(dotenv_path: str | None = None) -> Settings:
    # .env in the working directory is read unless dotenv_path points elsewhere.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    tz_name = (os.getenv("WALKIN_TIMEZONE") or DEFAULT_TIMEZONE).strip()
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise RuntimeError(f"Unknown WALKIN_TIMEZONE: {tz_name!r}") from e

    holiday_country = _optional("WALKIN_HOLIDAY_COUNTRY")
    holiday_subdivision = _optional("WALKIN_HOLIDAY_SUBDIVISION")
    if holiday_subdivision and not holiday_country:
        raise RuntimeError("WALKIN_HOLIDAY_SUBDIVISION requires WALKIN_HOLIDAY_COUNTRY")

    return Settings(
        data_dir=os.getenv("WALKIN_DATA_DIR") or "data",
        timezone=tz_name,
        shower_capacity=_positive_int("WALKIN_SHOWER_CAPACITY", SHOWER_CAPACITY),
        laundry_capacity=_positive_int("WALKIN_LAUNDRY_CAPACITY", LAUNDRY_CAPACITY),
        conflict_retry_attempts=_positive_int("WALKIN_CONFLICT_RETRY_ATTEMPTS", 3),
        holiday_country=holiday_country.upper() if holiday_country else None,
        holiday_subdivision=holiday_subdivision.upper() if holiday_subdivision else None,
    )
