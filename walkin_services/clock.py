from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/Los_Angeles"
_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class OrganizationClock:
    """Resolves "today" and calendar-day keys in the organization's timezone.

    Stored timestamps are UTC; a booking made at 17:30 Pacific is 00:30 UTC the
    next day and must still land on the Pacific calendar day.
    """

    def __init__(
        self,
        tz_name: str = DEFAULT_TIMEZONE,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.tz = ZoneInfo(tz_name)
        self._now_provider = now_provider

    def now(self) -> datetime:
        if self._now_provider is None:
            return datetime.now(self.tz)
        current = self._now_provider()
        if current.tzinfo is None:
            return current.replace(tzinfo=self.tz)
        return current.astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def calendar_date_of(self, timestamp: datetime | date | str) -> date:
        if isinstance(timestamp, str):
            text = timestamp.strip()
            if _DATE_ONLY_RE.match(text):
                return date.fromisoformat(text)
            timestamp = datetime.fromisoformat(text.replace("Z", "+00:00"))

        if not isinstance(timestamp, datetime):
            return timestamp

        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(self.tz).date()
