"""
services/service_window.py

The judicial registry only answers during a fixed nightly window
(00:00–06:00 Asia/Taipei by default). Every caller checks this gate before
touching the network; an explicit force flag (or JUDICIAL_DEV_FORCE) bypasses it.
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from app.core.config import settings


class ServiceWindow:
    def __init__(
        self,
        start_hour: int | None = None,
        end_hour: int | None = None,
        timezone: str | None = None,
        dev_force: bool | None = None,
    ) -> None:
        self.start_hour = settings.JUDICIAL_SERVICE_WINDOW_START_HOUR if start_hour is None else start_hour
        self.end_hour = settings.JUDICIAL_SERVICE_WINDOW_END_HOUR if end_hour is None else end_hour
        self.tz = ZoneInfo(timezone or settings.JUDICIAL_TIMEZONE)
        self.dev_force = settings.JUDICIAL_DEV_FORCE if dev_force is None else dev_force

    def local_now(self, now: datetime | None = None) -> datetime:
        """
        Registry-local time. Aware datetimes are converted; naive ones are taken
        to already be in registry local time.
        """
        if now is None:
            return datetime.now(self.tz)
        if now.tzinfo is None:
            return now.replace(tzinfo=self.tz)
        return now.astimezone(self.tz)

    def is_available(self, now: datetime | None = None, force: bool = False) -> bool:
        if force or self.dev_force:
            return True
        hour = self.local_now(now).hour
        if self.start_hour <= self.end_hour:
            return self.start_hour <= hour < self.end_hour
        # window wrapping midnight, e.g. 22 -> 4
        return hour >= self.start_hour or hour < self.end_hour

    def describe(self) -> str:
        return f"{self.start_hour:02d}:00-{self.end_hour:02d}:00 {self.tz.key}"


service_window = ServiceWindow()
