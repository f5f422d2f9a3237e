"""Calendar repository interface."""

from datetime import date
from typing import Protocol

from pmassist.core.calendar import CalendarEvent


class CalendarRepository(Protocol):
    """Interface for fetching calendar events from any backend."""

    def get_events_for_date(self, target_date: date) -> list[CalendarEvent]:
        """Events starting on a specific date, ordered by start."""
        ...

    def get_events_for_range(self, start_date: date, end_date: date) -> list[CalendarEvent]:
        """Events starting within [start_date, end_date], ordered by start."""
        ...
