"""ICS file calendar adapter."""

import logging
from datetime import date, datetime, time, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

from icalendar import Calendar

from pmassist.core.calendar import CalendarEvent

logger = logging.getLogger(__name__)


class IcsCalendarAdapter:
    """
    Reads events from an exported .ics file.

    Implements CalendarRepository protocol. All times are converted to the
    configured timezone; all-day events span local midnight to midnight.
    Recurrence rules are not expanded.
    """

    def __init__(self, path: Path | str, timezone: str = "Europe/Rome"):
        self.path = Path(path).expanduser()
        self.tz = ZoneInfo(timezone)
        self._events: list[CalendarEvent] = []
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> bool:
        """(Re)read the calendar file. Returns False if it can't be read."""
        try:
            calendar = Calendar.from_ical(self.path.read_bytes())
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read calendar {self.path}: {e}")
            self._events = []
            self._loaded = False
            return False

        events = []
        for component in calendar.walk("VEVENT"):
            try:
                event = self._parse_event(component)
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug(f"Skipping malformed event: {e}")
                continue
            if event:
                events.append(event)

        self._events = sorted(events, key=lambda e: e.start)
        self._loaded = True
        logger.info(f"Loaded {len(self._events)} events from {self.path}")
        return True

    def _to_local(self, value: date | datetime) -> datetime:
        if not isinstance(value, datetime):
            return datetime.combine(value, time(0, 0), tzinfo=self.tz)
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def _parse_event(self, component) -> CalendarEvent | None:
        dtstart = component.get("DTSTART")
        if dtstart is None:
            return None
        start = self._to_local(dtstart.dt)

        dtend = component.get("DTEND")
        duration = component.get("DURATION")
        if dtend is not None:
            end = self._to_local(dtend.dt)
        elif duration is not None:
            end = start + duration.dt
        elif not isinstance(dtstart.dt, datetime):
            end = start + timedelta(days=1)
        else:
            end = start

        return CalendarEvent(
            summary=str(component.get("SUMMARY", "Untitled")),
            start=start,
            end=end,
            location=str(component["LOCATION"]) if component.get("LOCATION") else None,
            description=str(component["DESCRIPTION"]) if component.get("DESCRIPTION") else None,
        )

    def get_events_for_date(self, target_date: date) -> list[CalendarEvent]:
        """Events starting on a specific date."""
        return [e for e in self._events if e.start.date() == target_date]

    def get_events_for_range(self, start_date: date, end_date: date) -> list[CalendarEvent]:
        """Events starting on any day from start_date through end_date."""
        return [e for e in self._events if start_date <= e.start.date() <= end_date]

    def get_upcoming_events(self, days: int = 7, today: date | None = None) -> list[CalendarEvent]:
        today = today or date.today()
        return self.get_events_for_range(today, today + timedelta(days=days))
