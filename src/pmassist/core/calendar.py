"""Pure calendar domain logic - no I/O dependencies."""

from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo


@dataclass
class CalendarEvent:
    """A calendar event. Read-only input to the availability calculator."""

    summary: str
    start: datetime
    end: datetime
    location: str | None = None
    description: str | None = None

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Event '{self.summary}' ends before it starts")

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() / 60)

    def to_dict(self) -> dict:
        data = {
            "summary": self.summary,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }
        if self.location:
            data["location"] = self.location
        if self.description:
            data["description"] = self.description
        return data


@dataclass(frozen=True)
class FreeBlock:
    """A free interval [start, end)."""

    start: datetime
    end: datetime

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() / 60)

    def format(self) -> str:
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')} ({self.duration_minutes()} min)"

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def free_blocks(
    events: list[CalendarEvent],
    window_start: datetime,
    window_end: datetime,
    min_minutes: int = 0,
) -> list[FreeBlock]:
    """
    Free intervals inside [window_start, window_end) not covered by any event.

    Events are swept in start order (stable for equal starts). The cursor
    only moves forward, so overlapping or nested events never produce
    negative or repeated blocks. Events entirely outside the window are
    ignored.

    Pure function - no I/O, no state.

    Args:
        events: Busy intervals, in any order
        window_start: Start of the working window
        window_end: End of the working window
        min_minutes: Drop blocks shorter than this (0 keeps everything)

    Returns:
        Non-overlapping FreeBlocks, ascending by start
    """
    blocks = []
    cursor = window_start

    for event in sorted(events, key=lambda e: e.start):
        if event.start >= window_end or event.end <= window_start:
            continue

        if event.start > cursor:
            blocks.append(FreeBlock(start=cursor, end=event.start))

        cursor = max(cursor, event.end)

    if cursor < window_end:
        blocks.append(FreeBlock(start=cursor, end=window_end))

    if min_minutes:
        blocks = [b for b in blocks if b.duration_minutes() >= min_minutes]
    return blocks


def parse_work_hours(work_hours: str) -> tuple[time, time]:
    """Parse "HH:MM-HH:MM" into start and end times."""
    start_str, _, end_str = work_hours.partition("-")
    start = time.fromisoformat(start_str.strip())
    end = time.fromisoformat(end_str.strip())
    if end <= start:
        raise ValueError(f"Invalid work hours: {work_hours}")
    return start, end


def working_window(
    day: date,
    work_hours: str = "09:00-18:00",
    tz: tzinfo | None = None,
) -> tuple[datetime, datetime]:
    """The working window for a day as (start, end) datetimes."""
    start, end = parse_work_hours(work_hours)
    return (
        datetime.combine(day, start, tzinfo=tz),
        datetime.combine(day, end, tzinfo=tz),
    )


def format_schedule(
    day: date,
    events: list[CalendarEvent],
    blocks: list[FreeBlock],
) -> str:
    """Plain-text schedule: the day's meetings followed by its available blocks."""
    lines = [f"Schedule for {day.strftime('%A, %B %d')}:", ""]

    if not events:
        lines.append("No meetings scheduled")
    else:
        lines.append("Meetings:")
        for e in sorted(events, key=lambda e: e.start):
            lines.append(f"{e.start.strftime('%H:%M')} - {e.end.strftime('%H:%M')}: {e.summary}")

    if blocks:
        lines.append("")
        lines.append("Available time blocks:")
        for b in blocks:
            lines.append(f"{b.start.strftime('%H:%M')} - {b.end.strftime('%H:%M')}")

    return "\n".join(lines)
