"""Adapters - I/O implementations of ports."""

from .notion import NotionAdapter
from .todoist import TodoistAdapter
from .json_storage import JsonTaskStorage
from .ics_calendar import IcsCalendarAdapter

__all__ = [
    "NotionAdapter",
    "TodoistAdapter",
    "JsonTaskStorage",
    "IcsCalendarAdapter",
]
