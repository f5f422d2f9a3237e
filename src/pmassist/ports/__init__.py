"""Ports - interfaces/protocols for external dependencies."""

from .task_provider import TaskProvider, PollableTaskProvider
from .task_storage import TaskStorage
from .calendar_repo import CalendarRepository

__all__ = [
    "TaskProvider",
    "PollableTaskProvider",
    "TaskStorage",
    "CalendarRepository",
]
