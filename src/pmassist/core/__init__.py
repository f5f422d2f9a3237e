"""Functional core - task reconciliation and availability, no I/O."""

from .tasks import Task, TaskRecord, Priority, normalize_title, sort_by_priority
from .identity import resolve
from .merge import MergeOutcome, merge_batch
from .store import TaskStore
from .calendar import CalendarEvent, FreeBlock, free_blocks, working_window
from .errors import (
    PmAssistError,
    ProviderUnavailable,
    NotFound,
    MalformedRecord,
    PersistenceFailure,
    DuplicateTitle,
    TaskExists,
)

__all__ = [
    # Tasks
    "Task",
    "TaskRecord",
    "Priority",
    "normalize_title",
    "sort_by_priority",
    # Reconciliation
    "resolve",
    "MergeOutcome",
    "merge_batch",
    "TaskStore",
    # Calendar
    "CalendarEvent",
    "FreeBlock",
    "free_blocks",
    "working_window",
    # Errors
    "PmAssistError",
    "ProviderUnavailable",
    "NotFound",
    "MalformedRecord",
    "PersistenceFailure",
    "DuplicateTitle",
    "TaskExists",
]
