"""Task provider interface."""

from datetime import datetime
from typing import Protocol

from pmassist.core.tasks import TaskRecord


class TaskProvider(Protocol):
    """Interface for an external task service (Notion, Todoist, ...)."""

    name: str

    def get_tasks(self) -> list[TaskRecord]:
        """Fetch every task the provider holds."""
        ...

    def update_task(self, external_id: str, fields: TaskRecord) -> bool:
        """Push the present fields of `fields` to the provider's copy."""
        ...

    def delete_task(self, external_id: str) -> bool:
        """Delete (or archive) the provider's copy."""
        ...


class PollableTaskProvider(TaskProvider, Protocol):
    """A provider that can report incremental changes."""

    def get_changes_since(self, since: datetime | None) -> list[TaskRecord]:
        """Fetch tasks modified after `since` (everything if None)."""
        ...
