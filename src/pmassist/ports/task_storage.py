"""Task persistence interface."""

from typing import Protocol

from pmassist.core.tasks import Task


class TaskStorage(Protocol):
    """Interface for saving and loading the full task list."""

    def load(self) -> list[Task]:
        """Load every saved task. Returns [] when nothing was saved yet."""
        ...

    def save(self, tasks: list[Task]) -> None:
        """Replace the saved task list. Raises PersistenceFailure on error."""
        ...
