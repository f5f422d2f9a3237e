"""Error kinds raised by the task core and its adapters."""


class PmAssistError(Exception):
    """Base class for all pmassist errors."""


class ProviderUnavailable(PmAssistError):
    """Raised when a task provider cannot be reached or rejects our credentials."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class NotFound(PmAssistError):
    """Raised when a mutation targets an unknown task id."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class MalformedRecord(PmAssistError):
    """Raised when a provider record lacks a required field."""


class PersistenceFailure(PmAssistError):
    """Raised when the task list could not be written to storage.

    The in-memory store keeps the mutation; callers may retry the save.
    """


class DuplicateTitle(PmAssistError):
    """Raised when a direct change would give two tasks the same title."""

    def __init__(self, title: str):
        super().__init__(f"A task titled '{title}' already exists")
        self.title = title


class TaskExists(PmAssistError):
    """Raised when restoring a task whose id is still in the store."""

    def __init__(self, task_id: str):
        super().__init__(f"Task already exists: {task_id}")
        self.task_id = task_id
