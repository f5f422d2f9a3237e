"""Identity resolution - does an incoming record refer to an existing task?"""

from typing import Iterable

from .tasks import Task, TaskRecord, normalize_title


def resolve(
    existing: Iterable[Task],
    record: TaskRecord,
    provider: str,
) -> str | None:
    """
    Return the id of the task `record` refers to, or None for a new task.

    A matching provider id is authoritative, even when the titles differ.
    Otherwise the first task (in iteration order) with the same normalized
    title wins. No fuzzy matching and no cross-provider inference.

    Pure function - no I/O.
    """
    tasks = list(existing)

    if record.external_id:
        for task in tasks:
            if task.provider_ids.get(provider) == record.external_id:
                return task.id

    if record.title and record.title.strip():
        key = normalize_title(record.title)
        for task in tasks:
            if task.key == key:
                return task.id

    return None
