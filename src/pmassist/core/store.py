"""In-process task store - the single source of truth for canonical tasks."""

import logging
import threading
from datetime import date
from typing import Iterable

from .errors import DuplicateTitle, NotFound, TaskExists
from .merge import MergeOutcome, merge_batch
from .tasks import (
    DEFAULT_CATEGORY,
    Priority,
    Task,
    TaskRecord,
    new_task_id,
    normalize_category,
    normalize_title,
    utcnow,
)

logger = logging.getLogger(__name__)


class TaskStore:
    """
    Canonical task collection.

    Every operation runs under one lock, including the storage write that
    follows a mutation, so concurrent request handlers and the change poller
    cannot interleave a read-modify-write. Callers always receive copies.

    If the storage write fails, PersistenceFailure propagates but the
    in-memory change is kept and the next write (save(), or any later
    mutation or merge) retries it.
    """

    def __init__(self, storage=None, tasks: Iterable[Task] = ()):
        self._storage = storage
        self._lock = threading.RLock()
        self._tasks: dict[str, Task] = {}
        self._unsaved: set[str] = set()
        seen: set[str] = set()
        for task in tasks:
            if task.key in seen or task.id in self._tasks:
                logger.warning(f"Dropping duplicate task on load: {task.title!r} ({task.id})")
                continue
            seen.add(task.key)
            self._tasks[task.id] = task.copy()

    @classmethod
    def open(cls, storage) -> "TaskStore":
        """Create a store holding whatever the storage adapter has saved."""
        tasks = storage.load()
        store = cls(storage=storage, tasks=tasks)
        logger.info(f"Task store ready with {len(store)} tasks")
        return store

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    # ---- reads ----

    def list(self) -> list[Task]:
        with self._lock:
            return [t.copy() for t in self._tasks.values()]

    def get(self, task_id: str) -> Task:
        with self._lock:
            return self._require(task_id).copy()

    # ---- mutations ----

    def add(
        self,
        title: str,
        priority: Priority | str = Priority.MEDIUM,
        category: str = DEFAULT_CATEGORY,
        deadline: date | None = None,
    ) -> Task:
        """Create a task by direct user action."""
        title = title.strip()
        if not title:
            raise ValueError("Task title must not be empty")
        with self._lock:
            self._check_title_free(title)
            now = utcnow()
            task = Task(
                id=new_task_id(),
                title=title,
                priority=Priority.parse(priority),
                category=normalize_category(category),
                deadline=deadline,
                created_at=now,
                last_modified=now,
            )
            self._tasks[task.id] = task
            self._persist([task.id])
            return task.copy()

    def update(self, task_id: str, changes: TaskRecord) -> Task:
        """Overwrite the present fields of `changes` onto an existing task."""
        with self._lock:
            task = self._require(task_id)
            fields = changes.present_fields()
            if "title" in fields:
                self._check_title_free(fields["title"], exclude=task_id)

            changed = False
            for name, value in fields.items():
                if getattr(task, name) != value:
                    setattr(task, name, value)
                    changed = True
            if changed:
                task.last_modified = utcnow()
            if changed or self._unsaved:
                self._persist([task_id] if changed else [])
            return task.copy()

    def delete(self, task_id: str) -> Task:
        """Remove a task and hand it back so the caller can restore it later."""
        with self._lock:
            task = self._require(task_id)
            del self._tasks[task_id]
            self._persist([task_id])
            return task

    def restore(self, task: Task) -> Task:
        """Insert a previously removed task with its original id and fields."""
        with self._lock:
            if task.id in self._tasks:
                raise TaskExists(task.id)
            self._check_title_free(task.title)
            self._tasks[task.id] = task.copy()
            self._persist([task.id])
            return task.copy()

    def merge(self, batch: Iterable[TaskRecord], provider: str) -> MergeOutcome:
        """
        Reconcile a provider batch with the store atomically.

        Changes left unsaved by an earlier failed write are written along with
        this batch, and their ids reported in `outcome.flushed`.
        """
        with self._lock:
            outcome = merge_batch(self._tasks.values(), batch, provider)
            self._tasks = {t.id: t for t in outcome.tasks}
            logger.info(f"Merged {provider} batch: {outcome.summary()}")
            touched = outcome.created + outcome.updated
            if touched or self._unsaved:
                outcome.flushed = [
                    i for i in sorted(self._unsaved) if i in self._tasks and i not in touched
                ]
                self._persist(touched)
            outcome.tasks = [t.copy() for t in outcome.tasks]
            return outcome

    def save(self) -> None:
        """Write the current task list to storage."""
        with self._lock:
            self._persist()

    @property
    def dirty(self) -> bool:
        """True while some change has not reached storage."""
        with self._lock:
            return bool(self._unsaved)

    # ---- helpers ----

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    def _check_title_free(self, title: str, exclude: str | None = None) -> None:
        key = normalize_title(title)
        for task in self._tasks.values():
            if task.id != exclude and task.key == key:
                raise DuplicateTitle(title.strip())

    def _persist(self, touched: Iterable[str] = ()) -> None:
        # Ids stay in _unsaved until a write succeeds
        self._unsaved.update(touched)
        if self._storage is None:
            self._unsaved.clear()
            return
        self._storage.save(list(self._tasks.values()))
        self._unsaved.clear()
