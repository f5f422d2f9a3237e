"""Merge engine - reconcile a provider batch with the canonical task list."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable

from .errors import MalformedRecord
from .identity import resolve
from .tasks import Task, TaskRecord, new_task_id, normalize_title, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SkippedRecord:
    """A batch entry that was not applied, and why."""

    index: int
    record: TaskRecord
    reason: str


@dataclass
class MergeOutcome:
    """Result of merging one batch: the new task list plus what happened."""

    tasks: list[Task]
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)
    # Earlier unsaved changes written along with this batch
    flushed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated)

    def summary(self) -> dict:
        return {
            "created": len(self.created),
            "updated": len(self.updated),
            "unchanged": len(self.unchanged),
            "skipped": len(self.skipped),
            "total": len(self.tasks),
        }


def record_key(record: TaskRecord) -> str:
    """Normalized title of an incoming record; raises MalformedRecord without one."""
    if record.title is None or not record.title.strip():
        raise MalformedRecord("record has no title")
    return normalize_title(record.title)


def merge_batch(
    tasks: Iterable[Task],
    batch: Iterable[TaskRecord],
    provider: str,
    now: datetime | None = None,
    id_factory: Callable[[], str] = new_task_id,
) -> MergeOutcome:
    """
    Apply a provider batch to a task list and return the merged result.

    Records are handled in batch order. Later records whose normalized title
    repeats an earlier one in the same batch are dropped, as are records
    resolving to a task an earlier record already matched. Matched tasks
    get overwrite-if-present updates; unmatched records become new tasks.
    Tasks the provider omits are left alone. Applying the same batch twice is a
    no-op the second time.

    Pure function - the input tasks are not modified.
    """
    now = now or utcnow()
    merged = [t.copy() for t in tasks]
    by_id = {t.id: t for t in merged}
    outcome = MergeOutcome(tasks=merged)
    seen: set[str] = set()
    matched: set[str] = set()

    for index, record in enumerate(batch):
        try:
            key = record_key(record)
        except MalformedRecord as e:
            logger.warning(f"Skipping malformed {provider} record #{index} ({record.external_id}): {e}")
            outcome.skipped.append(SkippedRecord(index, record, str(e)))
            continue

        if key in seen:
            logger.debug(f"Dropping duplicate {provider} record #{index}: {record.title!r}")
            outcome.skipped.append(SkippedRecord(index, record, "duplicate title in batch"))
            continue
        seen.add(key)

        task_id = resolve(merged, record, provider)
        if task_id in matched:
            logger.debug(f"Dropping {provider} record #{index}: its task was already merged from this batch")
            outcome.skipped.append(SkippedRecord(index, record, "task already matched in batch"))
            continue

        if task_id is None:
            task = _new_task(record, provider, id_factory(), now)
            merged.append(task)
            by_id[task.id] = task
            matched.add(task.id)
            outcome.created.append(task.id)
            continue

        matched.add(task_id)
        if _apply(by_id[task_id], record, provider, merged, now):
            outcome.updated.append(task_id)
        else:
            outcome.unchanged.append(task_id)

    return outcome


def _new_task(record: TaskRecord, provider: str, task_id: str, now: datetime) -> Task:
    task = Task(id=task_id, title="", created_at=now, last_modified=now)
    for name, value in record.present_fields().items():
        setattr(task, name, value)
    if record.external_id:
        task.provider_ids[provider] = record.external_id
    return task


def _apply(
    task: Task,
    record: TaskRecord,
    provider: str,
    tasks: list[Task],
    now: datetime,
) -> bool:
    """Overwrite-if-present update of `task`; returns True if anything changed."""
    fields = record.present_fields()

    new_title = fields.get("title")
    if new_title is not None and normalize_title(new_title) != task.key:
        new_key = normalize_title(new_title)
        if any(t.id != task.id and t.key == new_key for t in tasks):
            logger.warning(
                f"Not renaming task {task.id} to {new_title!r}: another task already has that title"
            )
            del fields["title"]

    changed = False
    for name, value in fields.items():
        if getattr(task, name) != value:
            setattr(task, name, value)
            changed = True

    if record.external_id and task.provider_ids.get(provider) != record.external_id:
        task.provider_ids[provider] = record.external_id
        changed = True

    if changed:
        task.last_modified = now
    return changed
