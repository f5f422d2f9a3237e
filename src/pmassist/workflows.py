"""Shared workflow layer between the CLI and the HTTP API.

TaskService owns the task store and the wiring around it: provider pushes on
update/delete/restore, full provider syncs, live change polling and the
broadcast of every change to open streams.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from .adapters.ics_calendar import IcsCalendarAdapter
from .adapters.json_storage import JsonTaskStorage
from .adapters.notion import NotionAdapter
from .adapters.todoist import TodoistAdapter
from .broadcast import ChangeBroadcaster
from .config import Config, load_config
from .core.calendar import CalendarEvent, FreeBlock, free_blocks, working_window
from .core.errors import ProviderUnavailable
from .core.merge import MergeOutcome
from .core.store import TaskStore
from .core.tasks import NOTION, TODOIST, Priority, Task, TaskRecord
from .poller import ChangePoller, PollerStatus
from .ports.calendar_repo import CalendarRepository
from .ports.task_provider import TaskProvider

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """A local task change plus any provider pushes that failed alongside it."""

    task: Task
    provider_errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.provider_errors


class UnknownProvider(ValueError):
    """Raised for a provider name the service has no adapter for."""


class TaskService:
    """Task operations shared by every front end."""

    def __init__(
        self,
        store: TaskStore,
        providers: dict[str, TaskProvider] | None = None,
        broadcaster: ChangeBroadcaster | None = None,
        config: Config | None = None,
        poller_factory: Callable[..., ChangePoller] = ChangePoller,
    ):
        self.store = store
        self.providers = providers or {}
        self.broadcaster = broadcaster or ChangeBroadcaster()
        self.config = config or Config()
        self._poller_factory = poller_factory
        self._pollers: dict[str, ChangePoller] = {}

    # ---- local task operations ----

    def list_tasks(self) -> list[Task]:
        return self.store.list()

    def add_task(
        self,
        title: str,
        priority: Priority | str = Priority.MEDIUM,
        category: str = "Other",
        deadline: date | None = None,
    ) -> Task:
        task = self.store.add(title, priority=priority, category=category, deadline=deadline)
        self._publish("created", [task])
        return task

    def update_task(self, task_id: str, changes: TaskRecord) -> OperationResult:
        """Update locally, then push the same changes to every linked provider."""
        task = self.store.update(task_id, changes)
        errors = self._push(task, "update", lambda p, ext: p.update_task(ext, changes))
        self._publish("updated", [task])
        return OperationResult(task, errors)

    def delete_task(self, task_id: str) -> OperationResult:
        """Delete from linked providers, then locally. The removed task is returned for undo."""
        task = self.store.get(task_id)
        errors = self._push(task, "delete", lambda p, ext: p.delete_task(ext))
        removed = self.store.delete(task_id)
        self._publish("deleted", [removed])
        return OperationResult(removed, errors)

    def restore_task(self, task: Task) -> OperationResult:
        """Put a deleted task back under its original id."""
        restored = self.store.restore(task)
        errors = self._push(
            restored,
            "restore",
            lambda p, ext: p.restore_task(ext) if hasattr(p, "restore_task") else True,
        )
        self._publish("restored", [restored])
        return OperationResult(restored, errors)

    # ---- provider sync ----

    def provider(self, name: str) -> TaskProvider:
        try:
            return self.providers[name]
        except KeyError:
            raise UnknownProvider(f"Unknown provider: {name}") from None

    def sync_provider(self, name: str) -> MergeOutcome:
        """Merge the provider's full task list into the store."""
        provider = self.provider(name)
        logger.info(f"Starting {name} sync")
        try:
            records = provider.get_tasks()
        except ProviderUnavailable as e:
            logger.error(f"{name} sync failed, store unchanged: {e}")
            raise
        return self.apply_changes(name, records)

    def apply_changes(self, name: str, records: list[TaskRecord]) -> MergeOutcome:
        """Merge a batch from `name` and broadcast the tasks it touched."""
        outcome = self.store.merge(records, name)
        # Tasks from an earlier merge whose save failed count as changes now
        touched = set(outcome.created) | set(outcome.updated) | set(outcome.flushed)
        if touched:
            self._publish("changes", [t for t in outcome.tasks if t.id in touched], provider=name)
        return outcome

    def start_live_sync(self, name: str, interval: float | None = None) -> ChangePoller:
        """Start polling `name` for changes; a second call returns the running poller."""
        provider = self.provider(name)
        if not hasattr(provider, "get_changes_since"):
            raise UnknownProvider(f"{name} does not support live sync")

        poller = self._poller(name, provider, interval)
        poller.start()
        return poller

    def stop_live_sync(self, name: str | None = None) -> None:
        names = [name] if name else list(self._pollers)
        for n in names:
            poller = self._pollers.get(n)
            if poller:
                poller.stop()

    def sync_status(self, name: str) -> PollerStatus | None:
        self.provider(name)
        poller = self._pollers.get(name)
        return poller.status() if poller else None

    # ---- helpers ----

    def _poller(self, name: str, provider: TaskProvider, interval: float | None = None) -> ChangePoller:
        """The poller for `name`, created (not started) on first use."""
        poller = self._pollers.get(name)
        if poller is None:
            poller = self._poller_factory(
                provider,
                lambda records: self.apply_changes(name, records),
                interval=interval or self.config.poll_interval,
                error_log_size=self.config.error_log_size,
                name=name,
            )
            self._pollers[name] = poller
        return poller

    def _push(self, task: Task, action: str, call: Callable) -> dict[str, str]:
        """Run `call` against every provider the task is linked to, collecting failures."""
        errors = {}
        for name, external_id in task.provider_ids.items():
            provider = self.providers.get(name)
            if provider is None:
                continue
            try:
                call(provider, external_id)
            except ProviderUnavailable as e:
                logger.warning(f"Failed to {action} task {task.id} in {name}: {e}")
                errors[name] = str(e)
                if hasattr(provider, "get_changes_since"):
                    # Shows up in the provider's sync status
                    self._poller(name, provider).record_error(f"{action}_failed", f"{task.id}: {e}")
        return errors

    def _publish(self, kind: str, tasks: list[Task], provider: str | None = None) -> None:
        message = {"type": kind, "tasks": [t.to_dict() for t in tasks]}
        if provider:
            message["provider"] = provider
        self.broadcaster.publish(message)


def day_availability(
    calendar: CalendarRepository,
    day: date,
    work_hours: str,
    tz=None,
    min_minutes: int = 0,
) -> tuple[list[CalendarEvent], list[FreeBlock]]:
    """A day's events and the free blocks left in its working window."""
    events = calendar.get_events_for_date(day)
    window_start, window_end = working_window(day, work_hours, tz)
    return events, free_blocks(events, window_start, window_end, min_minutes=min_minutes)


def build_providers(config: Config) -> dict[str, TaskProvider]:
    """Adapters for every provider with credentials configured."""
    providers: dict[str, TaskProvider] = {}
    if config.notion_token and config.notion_database_id:
        providers[NOTION] = NotionAdapter(config.notion_token, config.notion_database_id)
    if config.todoist_api_token:
        providers[TODOIST] = TodoistAdapter(config.todoist_api_token)
    return providers


def build_service(config: Config | None = None) -> TaskService:
    """Wire a TaskService from configuration."""
    config = config or load_config()
    store = TaskStore.open(JsonTaskStorage(config.data_path))
    return TaskService(
        store,
        providers=build_providers(config),
        broadcaster=ChangeBroadcaster(queue_size=config.stream_queue_size),
        config=config,
    )


def build_calendar(config: Config | None = None) -> IcsCalendarAdapter:
    config = config or load_config()
    calendar = IcsCalendarAdapter(config.calendar_path, timezone=config.timezone)
    if config.calendar_path.exists():
        calendar.load()
    return calendar
