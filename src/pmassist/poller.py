"""Change poller - pulls incremental provider updates on a timer."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .core.errors import ProviderUnavailable
from .core.tasks import TaskRecord, utcnow
from .ports.task_provider import PollableTaskProvider

logger = logging.getLogger(__name__)


class TickResult(str, Enum):
    SKIPPED = "skipped"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class SyncError:
    """One failed poll cycle."""

    kind: str
    message: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "timestamp": self.timestamp.isoformat()}


@dataclass
class PollerStatus:
    last_sync: datetime | None
    in_progress: bool
    running: bool
    errors: list[SyncError]

    def to_dict(self) -> dict:
        return {
            "lastSync": self.last_sync.isoformat() if self.last_sync else None,
            "inProgress": self.in_progress,
            "running": self.running,
            "errors": [e.to_dict() for e in self.errors],
        }


class ChangePoller:
    """
    Self-scheduling poll loop for one provider.

    Each tick asks the provider for records modified since the last
    successful poll and hands them to `on_changes`. A tick that starts while
    another is still running is skipped. Failures leave the cursor where it
    was and go to a bounded error log; the loop keeps running.
    """

    def __init__(
        self,
        provider: PollableTaskProvider,
        on_changes: Callable[[list[TaskRecord]], None],
        interval: float = 30,
        error_log_size: int = 20,
        name: str = "",
        scheduler=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.provider = provider
        self.on_changes = on_changes
        self.interval = interval
        self.name = name or getattr(provider, "name", "provider")
        self.last_sync: datetime | None = None
        self.errors: deque[SyncError] = deque(maxlen=error_log_size)
        self._in_progress = False
        self._state_lock = threading.Lock()
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._job = None
        self._clock = clock

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def running(self) -> bool:
        return self._job is not None

    def start(self) -> None:
        """Begin polling every `interval` seconds."""
        if self._job is not None:
            return
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(timezone="UTC")
        self._job = self._scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self.interval),
            id=f"poll_{self.name}",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(f"Polling {self.name} every {self.interval}s")

    def stop(self) -> None:
        """Stop polling. A tick already running finishes on its own."""
        if self._job is None:
            return
        self._job.remove()
        self._job = None
        if self._owns_scheduler and self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info(f"Stopped polling {self.name}")

    def tick(self) -> TickResult:
        """Run one poll cycle."""
        with self._state_lock:
            if self._in_progress:
                logger.debug(f"Previous {self.name} poll still running, skipping tick")
                return TickResult.SKIPPED
            self._in_progress = True

        try:
            # Cursor for the next cycle is when this query was issued, so
            # edits made while it runs are picked up next time.
            started = self._clock()
            records = self.provider.get_changes_since(self.last_sync)
            if records:
                logger.info(f"{len(records)} change(s) from {self.name}")
                self.on_changes(records)
            self.last_sync = started
            return TickResult.SUCCESS
        except ProviderUnavailable as e:
            logger.warning(f"Polling {self.name} failed: {e}")
            self.record_error("provider_unavailable", str(e))
            return TickResult.FAILED
        except Exception as e:
            logger.error(f"Error handling {self.name} changes: {e}")
            self.record_error(type(e).__name__, str(e))
            return TickResult.FAILED
        finally:
            with self._state_lock:
                self._in_progress = False

    def status(self, recent: int = 5) -> PollerStatus:
        return PollerStatus(
            last_sync=self.last_sync,
            in_progress=self._in_progress,
            running=self.running,
            errors=list(self.errors)[-recent:],
        )

    def clear_errors(self) -> None:
        self.errors.clear()

    def record_error(self, kind: str, message: str) -> None:
        """Add an entry to the bounded error log shown by status()."""
        self.errors.append(SyncError(kind=kind, message=message, timestamp=self._clock()))
