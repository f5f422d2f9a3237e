"""JSON file task storage adapter."""

import json
import logging
import os
from pathlib import Path

from pmassist.core.errors import MalformedRecord, PersistenceFailure
from pmassist.core.tasks import Task, utcnow

logger = logging.getLogger(__name__)


class JsonTaskStorage:
    """
    File-based task storage.

    Implements TaskStorage protocol. The whole document
    {"tasks": [...], "lastUpdate": ...} is rewritten on every save.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def load(self) -> list[Task]:
        """Load saved tasks. A missing or unreadable file loads as empty."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read {self.path}: {e}")
            return []
        if not isinstance(data, dict):
            logger.error(f"Unexpected document in {self.path}, ignoring it")
            return []

        tasks = []
        for item in data.get("tasks", []):
            try:
                tasks.append(Task.from_dict(item))
            except (MalformedRecord, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable saved task: {e}")
        return tasks

    def save(self, tasks: list[Task]) -> None:
        """Write the full task list, replacing the file atomically."""
        document = {
            "tasks": [t.to_dict() for t in tasks],
            "lastUpdate": utcnow().isoformat(),
        }
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(document, indent=2))
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error(f"Failed to save tasks to {self.path}: {e}")
            raise PersistenceFailure(f"Could not write {self.path}: {e}") from e
