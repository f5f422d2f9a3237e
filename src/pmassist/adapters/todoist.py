"""Todoist REST API adapter."""

import logging

import requests

from pmassist.core.errors import ProviderUnavailable
from pmassist.core.tasks import TODOIST, Priority, TaskRecord, parse_date

logger = logging.getLogger(__name__)

API_BASE = "https://api.todoist.com/rest/v2"

# Todoist counts priority upside down: 4 is "p1", 1 is "p4"
FROM_TODOIST_PRIORITY = {4: Priority.HIGH, 3: Priority.MEDIUM, 2: Priority.MEDIUM, 1: Priority.LOW}
TO_TODOIST_PRIORITY = {Priority.HIGH: 4, Priority.MEDIUM: 3, Priority.LOW: 1}


def task_to_record(data: dict, project_names: dict[str, str] | None = None) -> TaskRecord:
    """Map a Todoist task onto the canonical partial task."""
    project_names = project_names or {}
    due = data.get("due") or {}
    priority = data.get("priority")
    project_id = data.get("project_id") or data.get("projectId")
    completed = data.get("is_completed", data.get("isCompleted"))

    return TaskRecord(
        title=data.get("content"),
        priority=FROM_TODOIST_PRIORITY.get(priority, Priority.MEDIUM) if priority else None,
        category=project_names.get(project_id) if project_id else None,
        deadline=parse_date(due.get("date")) if due.get("date") else None,
        completed=bool(completed) if completed is not None else None,
        external_id=str(data["id"]) if data.get("id") is not None else None,
    )


class TodoistAdapter:
    """
    Todoist API adapter.

    Implements TaskProvider protocol. Caches project names, which become
    task categories.
    """

    name = TODOIST

    def __init__(
        self,
        api_token: str,
        session: requests.Session | None = None,
        timeout: int = 30,
    ):
        self.api_token = api_token
        self.timeout = timeout
        self._session = session or requests.Session()
        self._project_names: dict[str, str] = {}

    def _api_request(self, method: str, endpoint: str, payload: dict | None = None) -> dict | list:
        """Make authenticated API request."""
        if not self.api_token:
            raise ProviderUnavailable(self.name, "TODOIST_API_TOKEN not configured")
        try:
            resp = self._session.request(
                method,
                f"{API_BASE}{endpoint}",
                headers={"Authorization": f"Bearer {self.api_token}"},
                json=payload,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ProviderUnavailable(self.name, str(e)) from e
        # close/reopen/delete answer 204 with no body
        if not resp.content:
            return {}
        return resp.json()

    def _load_project_names(self) -> None:
        """Cache project ID to name mapping."""
        if not self._project_names:
            projects = self._api_request("GET", "/projects")
            self._project_names = {str(p["id"]): p["name"] for p in projects}

    def get_tasks(self) -> list[TaskRecord]:
        """Fetch all active tasks."""
        self._load_project_names()
        tasks = self._api_request("GET", "/tasks")
        if not isinstance(tasks, list):
            logger.warning(f"Unexpected Todoist tasks response: {type(tasks).__name__}")
            return []
        logger.info(f"Fetched {len(tasks)} tasks from Todoist")
        return [task_to_record(t, self._project_names) for t in tasks]

    def update_task(self, external_id: str, fields: TaskRecord) -> bool:
        update: dict = {}
        if fields.title:
            update["content"] = fields.title
        if fields.priority:
            update["priority"] = TO_TODOIST_PRIORITY[Priority.parse(fields.priority)]
        if fields.deadline:
            update["due_date"] = fields.deadline.isoformat()

        if update:
            self._api_request("POST", f"/tasks/{external_id}", update)

        if fields.completed is not None:
            action = "close" if fields.completed else "reopen"
            self._api_request("POST", f"/tasks/{external_id}/{action}")

        return True

    def delete_task(self, external_id: str) -> bool:
        logger.info(f"Deleting Todoist task {external_id}")
        self._api_request("DELETE", f"/tasks/{external_id}")
        return True

    def verify_connection(self) -> bool:
        try:
            self._project_names = {}
            self._load_project_names()
        except ProviderUnavailable as e:
            logger.warning(f"Todoist connection check failed: {e}")
            return False
        return True
