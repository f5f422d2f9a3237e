"""Notion API adapter - HTTP client for a Notion task database."""

import logging
from datetime import datetime

import requests

from pmassist.core.errors import ProviderUnavailable
from pmassist.core.tasks import NOTION, Priority, TaskRecord, parse_date, parse_datetime

logger = logging.getLogger(__name__)

API_BASE = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

# Databases in the wild use different property names for the same thing
TITLE_PROPERTIES = ("Name", "Task")
PRIORITY_PROPERTIES = ("Priority", "priority")
CATEGORY_PROPERTIES = ("Category", "category", "Type")
DUE_PROPERTIES = ("Due", "Deadline", "Due Date")
STATUS_PROPERTIES = ("Status", "status")
COMPLETED_STATUSES = ("Completed", "Done")


def _title(props: dict) -> str | None:
    candidates = [props.get(name) for name in TITLE_PROPERTIES]
    candidates += [p for p in props.values() if isinstance(p, dict) and p.get("type") == "title"]
    for prop in candidates:
        if not prop or not prop.get("title"):
            continue
        text = "".join(part.get("plain_text", "") for part in prop["title"]).strip()
        if text:
            return text
    return None


def _select(props: dict, names: tuple[str, ...]) -> str | None:
    for name in names:
        prop = props.get(name) or {}
        # Status columns can be either a status or a plain select
        value = prop.get("select") or prop.get("status") or {}
        if value.get("name"):
            return value["name"]
    return None


def _date(props: dict, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = (props.get(name) or {}).get("date") or {}
        if value.get("start"):
            return value["start"]
    return None


def page_to_record(page: dict) -> TaskRecord:
    """
    Map a Notion database page onto the canonical partial task.

    Properties the page doesn't carry stay None so a merge leaves the
    corresponding local fields alone.
    """
    props = page.get("properties", {})

    priority = _select(props, PRIORITY_PROPERTIES)
    status = _select(props, STATUS_PROPERTIES)
    due = _date(props, DUE_PROPERTIES)

    return TaskRecord(
        title=_title(props),
        priority=Priority.parse(priority) if priority else None,
        category=_select(props, CATEGORY_PROPERTIES),
        deadline=parse_date(due) if due else None,
        completed=status in COMPLETED_STATUSES if status else None,
        external_id=page.get("id"),
        last_modified=parse_datetime(page.get("last_edited_time")),
    )


def record_to_properties(fields: TaskRecord) -> dict:
    """Notion page properties for the present fields of a record."""
    properties = {}
    if fields.title:
        properties["Name"] = {"title": [{"type": "text", "text": {"content": fields.title}}]}
    if fields.priority:
        properties["Priority"] = {"select": {"name": Priority.parse(fields.priority).value.capitalize()}}
    if fields.category:
        properties["Category"] = {"select": {"name": fields.category}}
    if fields.deadline:
        properties["Due"] = {"date": {"start": fields.deadline.isoformat()}}
    if fields.completed is not None:
        properties["Status"] = {"status": {"name": "Completed" if fields.completed else "In Progress"}}
    return properties


class NotionAdapter:
    """
    Notion API adapter.

    Implements PollableTaskProvider protocol. No business logic - just I/O
    and shape mapping. Every failure surfaces as ProviderUnavailable.
    """

    name = NOTION

    def __init__(
        self,
        token: str,
        database_id: str,
        session: requests.Session | None = None,
        timeout: int = 30,
    ):
        self.token = token
        self.database_id = database_id
        self.timeout = timeout
        self._session = session or requests.Session()

    def _api_request(self, method: str, endpoint: str, payload: dict | None = None) -> dict:
        """Make authenticated API request."""
        if not self.token or not self.database_id:
            raise ProviderUnavailable(self.name, "NOTION_TOKEN / NOTION_DATABASE_ID not configured")
        try:
            resp = self._session.request(
                method,
                f"{API_BASE}{endpoint}",
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Notion-Version": NOTION_VERSION,
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise ProviderUnavailable(self.name, str(e)) from e
        return resp.json()

    def _query(self, filter_: dict | None = None) -> list[dict]:
        """Query the database, following pagination."""
        pages = []
        payload: dict = {}
        if filter_:
            payload["filter"] = filter_
        while True:
            data = self._api_request("POST", f"/databases/{self.database_id}/query", payload)
            pages.extend(data.get("results", []))
            if not data.get("has_more"):
                return pages
            payload["start_cursor"] = data["next_cursor"]

    def get_tasks(self) -> list[TaskRecord]:
        """Fetch every page in the task database."""
        pages = self._query()
        logger.info(f"Fetched {len(pages)} tasks from Notion")
        return [page_to_record(p) for p in pages if not p.get("archived")]

    def get_changes_since(self, since: datetime | None) -> list[TaskRecord]:
        """Fetch pages edited after `since`."""
        if since is None:
            return self.get_tasks()
        pages = self._query(
            {
                "timestamp": "last_edited_time",
                "last_edited_time": {"after": since.isoformat()},
            }
        )
        return [page_to_record(p) for p in pages if not p.get("archived")]

    def update_task(self, external_id: str, fields: TaskRecord) -> bool:
        properties = record_to_properties(fields)
        if not properties:
            return True
        logger.debug(f"Updating Notion page {external_id}: {list(properties)}")
        self._api_request("PATCH", f"/pages/{external_id}", {"properties": properties})
        return True

    def delete_task(self, external_id: str) -> bool:
        """Archive the page (Notion has no hard delete)."""
        logger.info(f"Archiving Notion page {external_id}")
        self._api_request("PATCH", f"/pages/{external_id}", {"archived": True})
        return True

    def restore_task(self, external_id: str) -> bool:
        """Un-archive a page previously removed with delete_task."""
        logger.info(f"Restoring Notion page {external_id}")
        self._api_request("PATCH", f"/pages/{external_id}", {"archived": False})
        return True

    def verify_connection(self) -> bool:
        try:
            self._api_request("GET", f"/databases/{self.database_id}")
        except ProviderUnavailable as e:
            logger.warning(f"Notion connection check failed: {e}")
            return False
        return True
