"""Tests for the Notion adapter and its page normalizer."""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from pmassist.adapters.notion import NotionAdapter, page_to_record, record_to_properties
from pmassist.core.errors import ProviderUnavailable
from pmassist.core.tasks import Priority, TaskRecord


def title_prop(text):
    return {"type": "title", "title": [{"plain_text": text}]}


def page(page_id="n1", **props):
    return {
        "id": page_id,
        "last_edited_time": "2025-01-15T10:00:00.000Z",
        "properties": props,
    }


def response(payload=None, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload or {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


class TestPageToRecord:
    def test_standard_schema(self):
        record = page_to_record(
            page(
                Name=title_prop("Review PRD"),
                Priority={"select": {"name": "High"}},
                Category={"select": {"name": "Documentation"}},
                Due={"date": {"start": "2025-02-25"}},
                Status={"status": {"name": "Done"}},
            )
        )
        assert record.title == "Review PRD"
        assert record.priority is Priority.HIGH
        assert record.category == "Documentation"
        assert record.deadline == date(2025, 2, 25)
        assert record.completed is True
        assert record.external_id == "n1"
        assert record.last_modified == datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_alternate_property_names(self):
        record = page_to_record(
            page(
                Task=title_prop("Interview users"),
                priority={"select": {"name": "Low"}},
                Type={"select": {"name": "Research"}},
                **{"Due Date": {"date": {"start": "2025-03-01T09:00:00.000+01:00"}}},
                status={"select": {"name": "In Progress"}},
            )
        )
        assert record.title == "Interview users"
        assert record.priority is Priority.LOW
        assert record.category == "Research"
        assert record.deadline == date(2025, 3, 1)
        assert record.completed is False

    def test_any_title_typed_property(self):
        record = page_to_record(page(Headline=title_prop("Custom title column")))
        assert record.title == "Custom title column"

    def test_missing_properties_stay_absent(self):
        record = page_to_record(page(Name=title_prop("Bare")))
        assert record.priority is None
        assert record.category is None
        assert record.deadline is None
        assert record.completed is None

    def test_empty_title_is_absent(self):
        assert page_to_record(page(Name={"title": []})).title is None

    def test_unknown_priority_label_is_medium(self):
        record = page_to_record(page(Name=title_prop("X"), Priority={"select": {"name": "P0"}}))
        assert record.priority is Priority.MEDIUM


class TestRecordToProperties:
    def test_only_present_fields(self):
        assert record_to_properties(TaskRecord(completed=False)) == {
            "Status": {"status": {"name": "In Progress"}}
        }

    def test_full_update(self):
        props = record_to_properties(
            TaskRecord(
                title="Review PRD",
                priority=Priority.LOW,
                category="Meetings",
                deadline=date(2025, 2, 25),
                completed=True,
            )
        )
        assert props["Name"]["title"][0]["text"]["content"] == "Review PRD"
        assert props["Priority"] == {"select": {"name": "Low"}}
        assert props["Category"] == {"select": {"name": "Meetings"}}
        assert props["Due"] == {"date": {"start": "2025-02-25"}}
        assert props["Status"] == {"status": {"name": "Completed"}}


class TestNotionAdapter:
    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def adapter(self, session):
        return NotionAdapter(token="secret", database_id="db1", session=session)

    def test_get_tasks_follows_pagination(self, adapter, session):
        session.request.side_effect = [
            response({"results": [page("n1", Name=title_prop("A"))], "has_more": True, "next_cursor": "c2"}),
            response({"results": [page("n2", Name=title_prop("B"))], "has_more": False}),
        ]

        records = adapter.get_tasks()

        assert [r.external_id for r in records] == ["n1", "n2"]
        second_call = session.request.call_args_list[1]
        assert second_call.kwargs["json"]["start_cursor"] == "c2"
        assert second_call.args[1].endswith("/databases/db1/query")
        assert second_call.kwargs["headers"]["Authorization"] == "Bearer secret"

    def test_archived_pages_are_ignored(self, adapter, session):
        archived = page("n2", Name=title_prop("Gone"))
        archived["archived"] = True
        session.request.return_value = response({"results": [page("n1", Name=title_prop("A")), archived]})
        assert [r.external_id for r in adapter.get_tasks()] == ["n1"]

    def test_changes_since_filters_on_last_edited(self, adapter, session):
        session.request.return_value = response({"results": []})
        since = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)

        adapter.get_changes_since(since)

        payload = session.request.call_args.kwargs["json"]
        assert payload["filter"] == {
            "timestamp": "last_edited_time",
            "last_edited_time": {"after": "2025-01-15T09:00:00+00:00"},
        }

    def test_http_error_becomes_provider_unavailable(self, adapter, session):
        session.request.return_value = response(status=401)
        with pytest.raises(ProviderUnavailable):
            adapter.get_tasks()

    def test_network_error_becomes_provider_unavailable(self, adapter, session):
        session.request.side_effect = requests.ConnectionError("no route")
        with pytest.raises(ProviderUnavailable) as exc_info:
            adapter.get_changes_since(None)
        assert exc_info.value.provider == "notion"

    def test_missing_credentials(self, session):
        adapter = NotionAdapter(token="", database_id="", session=session)
        with pytest.raises(ProviderUnavailable):
            adapter.get_tasks()
        session.request.assert_not_called()

    def test_update_patches_page(self, adapter, session):
        session.request.return_value = response({})
        assert adapter.update_task("n1", TaskRecord(priority=Priority.HIGH)) is True
        args, kwargs = session.request.call_args
        assert args[0] == "PATCH"
        assert args[1].endswith("/pages/n1")
        assert kwargs["json"] == {"properties": {"Priority": {"select": {"name": "High"}}}}

    def test_update_with_nothing_to_send(self, adapter, session):
        assert adapter.update_task("n1", TaskRecord()) is True
        session.request.assert_not_called()

    def test_delete_archives_and_restore_unarchives(self, adapter, session):
        session.request.return_value = response({})
        adapter.delete_task("n1")
        assert session.request.call_args.kwargs["json"] == {"archived": True}
        adapter.restore_task("n1")
        assert session.request.call_args.kwargs["json"] == {"archived": False}

    def test_verify_connection(self, adapter, session):
        session.request.return_value = response({"properties": {}})
        assert adapter.verify_connection() is True
        session.request.return_value = response(status=404)
        assert adapter.verify_connection() is False
