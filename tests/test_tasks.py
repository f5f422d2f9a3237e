"""Tests for the core task model."""

from datetime import date, datetime, timezone

import pytest

from pmassist.core.errors import MalformedRecord
from pmassist.core.tasks import (
    Priority,
    Task,
    TaskRecord,
    normalize_category,
    normalize_title,
    sort_by_priority,
)


@pytest.fixture
def today():
    return date(2025, 1, 15)


class TestNormalize:
    def test_title_is_trimmed_and_lowercased(self):
        assert normalize_title("  Review PRD ") == "review prd"

    def test_category_matches_case_insensitively(self):
        assert normalize_category("meetings") == "Meetings"
        assert normalize_category("STAKEHOLDER management") == "Stakeholder Management"

    def test_unknown_category_becomes_other(self):
        assert normalize_category("Groceries") == "Other"

    def test_missing_category_becomes_other(self):
        assert normalize_category(None) == "Other"
        assert normalize_category("") == "Other"

    def test_priority_parse_is_lenient(self):
        assert Priority.parse("High") is Priority.HIGH
        assert Priority.parse(" low ") is Priority.LOW
        assert Priority.parse("urgent") is Priority.MEDIUM
        assert Priority.parse(None) is Priority.MEDIUM


class TestTask:
    def test_defaults(self):
        task = Task(id="t1", title="Write brief")
        assert task.priority is Priority.MEDIUM
        assert task.category == "Other"
        assert task.deadline is None
        assert task.completed is False
        assert task.provider_ids == {}

    def test_copy_does_not_share_provider_ids(self):
        task = Task(id="t1", title="Write brief", provider_ids={"notion": "n1"})
        clone = task.copy()
        clone.provider_ids["todoist"] = "d1"
        assert task.provider_ids == {"notion": "n1"}

    def test_to_dict_wire_shape(self):
        ts = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)
        task = Task(
            id="t1",
            title="Review PRD",
            priority=Priority.HIGH,
            category="Documentation",
            deadline=date(2025, 2, 25),
            provider_ids={"notion": "n1"},
            created_at=ts,
            last_modified=ts,
        )
        assert task.to_dict() == {
            "id": "t1",
            "title": "Review PRD",
            "priority": "high",
            "category": "Documentation",
            "deadline": "2025-02-25",
            "completed": False,
            "providerIds": {"notion": "n1"},
            "createdAt": "2025-01-15T09:00:00+00:00",
            "lastModified": "2025-01-15T09:00:00+00:00",
        }

    def test_from_dict_restores_every_field(self):
        data = {
            "id": "t1",
            "title": "Review PRD",
            "priority": "low",
            "category": "Research",
            "deadline": "2025-02-25",
            "completed": True,
            "providerIds": {"todoist": "123"},
            "createdAt": "2025-01-15T09:00:00+00:00",
            "lastModified": "2025-01-16T09:00:00Z",
        }
        task = Task.from_dict(data)
        assert task.to_dict()["lastModified"] == "2025-01-16T09:00:00+00:00"
        assert task.priority is Priority.LOW
        assert task.deadline == date(2025, 2, 25)
        assert task.completed is True
        assert task.provider_ids == {"todoist": "123"}

    def test_from_dict_requires_title(self):
        with pytest.raises(MalformedRecord):
            Task.from_dict({"id": "t1", "title": "  "})


class TestTaskRecord:
    def test_present_fields_skips_absent(self):
        record = TaskRecord(title="Review PRD", priority=Priority.HIGH)
        assert record.present_fields() == {"title": "Review PRD", "priority": Priority.HIGH}

    def test_present_fields_keeps_false_completed(self):
        record = TaskRecord(completed=False)
        assert record.present_fields() == {"completed": False}

    def test_present_fields_normalizes_category(self):
        assert TaskRecord(category="weird").present_fields() == {"category": "Other"}

    def test_from_dict(self):
        record = TaskRecord.from_dict({"title": "X", "priority": "HIGH", "deadline": "2025-03-01T10:00:00"})
        assert record.priority is Priority.HIGH
        assert record.deadline == date(2025, 3, 1)
        assert record.completed is None


class TestSorting:
    def test_sort_by_priority_then_deadline(self, today):
        tasks = [
            Task(id="1", title="low", priority=Priority.LOW),
            Task(id="2", title="high late", priority=Priority.HIGH, deadline=date(2025, 3, 1)),
            Task(id="3", title="high soon", priority=Priority.HIGH, deadline=date(2025, 1, 20)),
            Task(id="4", title="done", priority=Priority.HIGH, completed=True),
        ]
        assert [t.id for t in sort_by_priority(tasks)] == ["3", "2", "1", "4"]
