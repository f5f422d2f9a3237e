"""Tests for the JSON file task storage."""

import json
from datetime import date
from unittest.mock import patch

import pytest

from pmassist.adapters.json_storage import JsonTaskStorage
from pmassist.core.errors import PersistenceFailure
from pmassist.core.tasks import Priority, Task


@pytest.fixture
def storage(tmp_path):
    return JsonTaskStorage(tmp_path / "data" / "tasks.json")


class TestJsonTaskStorage:
    def test_missing_file_loads_empty(self, storage):
        assert storage.load() == []

    def test_save_and_reload(self, storage):
        task = Task(
            id="t1",
            title="Review PRD",
            priority=Priority.HIGH,
            category="Documentation",
            deadline=date(2025, 2, 25),
            provider_ids={"notion": "n1"},
        )
        storage.save([task])

        loaded = storage.load()
        assert [t.to_dict() for t in loaded] == [task.to_dict()]

    def test_document_shape(self, storage):
        storage.save([Task(id="t1", title="Review PRD")])
        document = json.loads(storage.path.read_text())
        assert set(document) == {"tasks", "lastUpdate"}
        assert document["tasks"][0]["providerIds"] == {}

    def test_no_temp_file_left_behind(self, storage):
        storage.save([Task(id="t1", title="Review PRD")])
        assert [p.name for p in storage.path.parent.iterdir()] == ["tasks.json"]

    def test_corrupt_file_loads_empty(self, storage):
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text("{not json")
        assert storage.load() == []

    def test_unreadable_tasks_are_skipped(self, storage):
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text(
            json.dumps({"tasks": [{"id": "t1", "title": "Good"}, {"id": "t2"}, {"title": "No id"}]})
        )
        assert [t.id for t in storage.load()] == ["t1"]

    def test_write_failure_raises_persistence_failure(self, storage):
        with patch("pmassist.adapters.json_storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceFailure):
                storage.save([Task(id="t1", title="Review PRD")])
