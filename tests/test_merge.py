"""Tests for the merge engine."""

from datetime import date, datetime, timezone
from itertools import count

import pytest

from pmassist.core.merge import merge_batch
from pmassist.core.tasks import Priority, Task, TaskRecord

T0 = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)
T1 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def ids():
    counter = count(1)
    return lambda: f"new{next(counter)}"


def make_task(id, title, **kwargs):
    return Task(id=id, title=title, created_at=T0, last_modified=T0, **kwargs)


def snapshot(tasks):
    return [t.to_dict() for t in tasks]


class TestMergeScenarios:
    def test_review_prd_scenario(self, ids):
        store = [make_task("t1", "Review PRD", priority=Priority.HIGH)]
        batch = [TaskRecord(title="Review PRD", priority=Priority.MEDIUM, external_id="n1")]

        outcome = merge_batch(store, batch, "notion", now=T1, id_factory=ids)

        assert len(outcome.tasks) == 1
        task = outcome.tasks[0]
        assert task.id == "t1"
        assert task.priority is Priority.MEDIUM
        assert task.provider_ids["notion"] == "n1"
        assert outcome.updated == ["t1"]

    def test_new_record_creates_task_with_defaults(self, ids):
        outcome = merge_batch([], [TaskRecord(title="Draft roadmap", external_id="d1")], "todoist", now=T1, id_factory=ids)

        assert outcome.created == ["new1"]
        task = outcome.tasks[0]
        assert task.title == "Draft roadmap"
        assert task.priority is Priority.MEDIUM
        assert task.category == "Other"
        assert task.completed is False
        assert task.provider_ids == {"todoist": "d1"}
        assert task.created_at == T1

    def test_input_list_is_not_modified(self, ids):
        store = [make_task("t1", "Review PRD")]
        merge_batch(store, [TaskRecord(title="Review PRD", completed=True, external_id="n1")], "notion", id_factory=ids)
        assert store[0].completed is False
        assert store[0].provider_ids == {}


class TestOverwriteIfPresent:
    def test_absent_fields_are_left_alone(self, ids):
        store = [
            make_task(
                "t1",
                "Review PRD",
                priority=Priority.HIGH,
                category="Documentation",
                deadline=date(2025, 2, 1),
            )
        ]
        batch = [TaskRecord(title="Review PRD", completed=True)]

        task = merge_batch(store, batch, "notion", id_factory=ids).tasks[0]

        assert task.completed is True
        assert task.priority is Priority.HIGH
        assert task.category == "Documentation"
        assert task.deadline == date(2025, 2, 1)

    def test_other_provider_ids_preserved(self, ids):
        store = [make_task("t1", "Review PRD", provider_ids={"todoist": "d1"})]
        batch = [TaskRecord(title="Review PRD", external_id="n1")]

        task = merge_batch(store, batch, "notion", id_factory=ids).tasks[0]

        assert task.provider_ids == {"todoist": "d1", "notion": "n1"}

    def test_record_without_external_id_keeps_existing_link(self, ids):
        store = [make_task("t1", "Review PRD", provider_ids={"notion": "n1"})]
        task = merge_batch(store, [TaskRecord(title="Review PRD", priority=Priority.LOW)], "notion", id_factory=ids).tasks[0]
        assert task.provider_ids == {"notion": "n1"}

    def test_rename_via_provider_id(self, ids):
        store = [make_task("t1", "Old title", provider_ids={"notion": "n1"})]
        outcome = merge_batch(store, [TaskRecord(title="New title", external_id="n1")], "notion", id_factory=ids)
        assert [t.title for t in outcome.tasks] == ["New title"]

    def test_rename_onto_existing_title_is_refused(self, ids):
        store = [
            make_task("t1", "Old title", provider_ids={"notion": "n1"}),
            make_task("t2", "Taken"),
        ]
        batch = [TaskRecord(title="taken", priority=Priority.HIGH, external_id="n1")]

        outcome = merge_batch(store, batch, "notion", id_factory=ids)

        by_id = {t.id: t for t in outcome.tasks}
        assert by_id["t1"].title == "Old title"
        assert by_id["t1"].priority is Priority.HIGH
        assert len({t.key for t in outcome.tasks}) == len(outcome.tasks)

    def test_last_modified_only_bumped_on_change(self, ids):
        store = [make_task("t1", "Review PRD", provider_ids={"notion": "n1"})]
        outcome = merge_batch(store, [TaskRecord(title="Review PRD", external_id="n1")], "notion", now=T1, id_factory=ids)
        assert outcome.unchanged == ["t1"]
        assert outcome.tasks[0].last_modified == T0


class TestBatchHandling:
    def test_duplicate_titles_in_batch_first_wins(self, ids):
        batch = [
            TaskRecord(title="Plan Q3", priority=Priority.HIGH, external_id="n1"),
            TaskRecord(title="plan q3 ", priority=Priority.LOW, external_id="n2"),
        ]
        outcome = merge_batch([], batch, "notion", id_factory=ids)

        assert len(outcome.tasks) == 1
        assert outcome.tasks[0].priority is Priority.HIGH
        assert outcome.tasks[0].provider_ids == {"notion": "n1"}
        assert [s.index for s in outcome.skipped] == [1]

    def test_malformed_record_skipped_rest_merged(self, ids):
        batch = [
            TaskRecord(title=None, external_id="n0"),
            TaskRecord(title="   ", external_id="n1"),
            TaskRecord(title="Valid", external_id="n2"),
        ]
        outcome = merge_batch([], batch, "notion", id_factory=ids)

        assert [t.title for t in outcome.tasks] == ["Valid"]
        assert [s.index for s in outcome.skipped] == [0, 1]
        assert all(s.reason == "record has no title" for s in outcome.skipped)

    def test_provider_omissions_do_not_delete(self, ids):
        store = [make_task("t1", "Local only"), make_task("t2", "Linked", provider_ids={"notion": "n1"})]
        outcome = merge_batch(store, [], "notion", id_factory=ids)
        assert [t.id for t in outcome.tasks] == ["t1", "t2"]
        assert not outcome.changed

    def test_same_external_id_twice_in_batch_first_wins(self, ids):
        batch = [
            TaskRecord(title="Spec review", external_id="n1"),
            TaskRecord(title="Spec review v2", external_id="n1"),
        ]
        outcome = merge_batch([], batch, "notion", now=T0, id_factory=ids)

        assert [t.title for t in outcome.tasks] == ["Spec review"]
        assert outcome.created == ["new1"]
        assert [(s.index, s.reason) for s in outcome.skipped] == [(1, "task already matched in batch")]

    def test_same_external_id_twice_is_idempotent(self, ids):
        batch = [
            TaskRecord(title="Spec review", external_id="n1"),
            TaskRecord(title="Spec review v2", external_id="n1"),
        ]
        once = merge_batch([], batch, "notion", now=T0, id_factory=ids)
        twice = merge_batch(once.tasks, batch, "notion", now=T1, id_factory=ids)

        assert not twice.changed
        assert twice.updated == []
        assert snapshot(twice.tasks) == snapshot(once.tasks)


class TestInvariants:
    @pytest.fixture
    def store(self):
        return [
            make_task("t1", "Review PRD", priority=Priority.HIGH),
            make_task("t2", "Sync with design", provider_ids={"todoist": "d7"}),
        ]

    @pytest.fixture
    def batch(self):
        return [
            TaskRecord(title="review prd", priority=Priority.MEDIUM, external_id="n1"),
            TaskRecord(title="Write launch notes", category="Documentation", external_id="n2"),
            TaskRecord(title="Write launch notes", external_id="n3"),
            TaskRecord(title=None, external_id="n4"),
            TaskRecord(title="Sync with design", completed=True, external_id="n5"),
        ]

    def test_merge_is_idempotent(self, store, batch, ids):
        once = merge_batch(store, batch, "notion", now=T1, id_factory=ids)
        twice = merge_batch(once.tasks, batch, "notion", now=datetime(2025, 2, 1, tzinfo=timezone.utc), id_factory=ids)

        assert snapshot(twice.tasks) == snapshot(once.tasks)
        assert not twice.changed

    def test_titles_stay_unique(self, store, batch, ids):
        outcome = merge_batch(store, batch, "notion", id_factory=ids)
        keys = [t.key for t in outcome.tasks]
        assert len(keys) == len(set(keys))
        assert len(outcome.tasks) == 3
