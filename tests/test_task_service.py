from datetime import datetime

import pytest

from top5.auth.users import CredentialStore
from top5.errors import TaskNotFound
from top5.infra.models import Note
from top5.services import task_service as ts

VALID = {
    "taskname": "some taskname",
    "task_description": "some task_description",
    "status": "some status",
    "in_backlog": "true",
    "deadline": "2010-04-17T14:00:00",
    "priority": "42",
}

UPDATED = {
    "taskname": "some updated taskname",
    "task_description": "some updated task_description",
    "status": "some updated status",
    "deadline": "2011-05-18T15:01:01",
    "priority": "43",
}


@pytest.fixture()
def bob(db):
    return CredentialStore(db).create_user("bob", "bobpw")


@pytest.fixture()
def task(db, alice):
    return ts.create_task(db, user_id=alice.id, fields=VALID)


def test_create_task_with_valid_data(task, alice):
    assert task.user_id == alice.id
    assert task.deadline == datetime(2010, 4, 17, 14, 0, 0)
    assert task.in_backlog is True
    assert task.priority == 42
    assert task.status == "some status"
    assert task.task_description == "some task_description"
    assert task.taskname == "some taskname"


def test_create_task_with_missing_fields(db, alice):
    with pytest.raises(ValueError, match="Required fields missing"):
        ts.create_task(db, user_id=alice.id, fields={})
    assert ts.list_tasks(db, user_id=alice.id) == []


@pytest.mark.parametrize("key,value", [("deadline", "tomorrow"), ("priority", "high")])
def test_create_task_with_bad_values(db, alice, key, value):
    with pytest.raises(ValueError, match=key):
        ts.create_task(db, user_id=alice.id, fields={**VALID, key: value})


@pytest.mark.parametrize("priority", ["99999999999999999999", "-99999999999999999999", 2**63])
def test_priority_outside_storable_range_is_rejected(db, alice, priority):
    with pytest.raises(ValueError, match="priority"):
        ts.create_task(db, user_id=alice.id, fields={**VALID, "priority": priority})
    assert ts.list_tasks(db, user_id=alice.id) == []


def test_priority_at_storable_limit_is_accepted(db, alice):
    t = ts.create_task(db, user_id=alice.id, fields={**VALID, "priority": str(2**63 - 1)})
    assert ts.get_task(db, user_id=alice.id, task_id=t.id).priority == 2**63 - 1


def test_deadline_with_offset_is_stored_as_utc(db, alice):
    t = ts.create_task(db, user_id=alice.id, fields={**VALID, "deadline": "2026-11-01T09:30+05:00"})
    assert t.deadline == datetime(2026, 11, 1, 4, 30)


def test_oversized_ids_are_not_found(db, alice, task):
    with pytest.raises(TaskNotFound):
        ts.get_task(db, user_id=alice.id, task_id=10**20)
    with pytest.raises(TaskNotFound):
        ts.delete_task(db, user_id=alice.id, task_id=10**20)
    with pytest.raises(TaskNotFound):
        ts.get_note(db, user_id=alice.id, task_id=task.id, note_id=10**20)


def test_priority_zero_is_not_missing(db, alice):
    t = ts.create_task(db, user_id=alice.id, fields={**VALID, "priority": 0})
    assert t.priority == 0


def test_update_task(db, alice, task):
    t = ts.update_task(db, user_id=alice.id, task_id=task.id, fields=UPDATED)
    assert t.deadline == datetime(2011, 5, 18, 15, 1, 1)
    # unchecked checkbox is absent from the form
    assert t.in_backlog is False
    assert t.priority == 43
    assert t.status == "some updated status"
    assert t.taskname == "some updated taskname"


def test_update_task_with_invalid_data_keeps_task(db, alice, task):
    with pytest.raises(ValueError):
        ts.update_task(db, user_id=alice.id, task_id=task.id, fields={"taskname": ""})
    again = ts.get_task(db, user_id=alice.id, task_id=task.id)
    assert again.taskname == "some taskname"


def test_list_orders_active_before_backlog_then_priority(db, alice):
    ts.create_task(db, user_id=alice.id, fields={**VALID, "taskname": "backlog", "priority": "1"})
    ts.create_task(db, user_id=alice.id, fields={**UPDATED, "taskname": "p5", "priority": "5"})
    ts.create_task(db, user_id=alice.id, fields={**UPDATED, "taskname": "p2", "priority": "2"})
    names = [t.taskname for t in ts.list_tasks(db, user_id=alice.id)]
    assert names == ["p2", "p5", "backlog"]


def test_tasks_are_private_to_their_owner(db, alice, bob, task):
    assert ts.list_tasks(db, user_id=bob.id) == []
    with pytest.raises(TaskNotFound):
        ts.get_task(db, user_id=bob.id, task_id=task.id)
    with pytest.raises(TaskNotFound):
        ts.update_task(db, user_id=bob.id, task_id=task.id, fields=UPDATED)
    with pytest.raises(TaskNotFound):
        ts.delete_task(db, user_id=bob.id, task_id=task.id)
    with pytest.raises(TaskNotFound):
        ts.add_note(db, user_id=bob.id, task_id=task.id, text="sneaky")


def test_delete_task_removes_its_notes(db, alice, task):
    ts.add_note(db, user_id=alice.id, task_id=task.id, text="first")
    ts.delete_task(db, user_id=alice.id, task_id=task.id)
    with pytest.raises(TaskNotFound):
        ts.get_task(db, user_id=alice.id, task_id=task.id)
    assert db.query(Note).count() == 0


def test_notes_crud(db, alice, task):
    note = ts.add_note(db, user_id=alice.id, task_id=task.id, text="  some note ")
    assert note.note == "some note"

    ts.update_note(db, user_id=alice.id, task_id=task.id, note_id=note.id, text="some updated note")
    db.refresh(task)
    assert [n.note for n in task.notes] == ["some updated note"]

    ts.delete_note(db, user_id=alice.id, task_id=task.id, note_id=note.id)
    with pytest.raises(TaskNotFound):
        ts.get_note(db, user_id=alice.id, task_id=task.id, note_id=note.id)


def test_empty_note_is_rejected(db, alice, task):
    with pytest.raises(ValueError):
        ts.add_note(db, user_id=alice.id, task_id=task.id, text="   ")


def test_note_must_belong_to_task(db, alice, task):
    other = ts.create_task(db, user_id=alice.id, fields=UPDATED)
    note = ts.add_note(db, user_id=alice.id, task_id=task.id, text="mine")
    with pytest.raises(TaskNotFound):
        ts.get_note(db, user_id=alice.id, task_id=other.id, note_id=note.id)


def test_task_form_values_round_trip(db, alice, task):
    values = ts.task_form_values(task)
    assert values["deadline"] == "2010-04-17T14:00"
    cleaned = ts.clean_task_fields(values)
    assert cleaned["in_backlog"] is True
    assert cleaned["priority"] == 42
