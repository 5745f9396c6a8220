# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from top5.errors import TaskNotFound
from top5.infra.db import store_errors
from top5.infra.models import Note, Task

logger = logging.getLogger(__name__)

REQUIRED_TASK_FIELDS = ["taskname", "task_description", "status", "deadline", "priority"]
STATUS_SUGGESTIONS = ["todo", "in progress", "blocked", "done"]

_TRUE = {"1", "true", "yes", "y", "on"}

# SQLite INTEGER is a signed 64-bit value.
INT_MIN = -(2**63)
INT_MAX = 2**63 - 1


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUE


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(tzinfo=None)


def _parse_deadline(value: Any) -> datetime:
    """Naive datetime; values carrying an offset are converted to UTC first."""
    if isinstance(value, datetime):
        return _naive_utc(value)
    s = str(value or "").strip()
    try:
        return _naive_utc(datetime.fromisoformat(s))
    except ValueError:
        raise ValueError(f"Invalid deadline '{s}' (expected YYYY-MM-DDTHH:MM).") from None


def _parse_priority(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        n = value
    else:
        s = str(value or "").strip()
        try:
            n = int(s)
        except ValueError:
            raise ValueError(f"Invalid priority '{s}' (expected an integer).") from None
    if not INT_MIN <= n <= INT_MAX:
        raise ValueError(f"Invalid priority {n} (out of range).")
    return n


def _storable_id(value: int) -> bool:
    return 0 < value <= INT_MAX


def clean_task_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate and convert raw form fields into column values.

    All task fields are required; an unchecked checkbox never reaches the
    form, so a missing in_backlog means False.
    """
    missing = [k for k in REQUIRED_TASK_FIELDS if _blank(fields.get(k))]
    if missing:
        raise ValueError(f"Required fields missing: {', '.join(missing)}.")
    return {
        "taskname": str(fields["taskname"]).strip(),
        "task_description": str(fields["task_description"]).strip(),
        "status": str(fields["status"]).strip(),
        "in_backlog": _parse_bool(fields.get("in_backlog", False)),
        "deadline": _parse_deadline(fields["deadline"]),
        "priority": _parse_priority(fields["priority"]),
    }


def task_form_values(task: Task) -> Dict[str, Any]:
    """Inverse of clean_task_fields, for pre-filling the edit form."""
    return {
        "taskname": task.taskname,
        "task_description": task.task_description,
        "status": task.status,
        "in_backlog": task.in_backlog,
        "deadline": task.deadline.strftime("%Y-%m-%dT%H:%M") if task.deadline else "",
        "priority": task.priority,
    }


# ------------------ Tasks ------------------


def list_tasks(db: Session, *, user_id: int) -> List[Task]:
    """Tasks of one user: active before backlog, then by priority and deadline."""
    stmt = (
        select(Task)
        .where(Task.user_id == user_id)
        .order_by(Task.in_backlog, Task.priority, Task.deadline, Task.id)
    )
    with store_errors("list_tasks"):
        return list(db.execute(stmt).scalars())


def get_task(db: Session, *, user_id: int, task_id: int) -> Task:
    if not _storable_id(task_id):
        raise TaskNotFound(f"Task {task_id} not found")
    with store_errors("get_task"):
        task = db.get(Task, task_id)
    if task is None or task.user_id != user_id:
        raise TaskNotFound(f"Task {task_id} not found")
    return task


def create_task(db: Session, *, user_id: int, fields: Mapping[str, Any]) -> Task:
    values = clean_task_fields(fields)
    task = Task(user_id=user_id, **values)
    with store_errors("create_task"):
        db.add(task)
        db.commit()
    logger.info("Created task id=%s user_id=%s", task.id, user_id)
    return task


def update_task(db: Session, *, user_id: int, task_id: int, fields: Mapping[str, Any]) -> Task:
    task = get_task(db, user_id=user_id, task_id=task_id)
    values = clean_task_fields(fields)
    for key, value in values.items():
        setattr(task, key, value)
    with store_errors("update_task"):
        db.commit()
    return task


def delete_task(db: Session, *, user_id: int, task_id: int) -> None:
    task = get_task(db, user_id=user_id, task_id=task_id)
    with store_errors("delete_task"):
        db.delete(task)
        db.commit()
    logger.info("Deleted task id=%s user_id=%s", task_id, user_id)


# ------------------ Notes ------------------


def _clean_note(text: Any) -> str:
    s = str(text or "").strip()
    if not s:
        raise ValueError("The note must not be empty.")
    return s


def get_note(db: Session, *, user_id: int, task_id: int, note_id: int) -> Note:
    task = get_task(db, user_id=user_id, task_id=task_id)
    if not _storable_id(note_id):
        raise TaskNotFound(f"Note {note_id} not found")
    with store_errors("get_note"):
        note = db.get(Note, note_id)
    if note is None or note.task_id != task.id:
        raise TaskNotFound(f"Note {note_id} not found")
    return note


def add_note(db: Session, *, user_id: int, task_id: int, text: str) -> Note:
    task = get_task(db, user_id=user_id, task_id=task_id)
    note = Note(task_id=task.id, note=_clean_note(text))
    with store_errors("add_note"):
        db.add(note)
        db.commit()
    return note


def update_note(db: Session, *, user_id: int, task_id: int, note_id: int, text: str) -> Note:
    note = get_note(db, user_id=user_id, task_id=task_id, note_id=note_id)
    note.note = _clean_note(text)
    with store_errors("update_note"):
        db.commit()
    return note


def delete_note(db: Session, *, user_id: int, task_id: int, note_id: int) -> None:
    note = get_note(db, user_id=user_id, task_id=task_id, note_id=note_id)
    with store_errors("delete_note"):
        db.delete(note)
        db.commit()
