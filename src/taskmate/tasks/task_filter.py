# src/taskmate/tasks/task_filter.py

from __future__ import annotations

"""
Filter engine.

Pure functions: (tasks, mode, now) -> ordered visible subset.
Never raises, never mutates the input, always returns a new list.
"""

from collections.abc import Iterable
from datetime import date, datetime

from ..core.models import FilterMode, Task


def _calendar_day(ts: datetime, now: datetime) -> date:
    # Aware timestamps are judged in the viewer's timezone; naive ones are taken as-is.
    if ts.tzinfo is not None and now.tzinfo is not None:
        try:
            ts = ts.astimezone(now.tzinfo)
        except (OverflowError, ValueError):
            pass
    return ts.date()


def is_overdue(task: Task, now: datetime) -> bool:
    if task.due_date is None or task.is_complete:
        return False
    return _calendar_day(task.due_date, now) < now.date()


def is_due_today(task: Task, now: datetime) -> bool:
    if task.due_date is None or task.is_complete:
        return False
    return _calendar_day(task.due_date, now) == now.date()


def filter_tasks(
    tasks: Iterable[Task],
    mode: FilterMode | str,
    now: datetime,
    *,
    viewer_id: str | None = None,
) -> list[Task]:
    """
    all           -> everything
    assignedToMe  -> assignee == viewer
    createdByMe   -> owner == viewer
    overdue       -> due calendar day before today, not complete
    dueToday      -> due calendar day is today, not complete

    Unknown modes behave like `all`.
    """
    if not isinstance(mode, FilterMode):
        mode = FilterMode.parse(mode)

    items = list(tasks)

    if mode == FilterMode.ASSIGNED_TO_ME:
        return [t for t in items if viewer_id is not None and t.assignee_id == viewer_id]
    if mode == FilterMode.CREATED_BY_ME:
        return [t for t in items if viewer_id is not None and t.owner_id == viewer_id]
    if mode == FilterMode.OVERDUE:
        return [t for t in items if is_overdue(t, now)]
    if mode == FilterMode.DUE_TODAY:
        return [t for t in items if is_due_today(t, now)]
    return items
