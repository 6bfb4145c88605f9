# src/taskmate/tasks/assignment.py

from __future__ import annotations

"""
Assignment validator.

Wraps task creation and re-assignment:
- a write rejected because the assignee does not exist degrades to
  "no assignment" plus a warning instead of failing the operation,
- every other store failure is raised to the caller untouched,
- a qualifying assignment change dispatches exactly one notification.

Local state is only touched after the store acknowledged the write.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from ..core.errors import StoreError, StoreErrorKind, TaskValidationError
from ..core.models import TASKS_TABLE, Actor, Row, Task
from ..core.ports import NotificationSink, RemoteStore
from .task_sync import TaskSynchronizer

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 4

ASSIGNEE_NOT_FOUND_WARNING = "assignment removed — assignee not found"


@dataclass(slots=True, frozen=True)
class AssignmentResult:
    """
    Outcome of create_task / set_assignee.

    task:     the persisted row (None when set_assignee left the task unchanged)
    warning:  non-fatal message for the user, e.g. assignee not found
    notified: whether an assignment notification was actually created
    """

    task: Task | None
    warning: str | None = None
    notified: bool = False


def validate_description(description: str | None) -> str:
    text = (description or "").strip()
    if len(text) < MIN_DESCRIPTION_LENGTH:
        raise TaskValidationError(
            f"task description must be at least {MIN_DESCRIPTION_LENGTH} characters"
        )
    return text


def _clean_user_ref(user_id: str | None) -> str | None:
    if user_id is None:
        return None
    s = str(user_id).strip()
    return s or None


class AssignmentValidator:
    def __init__(
        self,
        store: RemoteStore,
        dispatcher: NotificationSink,
        synchronizer: TaskSynchronizer,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._sync = synchronizer

    async def create_task(
        self,
        description: str,
        assignee: str | None = None,
        due_date: datetime | None = None,
        *,
        actor: Actor,
    ) -> AssignmentResult:
        text = validate_description(description)
        assignee = _clean_user_ref(assignee)

        candidate: Row = {
            "task": text,
            "user_id": actor.id,
            "created_by": actor.id,
            "assigned_to": assignee,
            "due_date": due_date,
            "is_complete": False,
        }

        warning: str | None = None
        try:
            row = await self._store.insert(TASKS_TABLE, candidate)
        except StoreError as e:
            if assignee is None or e.kind != StoreErrorKind.REFERENTIAL_INTEGRITY:
                logger.warning("create_task failed actor=%s kind=%s: %s", actor.id, e.kind.value, e)
                raise
            logger.warning("Assignee %s not found; creating task without assignment", assignee)
            row = await self._store.insert(TASKS_TABLE, {**candidate, "assigned_to": None})
            warning = ASSIGNEE_NOT_FOUND_WARNING

        task = Task.from_row(row)
        self._sync.upsert_local(task)
        logger.info("Task %s created by %s assignee=%s", task.id, actor.id, task.assignee_id)

        notified = False
        if task.assignee_id is not None and task.assignee_id != actor.id:
            notified = await self._notify(task, task.assignee_id, actor)

        return AssignmentResult(task=task, warning=warning, notified=notified)

    async def set_assignee(
        self,
        task_id: int,
        assignee: str | None,
        *,
        actor: Actor,
    ) -> AssignmentResult:
        assignee = _clean_user_ref(assignee)
        previous = await self._current_assignee(task_id)

        try:
            rows = await self._store.update(
                TASKS_TABLE,
                {"assigned_to": assignee},
                match_all={"id": task_id},
            )
        except StoreError as e:
            if e.kind == StoreErrorKind.REFERENTIAL_INTEGRITY:
                logger.warning("Could not assign task %s: user %s not found", task_id, assignee)
                return AssignmentResult(task=None, warning=ASSIGNEE_NOT_FOUND_WARNING)
            logger.warning("set_assignee failed task_id=%s kind=%s: %s", task_id, e.kind.value, e)
            raise

        if not rows:
            raise StoreError(f"task {task_id} not found", kind=StoreErrorKind.NOT_FOUND)

        task = Task.from_row(rows[0])
        self._sync.upsert_local(task)
        logger.info("Task %s assignee %s -> %s by %s", task.id, previous, task.assignee_id, actor.id)

        notified = False
        if (
            task.assignee_id is not None
            and task.assignee_id != actor.id
            and task.assignee_id != previous
        ):
            notified = await self._notify(task, task.assignee_id, actor)

        return AssignmentResult(task=task, notified=notified)

    async def _current_assignee(self, task_id: int) -> str | None:
        local = self._sync.get(task_id)
        if local is not None:
            return local.assignee_id
        rows = await self._store.select(TASKS_TABLE, match_all={"id": task_id}, limit=1)
        if not rows:
            raise StoreError(f"task {task_id} not found", kind=StoreErrorKind.NOT_FOUND)
        return Task.from_row(rows[0]).assignee_id

    async def _notify(self, task: Task, recipient: str, actor: Actor) -> bool:
        try:
            note = await self._dispatcher.notify_assignment(task.id, recipient, task.title, actor.label)
        except Exception:
            # The task write already succeeded; dispatch problems never undo it.
            logger.exception("Notification dispatch crashed task_id=%s", task.id)
            return False
        return note is not None
