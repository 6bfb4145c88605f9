# src/taskmate/notifications/dispatcher.py

from __future__ import annotations

import logging

from ..core.models import NOTIFICATIONS_TABLE, Notification
from ..core.ports import RemoteStore

logger = logging.getLogger(__name__)


def assignment_message(actor_label: str, task_title: str) -> str:
    actor = (actor_label or "").strip() or "A user"
    title = (task_title or "").strip() or "Untitled task"
    return f'{actor} assigned you a task: "{title}"'


class NotificationDispatcher:
    """
    Emits assignment notifications into the store.

    Fire-and-forget from the caller's point of view: a failed insert is
    logged and reported as None, never raised and never retried.
    """

    def __init__(self, store: RemoteStore) -> None:
        self._store = store

    async def notify_assignment(
        self,
        task_id: int,
        recipient: str,
        task_title: str,
        actor_label: str,
    ) -> Notification | None:
        row = {
            "user_id": recipient,
            "task_id": int(task_id),
            "message": assignment_message(actor_label, task_title),
            "is_read": False,
        }
        try:
            created = await self._store.insert(NOTIFICATIONS_TABLE, row)
        except Exception:
            logger.exception("Error creating notification task_id=%s recipient=%s", task_id, recipient)
            return None

        note = Notification.from_row(created)
        logger.info("Notification %s sent to %s for task %s", note.id, recipient, task_id)
        return note
