# src/taskmate/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from ..core.models import FilterMode, Task
from ..core.state import AppState
from ..storage.directory import display_label, find_user, load_assignment_candidates
from ..tasks.task_board import TaskBoard
from ..tasks.task_filter import is_due_today, is_overdue
from .bootstrap import refresh_users, start_session

CommandHandler = Callable[[AppState, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return await handler(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----

def _now() -> datetime:
    return datetime.now().astimezone()


def _board(state: AppState) -> TaskBoard:
    if state.board is None:
        raise RuntimeError("No active session. Use /login <email>.")
    return state.board


def _parse_id(raw: str) -> int:
    try:
        return int(raw.lstrip("#"))
    except ValueError:
        raise ValueError(f"Not a task id: {raw}") from None


def parse_due(raw: str) -> datetime | None:
    """YYYY-MM-DD (local midnight) or '-' to clear."""
    s = raw.strip()
    if s in ("-", "none", "clear"):
        return None
    try:
        return datetime.strptime(s, "%Y-%m-%d").astimezone()
    except ValueError:
        raise ValueError(f"Bad date (expected YYYY-MM-DD): {raw}") from None


def _resolve_assignee(state: AppState, ref: str) -> str | None:
    """'-' clears; known id/email resolves; anything else is passed through as-is."""
    ref = ref.lstrip("@")
    if ref in ("-", "none", ""):
        return None
    user = find_user(state.users, ref)
    return user.id if user is not None else ref


def format_task(task: Task, state: AppState, now: datetime) -> str:
    box = "[x]" if task.is_complete else "[ ]"
    tags: list[str] = []

    if state.actor is not None and task.creator_id != state.actor.id:
        tags.append(f"by {display_label(find_user(state.users, task.creator_id), task.creator_id)}")
    if task.assignee_id:
        tags.append(f"-> {display_label(find_user(state.users, task.assignee_id), task.assignee_id)}")
    if task.due_date is not None:
        marker = " OVERDUE" if is_overdue(task, now) else " TODAY" if is_due_today(task, now) else ""
        tags.append(f"due {task.due_date.astimezone().strftime('%Y-%m-%d')}{marker}")

    suffix = f"  ({', '.join(tags)})" if tags else ""
    return f"#{task.id} {box} {task.description}{suffix}"


def _with_warning(text: str, warning: str | None) -> str:
    return f"{text}\n  warning: {warning}" if warning else text


# ---- commands ----

async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_whoami(state: AppState, args: list[str]) -> str:
    if state.actor is None:
        return "Not logged in."
    return f"You are {state.actor.label} ({state.actor.id})."


async def cmd_login(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /login <email> [name]"
    actor = await start_session(state, args[0], " ".join(args[1:]) or None)
    board = _board(state)
    return f"Logged in as {actor.label}. {len(board.tasks)} task(s), {board.notifications.unread_count} unread."


async def cmd_users(state: AppState, args: list[str]) -> str:
    if state.actor is None:
        return "Not logged in."
    candidates = await load_assignment_candidates(state.store, state.actor.id)
    if not candidates:
        return "No users available for assignment."
    lines = ["Users you can assign to:"]
    for u in candidates:
        name = f" ({u.name})" if u.name else ""
        lines.append(f"  {u.email}{name}")
    return "\n".join(lines)


async def cmd_useradd(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /useradd <email> [name]"
    user = await state.store.add_user(args[0], " ".join(args[1:]) or None)
    await refresh_users(state)
    return f"User {user.email} added."


async def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <text...> [@user] [due:YYYY-MM-DD]
    """
    board = _board(state)
    words: list[str] = []
    assignee: str | None = None
    due: datetime | None = None

    for a in args:
        if a.startswith("@") and len(a) > 1:
            assignee = _resolve_assignee(state, a)
        elif a.lower().startswith("due:"):
            due = parse_due(a[4:])
        else:
            words.append(a)

    result = await board.create_task(" ".join(words), assignee, due)
    if result.task is None:
        return _with_warning("Task not created.", result.warning)
    text = f"Added {format_task(result.task, state, _now())}"
    if result.notified:
        text += "\n  assignee notified"
    return _with_warning(text, result.warning)


async def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list [mode] [refresh]
    "refresh" reloads the snapshot first, picking up tasks reassigned to you.
    """
    board = _board(state)
    modes = [a for a in args if a.lower() != "refresh"]
    if len(modes) != len(args):
        await board.reload()
    if modes:
        state.filter_mode = FilterMode.parse(modes[0])
    now = _now()
    tasks = board.visible(state.filter_mode, now)
    header = f"Tasks [{state.filter_mode.value}]:"
    if not tasks:
        hint = " Try changing the filter or" if state.filter_mode != FilterMode.ALL else ""
        return f"{header}\n  No tasks found.{hint} Add a new task with /add."
    return "\n".join([header] + [f"  {format_task(t, state, now)}" for t in tasks])


async def cmd_assign(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /assign <id> <email|->"
    board = _board(state)
    task_id = _parse_id(args[0])
    result = await board.set_assignee(task_id, _resolve_assignee(state, args[1]))
    if result.task is None:
        return _with_warning(f"Task #{task_id} unchanged.", result.warning)
    text = f"Updated {format_task(result.task, state, _now())}"
    if result.notified:
        text += "\n  assignee notified"
    return text


async def cmd_due(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /due <id> <YYYY-MM-DD|->"
    task = await _board(state).set_due_date(_parse_id(args[0]), parse_due(args[1]))
    return f"Updated {format_task(task, state, _now())}"


async def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <id>"
    task = await _board(state).toggle_complete(_parse_id(args[0]))
    return f"Updated {format_task(task, state, _now())}"


async def cmd_del(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /del <id>"
    task_id = _parse_id(args[0])
    await _board(state).delete_task(task_id)
    return f"Task #{task_id} deleted."


async def cmd_notes(state: AppState, args: list[str]) -> str:
    feed = _board(state).notifications
    notes = feed.notifications
    if not notes:
        return "No notifications."
    lines = [f"Notifications ({feed.unread_count} unread):"]
    for n in notes:
        flag = "*" if not n.is_read else " "
        when = n.created_at.astimezone().strftime("%Y-%m-%d %H:%M") if n.created_at else "?"
        lines.append(f" {flag} {n.id}: {n.message}  [{when}]")
    return "\n".join(lines)


async def cmd_read(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /read <id|all>"
    feed = _board(state).notifications
    if args[0].lower() == "all":
        await feed.mark_all_read()
        return "All notifications marked as read."
    await feed.mark_read(_parse_id(args[0]))
    return f"Notification {args[0]} marked as read. {feed.unread_count} unread."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("whoami", cmd_whoami, help_text="Show the acting user.")
registry.register("login", cmd_login, help_text="Switch user: /login <email> [name].")
registry.register("users", cmd_users, help_text="List users you can assign tasks to.")
registry.register("useradd", cmd_useradd, help_text="Register a user: /useradd <email> [name].")
registry.register(
    "add", cmd_add, help_text="Add a task: /add <text> [@email] [due:YYYY-MM-DD].", aliases=["new"]
)
registry.register(
    "list",
    cmd_list,
    help_text="List tasks: /list [all|assignedToMe|createdByMe|overdue|dueToday] [refresh].",
    aliases=["ls"],
)
registry.register("assign", cmd_assign, help_text="Reassign: /assign <id> <email|->.")
registry.register("due", cmd_due, help_text="Set due date: /due <id> <YYYY-MM-DD|->.")
registry.register("done", cmd_done, help_text="Toggle completion: /done <id>.")
registry.register("del", cmd_del, help_text="Delete a task you created: /del <id>.", aliases=["rm"])
registry.register("notes", cmd_notes, help_text="Show your notifications.", aliases=["inbox"])
registry.register("read", cmd_read, help_text="Mark read: /read <id|all>.")
