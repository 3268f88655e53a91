# src/studio_tasks/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from typing import cast

from ..connectors.tracker_runner import run_on_tracker_loop
from ..core.state import AppState
from ..tasks.task_api import (
    clear_completed_tasks,
    clear_failed_tasks,
    load_tasks_from_history,
    logout,
    remove_task,
    retry_task,
    switch_user,
)
from ..tasks.task_models import Task

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

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

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
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

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def format_task(task: Task) -> str:
    line = f"{task.id}  {task.status.value:<10} {task.progress:>3}%  {task.name}"
    if task.job_id:
        line += f"  [job {task.job_id}]"
    if task.error:
        line += f"  error: {task.error}"
    elif task.result is not None and task.result.download_url:
        line += f"  -> {task.result.download_url}"
    return line


def _emit(emit: CommandEmitter | None, text: str) -> None:
    if emit:
        with contextlib.suppress(Exception):
            emit(text)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    store = state.task_store
    owner = state.owner_identity or "(anonymous)"
    last_sync = state.persister.cache.last_sync_time()
    return (
        "Status:\n"
        f"  API: {state.api.base_url}\n"
        f"  Owner: {owner}\n"
        f"  Tasks: {len(store.tasks)} "
        f"(active {len(store.active)}, completed {len(store.completed)}, failed {len(store.failed)})\n"
        f"  Poller: {'running' if state.poller.is_running else 'stopped'}\n"
        f"  Last sync: {last_sync.isoformat() if last_sync else 'never'}"
    )


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks            -> all tasks (newest first)
    /tasks active     -> queued/processing
    /tasks completed  -> completed
    /tasks failed     -> failed
    """
    store = state.task_store
    if not args:
        tasks = store.tasks
    else:
        kind = args[0].lower()
        if kind == "active":
            ids = store.active
        elif kind == "completed":
            ids = store.completed
        elif kind == "failed":
            ids = store.failed
        else:
            return "Usage: /tasks [active|completed|failed]"
        tasks = [t for t in (store.get(i) for i in ids) if t is not None]

    if not tasks:
        return "No tasks."
    return "\n".join(format_task(t) for t in tasks)


def cmd_sync(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _emit(emit, "[SYNC] Merging with remote history...")
    merged = run_on_tracker_loop(state, load_tasks_from_history(state))
    return f"Synced. {len(merged)} tasks."


def cmd_poll(state: AppState, args: list[str]) -> str:
    n = run_on_tracker_loop(state, state.poller.poll_all_active_tasks())
    if n == 0 and state.poller.is_polling:
        return "A poll cycle is already running."
    return f"Polled {n} active tasks."


def cmd_retry(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /retry <task_id> [job_id]"
    job_id = args[1] if len(args) > 1 else None
    task = retry_task(state, args[0], job_id=job_id)
    if task is None:
        return f"No task with id {args[0]}."
    return f"Queued again: {format_task(task)}"


def cmd_remove(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /remove <task_id>"
    if state.task_store.get(args[0]) is None:
        return f"No task with id {args[0]}."
    remove_task(state, args[0])
    return f"Removed {args[0]}."


def cmd_clear(state: AppState, args: list[str]) -> str:
    kind = args[0].lower() if args else ""
    if kind == "completed":
        return f"Cleared {clear_completed_tasks(state)} completed tasks."
    if kind == "failed":
        return f"Cleared {clear_failed_tasks(state)} failed tasks."
    return "Usage: /clear completed | /clear failed"


def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /login <token> <user_id>"
    token, user_id = args[0], args[1]
    _emit(emit, f"[AUTH] Switching to {user_id}...")
    merged = run_on_tracker_loop(state, switch_user(state, token, {"id": user_id}))
    return f"Signed in as {user_id}. {len(merged)} tasks."


def cmd_logout(state: AppState, args: list[str]) -> str:
    if not state.auth.is_authenticated():
        return "Not signed in."
    merged = run_on_tracker_loop(state, logout(state))
    return f"Signed out. {len(merged)} tasks."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show API, owner, task counts and poller state.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [active|completed|failed].", aliases=["ls"])
registry.register("sync", cmd_sync, help_text="Merge local tasks with remote job history.")
registry.register("poll", cmd_poll, help_text="Run one poll cycle now.")
registry.register("retry", cmd_retry, help_text="Queue a task again: /retry <task_id> [job_id].")
registry.register("remove", cmd_remove, help_text="Delete a task: /remove <task_id>.", aliases=["rm"])
registry.register("clear", cmd_clear, help_text="Bulk delete: /clear completed | /clear failed.")
registry.register("login", cmd_login, help_text="Switch identity: /login <token> <user_id>.")
registry.register("logout", cmd_logout, help_text="Forget the signed-in identity.")
