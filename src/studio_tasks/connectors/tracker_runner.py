# src/studio_tasks/connectors/tracker_runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from ..core.state import AppState
from ..tasks.task_api import initialize_tasks

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_tracker(state: AppState, stop_event: asyncio.Event) -> None:
    try:
        await initialize_tasks(state)
    except Exception:
        logger.exception("Task initialization failed; starting with the current set.")

    state.poller.start()
    try:
        await stop_event.wait()
    finally:
        await state.poller.stop()
        with contextlib.suppress(Exception):
            await state.api.aclose()


@dataclass
class TrackerBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal tracker stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_tracker_in_background(state: AppState) -> TrackerBackgroundRunner | None:
    """
    Start startup sync + poller in a background thread with its own event loop.

    The console REPL is blocking (input()), so the async side lives here;
    commands reach it through run_on_tracker_loop().
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_tracker(state, stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="task-tracker", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Tracker thread did not initialize properly.")
        return None

    state.loop = loop
    logger.info("Tracker background thread started.")
    return TrackerBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)


def run_on_tracker_loop(
    state: AppState,
    coro: Coroutine[Any, Any, T],
    *,
    timeout: float | None = 60.0,
) -> T:
    """Run a coroutine from a synchronous caller (console thread)."""
    loop = state.loop
    if loop is None or loop.is_closed():
        return asyncio.run(coro)
    return asyncio.run_coroutine_threadsafe(coro, loop).result(timeout=timeout)
