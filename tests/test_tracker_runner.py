# tests/test_tracker_runner.py

from __future__ import annotations

from studio_tasks.api.models import JobInfo
from studio_tasks.connectors.tracker_runner import run_on_tracker_loop, start_tracker_in_background
from studio_tasks.tasks.task_api import add_submitted_task
from studio_tasks.tasks.task_models import TaskStatus, TaskType


def test_tracker_thread_serves_console_calls(state, client) -> None:
    task_id = add_submitted_task(state, task_type=TaskType.TEXT_TO_MESH, name="Chair", job_id="j1")
    client.statuses["j1"] = JobInfo(job_id="j1", status=TaskStatus.FAILED)

    runner = start_tracker_in_background(state)
    assert runner is not None
    try:
        assert state.loop is runner.loop
        run_on_tracker_loop(state, state.poller.poll_all_active_tasks(), timeout=5.0)
    finally:
        runner.stop()
        runner.join(timeout=5.0)

    assert not runner.thread.is_alive()
    assert state.task_store.failed == [task_id]
    assert client.history_calls, "startup sync should query remote history"
    assert not state.poller.is_running


def test_run_on_tracker_loop_without_thread_runs_inline(state) -> None:
    async def answer() -> int:
        return 42

    assert state.loop is None
    assert run_on_tracker_loop(state, answer()) == 42
