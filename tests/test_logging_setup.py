# tests/test_logging_setup.py

from __future__ import annotations

import logging

from studio_tasks.logging_setup import _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_keeps_app_logs_and_quiets_the_rest() -> None:
    f = _ConsoleNoiseFilter()

    assert f.filter(_record("studio_tasks.tasks.task_store", logging.INFO))
    assert not f.filter(_record("studio_tasks.tasks.task_scheduler", logging.INFO))
    assert f.filter(_record("studio_tasks.tasks.task_scheduler", logging.WARNING))
    assert not f.filter(_record("httpx", logging.WARNING))
    assert f.filter(_record("httpx", logging.ERROR))
    assert not f.filter(_record("py.warnings", logging.WARNING))


def test_specific_prefix_wins_over_package_root() -> None:
    f = _ConsoleNoiseFilter({"studio_tasks": logging.NOTSET, "studio_tasks.api": logging.ERROR})

    assert f.filter(_record("studio_tasks.tasks.reconciler", logging.DEBUG))
    assert not f.filter(_record("studio_tasks.api.client", logging.WARNING))
    assert not f.filter(_record("studio_tasks_other", logging.WARNING))


def test_setup_logging_writes_app_records_to_file(tmp_path) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        log_file = setup_logging(log_dir=tmp_path / "logs")
        logging.getLogger("studio_tasks.tasks.task_scheduler").debug("cycle done")
        for handler in root.handlers:
            handler.flush()

        assert log_file == tmp_path / "logs" / "studio_tasks.log"
        assert "cycle done" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
        logging.captureWarnings(False)
