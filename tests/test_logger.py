"""Tests for log file rotation and logger naming."""

import logging

from services.logger import ROOT_LOGGER_NAME, RECENT_SUFFIX, get_logger, setup_logging


def test_setup_logging_archives_previous_run(tmp_path):
    """The previous run's recent log is renamed before a new one is opened."""
    previous = tmp_path / f"etl-monitor_20240101_000000{RECENT_SUFFIX}.log"
    previous.write_text("old run\n", encoding="utf-8")

    root = setup_logging(tmp_path, level="debug")
    try:
        assert root.level == logging.DEBUG
        assert (tmp_path / "etl-monitor_20240101_000000.log").exists()
        recent = list(tmp_path.glob(f"*{RECENT_SUFFIX}.log"))
        assert len(recent) == 1
        assert recent[0] != previous
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()


def test_get_logger_uses_namespace():
    assert get_logger("history").name == f"{ROOT_LOGGER_NAME}.history"
    assert get_logger().name == ROOT_LOGGER_NAME
