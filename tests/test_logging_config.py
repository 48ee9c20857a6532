"""Tests for the logging setup."""
import logging

from barprinter.utils.logging_config import add_worker_name, setup_logging


def test_sdk_loggers_are_quieted_outside_debug():
    setup_logging("info")

    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger().level == logging.INFO


def test_debug_keeps_sdk_loggers_verbose():
    setup_logging("debug")

    assert logging.getLogger("google").level == logging.DEBUG
    setup_logging("info")


def test_log_file_is_created(tmp_path):
    log_file = tmp_path / "logs" / "worker.log"

    setup_logging("warning", str(log_file))
    logging.getLogger("barprinter").warning("printer missing")

    assert "printer missing" in log_file.read_text()
    setup_logging("info")


def test_events_are_tagged_with_worker_name():
    assert add_worker_name(None, "info", {"event": "x"})["worker"] == "barprinter-worker"
