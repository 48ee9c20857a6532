"""
Logging configuration for the barprinter worker.

Every module logs through ``structlog.get_logger()`` with key/value context
(order_id, printer, outcome). Output is one JSON object per line for the
service journal; at debug level a console renderer is used instead so the
worker can be followed by eye while standing at the bar.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

WORKER_NAME = "barprinter-worker"

# SDK loggers that flood the journal with connection chatter at info level
NOISY_LOGGERS = ("google", "grpc", "urllib3", "usb", "escpos")


def add_worker_name(logger, method_name, event_dict):
    """Tag every event so journal lines can be filtered by worker."""
    event_dict.setdefault("worker", WORKER_NAME)
    return event_dict


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None):
    """Configure stdlib logging and structlog for the worker.

    Args:
        log_level: debug, info, warning, error or critical (default info)
        log_file: Optional file receiving the same lines as stdout
    """
    level_name = (log_level or "info").upper()
    level = getattr(logging, level_name, logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)

    sdk_level = level if level_name == "DEBUG" else max(level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)

    if level_name == "DEBUG":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_worker_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
