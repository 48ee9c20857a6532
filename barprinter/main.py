"""
Barprinter worker - main entry point.

Connects to the order store, starts the print worker and runs until SIGINT or
SIGTERM. The worker takes no command line flags; it is configured through
environment variables or a .env file.
"""

import asyncio
import signal
import sys
from typing import Optional

import structlog

from barprinter import __version__
from barprinter.database.firestore import FirestoreDatabase
from barprinter.database.repositories import FirestoreOrderRepository
from barprinter.utils.config import BarPrinterSettings, get_settings, validate_settings_on_startup
from barprinter.utils.errors import BarPrinterError, ConfigurationError
from barprinter.utils.logging_config import setup_logging
from barprinter.utils.metrics import start_metrics_server
from barprinter.worker import PrintWorker


def setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """Setup graceful shutdown signal handlers."""
    loop = asyncio.get_running_loop()
    logger = structlog.get_logger()

    def _request_stop(signum):
        logger.info("Received shutdown signal", signal=signum)
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _request_stop, signum)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(_request_stop, s))


async def run_worker(settings: Optional[BarPrinterSettings] = None,
                     stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the worker until the stop event is set."""
    settings = settings or get_settings()
    stop_event = stop_event or asyncio.Event()
    logger = structlog.get_logger()

    logger.info("=" * 60)
    logger.info("Starting barprinter worker", version=__version__, environment=settings.environment)
    logger.info("=" * 60)

    validation_result = validate_settings_on_startup(settings)
    for info_msg in validation_result["info"]:
        logger.info(info_msg)
    for warning_msg in validation_result["warnings"]:
        logger.warning(warning_msg)
    if not validation_result["valid"]:
        raise ConfigurationError(
            "Invalid worker configuration",
            details={"errors": validation_result["errors"]}
        )

    if settings.metrics_enabled:
        start_metrics_server(settings.metrics_port)

    database = FirestoreDatabase(settings.firebase_credentials_path, settings.firebase_project_id)
    await database.connect()

    repository = FirestoreOrderRepository(database.client, settings.orders_collection)
    worker = PrintWorker.from_settings(settings, repository)
    try:
        await worker.start()
        await stop_event.wait()
    finally:
        await worker.stop()
        await database.close()


async def _main_async() -> None:
    stop_event = asyncio.Event()
    setup_signal_handlers(stop_event)
    await run_worker(stop_event=stop_event)


def main() -> None:
    """Console entry point."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    logger = structlog.get_logger()

    try:
        asyncio.run(_main_async())
    except BarPrinterError as e:
        logger.error("Worker failed to start", **e.to_dict())
        sys.exit(1)


if __name__ == "__main__":
    main()
