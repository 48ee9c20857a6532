"""
Print worker wiring.

Builds the services of the backend worker and runs their startup sequence:

    1. probe for the printer
    2. reconcile pending orders if a printer is available
    3. listen for newly created orders
    4. watch USB hotplug events; an attach that yields a printer triggers
       another reconciliation pass

Stopping cancels the listeners first and then waits for print jobs that are
already running, so a printed ticket is never left without its done status.
"""
from typing import Any, Dict

import structlog

from barprinter.config.constants import HotplugConstants, OrderConstants, ReceiptConstants
from barprinter.database.repositories.base_repository import BaseRepository
from barprinter.printers.base import PrinterDriver
from barprinter.printers.escpos_usb import EscposUsbDriver
from barprinter.services.discovery_service import DiscoveryService
from barprinter.services.hotplug_service import HotplugService
from barprinter.services.order_listener_service import OrderListenerService
from barprinter.services.order_service import OrderService
from barprinter.services.print_job_service import PrintJobService
from barprinter.services.printer_session_service import PrinterSessionService
from barprinter.utils.config import BarPrinterSettings

logger = structlog.get_logger()


class PrintWorker:
    """
    Backend worker printing drink orders.

    Example:
        >>> worker = PrintWorker.from_settings(settings, repository)
        >>> await worker.start()
        >>> ...
        >>> await worker.stop()
    """

    def __init__(
        self,
        repository: BaseRepository,
        discovery: DiscoveryService,
        driver: PrinterDriver,
        settle_delay: float = HotplugConstants.ATTACH_SETTLE_DELAY,
        poll_interval: float = HotplugConstants.POLL_INTERVAL,
        client_placeholder: str = ReceiptConstants.CLIENT_PLACEHOLDER,
        retry_interval: float = OrderConstants.UNRECORDED_RETRY_INTERVAL
    ):
        self.repository = repository
        self.discovery = discovery
        self.hotplug = HotplugService(discovery, poll_interval=poll_interval)
        self.sessions = PrinterSessionService(discovery, settle_delay=settle_delay)
        self.print_jobs = PrintJobService(self.sessions, driver, client_placeholder=client_placeholder)
        self.orders = OrderService(repository, self.print_jobs, retry_interval=retry_interval)
        self.listener = OrderListenerService(repository, self.orders)
        self._running = False

    @classmethod
    def from_settings(cls, settings: BarPrinterSettings, repository: BaseRepository) -> "PrintWorker":
        """Build a worker with the USB discovery and ESC/POS driver from settings."""
        return cls(
            repository=repository,
            discovery=DiscoveryService(vendor_id=settings.vendor_id, product_id=settings.product_id),
            driver=EscposUsbDriver(profile=settings.printer_profile),
            settle_delay=settings.attach_settle_delay,
            poll_interval=settings.hotplug_poll_interval,
            client_placeholder=settings.client_placeholder,
            retry_interval=settings.unrecorded_retry_interval,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the startup sequence."""
        if self._running:
            logger.warning("Print worker already running")
            return
        self._running = True
        logger.info("Starting print worker")

        await self.orders.initialize()
        await self.sessions.initialize()
        self.sessions.add_ready_callback(self.orders.reconcile_after_attach)

        if self.sessions.is_available:
            await self.orders.reconcile_pending()
        else:
            logger.warning("No printer at startup, pending orders wait for one to be attached")

        await self.listener.initialize()

        subscription = self.hotplug.subscribe()
        await self.hotplug.initialize()
        self.sessions.start(subscription)

        logger.info("Print worker started", **self.status())

    async def stop(self) -> None:
        """Stop every service. Safe to call more than once."""
        if not self._running:
            return
        self._running = False
        logger.info("Stopping print worker", **self.status())

        await self.hotplug.shutdown()
        await self.listener.shutdown()
        await self.sessions.shutdown()
        # Lets a ticket already being printed reach its done status
        await self.orders.shutdown()
        logger.info("Print worker stopped")

    def status(self) -> Dict[str, Any]:
        """Snapshot of the worker state for diagnostics."""
        summary = self.orders.last_summary
        return {
            "running": self._running,
            "printer": self.sessions.status(),
            "print_job_in_flight": self.print_jobs.busy,
            "orders_received": self.listener.orders_seen,
            "reconciliation_passes": self.orders.reconciliation_count,
            "last_reconciliation": summary.to_dict() if summary else None,
            "unrecorded_orders": sorted(self.orders.unrecorded_orders()),
        }
