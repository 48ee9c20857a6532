"""
Print job service.

Prints one drink ticket per call: opens a fresh session against the current
printer, renders the ticket and closes the session. A job only counts as
printed once the session closed cleanly. There is no retry here; callers
decide what to do with a failed result. A hardware error drops the cached
printer handle so the next job probes for the printer again.
"""
import asyncio

import structlog

from barprinter.config.constants import ReceiptConstants
from barprinter.models.printer import DeviceHandle, PrintResult
from barprinter.printers.base import PrinterDriver
from barprinter.printers.receipt import render_order_ticket
from barprinter.services.printer_session_service import PrinterSessionService
from barprinter.utils.errors import BarPrinterError, NoPrinterFoundError
from barprinter.utils.metrics import PRINT_JOBS

logger = structlog.get_logger()


def _describe(error: Exception) -> str:
    if isinstance(error, BarPrinterError):
        return error.message
    return str(error) or type(error).__name__


class PrintJobService:
    """
    Executes print jobs one at a time.

    One physical printer cannot interleave jobs, so every job holds a
    process-wide lock from open to close.
    """

    def __init__(
        self,
        session_service: PrinterSessionService,
        driver: PrinterDriver,
        client_placeholder: str = ReceiptConstants.CLIENT_PLACEHOLDER
    ):
        """
        Initialize print job service.

        Args:
            session_service: Source of the current printer handle
            driver: Driver opening printer sessions
            client_placeholder: Label printed when the client name is empty
        """
        self.session_service = session_service
        self.driver = driver
        self.client_placeholder = client_placeholder
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """Check if a job is in flight."""
        return self._lock.locked()

    async def print_order(self, drink: str, client_name: str) -> PrintResult:
        """
        Print one drink ticket.

        Args:
            drink: Drink name (ticket title)
            client_name: Client name printed under the title

        Returns:
            PrintResult with outcome success, printer_unavailable or hardware_error
        """
        async with self._lock:
            result = await self._run_job(drink, client_name)

        PRINT_JOBS.labels(outcome=result.outcome.value).inc()
        return result

    async def _run_job(self, drink: str, client_name: str) -> PrintResult:
        handle = self.session_service.current_handle
        if handle is None:
            # Printer may have been connected without a hotplug event
            handle = await self.session_service.ensure_printer(force=True)
        if handle is None:
            error = NoPrinterFoundError(details={"drink": drink})
            logger.warning("No printer available for ticket", drink=drink, error_code=error.error_code)
            return PrintResult.unavailable(error.message)

        try:
            connection = await asyncio.to_thread(self.driver.open, handle)
        except Exception as e:
            logger.error("Failed to open printer session",
                         printer=handle.label, error=_describe(e))
            return self._hardware_error(handle, e)

        write_error = None
        try:
            await asyncio.to_thread(
                render_order_ticket, connection, drink, client_name, self.client_placeholder
            )
        except Exception as e:
            write_error = e
            logger.error("Failed to write ticket", printer=handle.label, error=_describe(e))

        try:
            await asyncio.to_thread(connection.close)
        except Exception as e:
            logger.error("Failed to close printer session",
                         printer=handle.label, error=_describe(e))
            if write_error is None:
                return self._hardware_error(handle, e)

        if write_error is not None:
            return self._hardware_error(handle, write_error)

        logger.info("Ticket printed", printer=handle.label, drink=drink)
        return PrintResult.success(handle)

    def _hardware_error(self, handle: DeviceHandle, error: Exception) -> PrintResult:
        # The device may be gone or re-enumerated at another address
        self.session_service.invalidate(handle)
        return PrintResult.hardware_error(handle, _describe(error))
