"""
Order service: print-then-finalize path and pending order reconciliation.

Finalize policy:
    - print succeeded: set status ``done`` and ``processedAt``
    - print failed: leave the order ``pending`` so the next reconciliation
      pass (or a later trigger) retries it
    - print succeeded but the status write failed: the order is remembered as
      printed-but-unrecorded; later triggers and a periodic retry loop retry
      only the status write and never print it again

Orders are processed strictly one at a time per call site, and the print job
service serialises jobs across call sites.
"""
import asyncio
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import structlog

from barprinter.config.constants import OrderConstants
from barprinter.database.repositories.base_repository import BaseRepository
from barprinter.models.order import Order
from barprinter.models.printer import DeviceHandle
from barprinter.services.base_service import BaseService
from barprinter.services.print_job_service import PrintJobService
from barprinter.utils.metrics import ORDERS_FINALIZED, RECONCILIATION_PASSES

logger = structlog.get_logger()


def epoch_millis() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class ProcessOutcome(str, Enum):
    """Result of running one order through the finalize path."""
    PRINTED = "printed"
    RECORDED = "recorded"
    NOT_RECORDED = "not_recorded"
    PRINT_FAILED = "print_failed"
    SKIPPED = "skipped"


@dataclass
class ReconciliationSummary:
    """Counters for one reconciliation pass."""
    started_at: int
    total: int = 0
    printed: int = 0
    recorded: int = 0
    skipped: int = 0
    failed: int = 0
    store_errors: int = 0
    query_error: Optional[str] = None

    def count(self, outcome: ProcessOutcome) -> None:
        if outcome == ProcessOutcome.PRINTED:
            self.printed += 1
        elif outcome == ProcessOutcome.RECORDED:
            self.recorded += 1
        elif outcome == ProcessOutcome.NOT_RECORDED:
            self.store_errors += 1
        elif outcome == ProcessOutcome.PRINT_FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class OrderService(BaseService):
    """
    Service feeding orders through the printer and finalizing them.

    Each print-and-finalize job runs in its own task shielded from the caller,
    so cancelling a listener or settle task never abandons a printed ticket
    before its done status is written. ``shutdown`` waits for those jobs.

    Example:
        >>> orders = OrderService(repository, print_jobs)
        >>> await orders.initialize()
        >>> summary = await orders.reconcile_pending()
        >>> print(f"{summary.printed}/{summary.total} printed")
    """

    def __init__(
        self,
        repository: BaseRepository,
        print_job_service: PrintJobService,
        clock: Callable[[], int] = epoch_millis,
        ledger_size: int = OrderConstants.PRINTED_LEDGER_SIZE,
        retry_interval: float = OrderConstants.UNRECORDED_RETRY_INTERVAL
    ):
        """
        Initialize order service.

        Args:
            repository: Order store
            print_job_service: Service printing the tickets
            clock: Source of epoch-millisecond timestamps for processedAt
            ledger_size: Number of printed order ids remembered
            retry_interval: Seconds between status write retries for printed
                but unrecorded orders (0 disables the retry loop)
        """
        super().__init__()
        self.repository = repository
        self.print_job_service = print_job_service
        self.clock = clock
        self.ledger_size = ledger_size
        self.retry_interval = retry_interval

        self._in_flight: Set[str] = set()
        self._jobs: Set[asyncio.Task] = set()
        # order id -> True once the done status is stored, False while only printed
        self._printed: "OrderedDict[str, bool]" = OrderedDict()
        self._reconcile_lock = asyncio.Lock()
        self._rerun_requested = False

        self.reconciliation_count = 0
        self.last_summary: Optional[ReconciliationSummary] = None

    async def initialize(self) -> None:
        """Start the retry loop for printed but unrecorded orders."""
        if self._initialized:
            return
        await super().initialize()
        if self.retry_interval > 0:
            self._spawn(self._retry_loop(), name="unrecorded-retry")

    async def shutdown(self) -> None:
        """Stop the retry loop, then wait for running print jobs to finish."""
        await super().shutdown()
        await self.drain()

    async def drain(self) -> None:
        """Wait until no print-and-finalize job is running."""
        while self._jobs:
            logger.info("Waiting for running print jobs", jobs=len(self._jobs))
            await asyncio.gather(*list(self._jobs), return_exceptions=True)

    def _start_job(self, order_id: str, coro: Awaitable[ProcessOutcome]) -> asyncio.Task:
        self._in_flight.add(order_id)
        job = asyncio.ensure_future(coro)
        job.set_name(f"order-{order_id}")
        self._jobs.add(job)

        def _done(task: asyncio.Task) -> None:
            self._jobs.discard(task)
            self._in_flight.discard(order_id)
            if not task.cancelled() and task.exception() is not None:
                logger.error("Order job crashed", order_id=order_id, error=str(task.exception()))

        job.add_done_callback(_done)
        return job

    async def process_order(self, order: Order) -> ProcessOutcome:
        """
        Print an order and finalize it on success.

        Never raises for print or store failures; the outcome tells what happened.
        Cancelling the caller does not interrupt the job.
        """
        log = logger.bind(order_id=order.id, drink=order.drink)

        if not order.is_pending:
            log.debug("Ignoring order that is not pending", status=order.status.value)
            return ProcessOutcome.SKIPPED
        if order.id in self._in_flight:
            log.debug("Order already being processed")
            return ProcessOutcome.SKIPPED

        recorded = self._printed.get(order.id)
        if recorded:
            log.debug("Order already printed and finalized")
            return ProcessOutcome.SKIPPED

        if recorded is False:
            log.info("Retrying status update for already printed order")
            job = self._start_job(order.id, self._record(order.id))
        else:
            job = self._start_job(order.id, self._print_and_finalize(order, log))
        return await asyncio.shield(job)

    async def _print_and_finalize(self, order: Order, log) -> ProcessOutcome:
        log.info("Printing order", client_name=order.client_name)
        result = await self.print_job_service.print_order(order.drink, order.client_name)
        if not result.ok:
            log.warning("Print failed, order stays pending",
                        outcome=result.outcome.value, error=result.error)
            ORDERS_FINALIZED.labels(result="left_pending").inc()
            return ProcessOutcome.PRINT_FAILED

        self._remember(order.id, recorded=False)
        return await self._finalize(order.id)

    async def _record(self, order_id: str) -> ProcessOutcome:
        outcome = await self._finalize(order_id)
        return ProcessOutcome.RECORDED if outcome == ProcessOutcome.PRINTED else outcome

    async def _finalize(self, order_id: str) -> ProcessOutcome:
        processed_at = self.clock()
        try:
            await self.repository.mark_done(order_id, processed_at)
        except Exception as e:
            # TODO: raise an operator alert once the bar has a notification channel
            logger.error("Ticket printed but order status update failed",
                         order_id=order_id, error=str(e))
            ORDERS_FINALIZED.labels(result="store_error").inc()
            return ProcessOutcome.NOT_RECORDED

        self._remember(order_id, recorded=True)
        ORDERS_FINALIZED.labels(result="done").inc()
        logger.info("Order marked as done", order_id=order_id, processed_at=processed_at)
        return ProcessOutcome.PRINTED

    def _remember(self, order_id: str, recorded: bool) -> None:
        self._printed[order_id] = recorded
        self._printed.move_to_end(order_id)
        while len(self._printed) > self.ledger_size:
            self._printed.popitem(last=False)

    def unrecorded_orders(self) -> Set[str]:
        """Ids of orders printed by this process whose done status is not stored yet."""
        return {order_id for order_id, recorded in self._printed.items() if not recorded}

    async def retry_unrecorded(self) -> int:
        """
        Retry the done status write of printed but unrecorded orders.

        Never prints. Orders currently being processed are left alone.

        Returns:
            Number of orders whose status is now stored
        """
        recorded = 0
        for order_id in sorted(self.unrecorded_orders()):
            if order_id in self._in_flight:
                continue
            outcome = await asyncio.shield(self._start_job(order_id, self._record(order_id)))
            if outcome == ProcessOutcome.RECORDED:
                recorded += 1
        if recorded:
            logger.info("Stored status of printed orders", count=recorded)
        return recorded

    async def _retry_loop(self) -> None:
        while True:
            await asyncio.sleep(self.retry_interval)
            if self.unrecorded_orders():
                await self.retry_unrecorded()

    async def reconcile_pending(self) -> Optional[ReconciliationSummary]:
        """
        Run a reconciliation pass over all pending orders.

        Only one pass runs at a time. A request arriving during a pass
        schedules one more pass right after it and returns None.

        Returns:
            Summary of the last pass run by this call, or None if deferred
        """
        if self._reconcile_lock.locked():
            self._rerun_requested = True
            logger.info("Reconciliation already running, re-run scheduled")
            return None

        async with self._reconcile_lock:
            summary = await self._reconcile_once()
            while self._rerun_requested:
                self._rerun_requested = False
                summary = await self._reconcile_once()
        return summary

    async def reconcile_after_attach(self, handle: DeviceHandle) -> Optional[ReconciliationSummary]:
        """Printer ready callback: reconcile orders left pending while it was missing."""
        logger.info("Printer attached, reconciling pending orders", printer=handle.label)
        return await self.reconcile_pending()

    async def _reconcile_once(self) -> ReconciliationSummary:
        summary = ReconciliationSummary(started_at=self.clock())
        self.reconciliation_count += 1
        RECONCILIATION_PASSES.inc()

        try:
            orders = await self.repository.list_pending()
        except Exception as e:
            logger.error("Reconciliation query failed", error=str(e))
            summary.query_error = str(e)
            self.last_summary = summary
            return summary

        summary.total = len(orders)
        logger.info("Reconciling pending orders", count=summary.total)

        for order in orders:
            try:
                outcome = await self.process_order(order)
            except Exception as e:
                logger.error("Unexpected error processing order",
                             order_id=order.id, error=str(e), exc_info=True)
                outcome = ProcessOutcome.PRINT_FAILED
            summary.count(outcome)

        logger.info("Reconciliation complete", **summary.to_dict())
        self.last_summary = summary
        return summary
