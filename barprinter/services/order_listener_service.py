"""
Live order listener.

Subscribes to the order store's stream of pending orders and feeds every newly
added order through the order service as soon as its notification arrives.
"""
from typing import List, Optional

import structlog

from barprinter.database.repositories.base_repository import (
    BaseRepository,
    OrderChange,
    OrderChangeStream,
    OrderChangeType,
)
from barprinter.services.base_service import BaseService
from barprinter.services.order_service import OrderService, ProcessOutcome

logger = structlog.get_logger()


class OrderListenerService(BaseService):
    """Service printing new pending orders as they are created."""

    def __init__(self, repository: BaseRepository, order_service: OrderService):
        super().__init__()
        self.repository = repository
        self.order_service = order_service
        self._stream: Optional[OrderChangeStream] = None
        self.orders_seen = 0

    async def initialize(self) -> None:
        """Subscribe and start handling notifications in the background."""
        if self.is_initialized:
            return
        await super().initialize()

        self._stream = self.repository.watch_pending()
        self._spawn(self._listen(self._stream), name="order-listener")
        logger.info("Listening for new orders")

    async def shutdown(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        await super().shutdown()

    async def _listen(self, stream: OrderChangeStream) -> None:
        async for batch in stream:
            await self.handle_batch(batch)

    async def handle_batch(self, batch: List[OrderChange]) -> List[ProcessOutcome]:
        """
        Process one notification batch in delivery order.

        Only ``added`` changes are printed; modifications and removals are ignored.
        """
        outcomes = []
        for change in batch:
            if change.type != OrderChangeType.ADDED:
                continue

            self.orders_seen += 1
            logger.info("New order received", order_id=change.order.id, drink=change.order.drink)
            try:
                outcome = await self.order_service.process_order(change.order)
            except Exception as e:
                logger.error("Unexpected error processing new order",
                             order_id=change.order.id, error=str(e), exc_info=True)
                outcome = ProcessOutcome.PRINT_FAILED
            outcomes.append(outcome)
        return outcomes
