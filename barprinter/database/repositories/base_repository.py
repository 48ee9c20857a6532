"""
Base repository for the order store.

The worker never owns the order schema; it consumes three capabilities of the
order store and nothing more:

    - filtered query: all orders with ``status == pending``
    - change stream: added/modified/removed deltas for pending orders
    - point update: set named fields of one order atomically

BaseRepository declares these capabilities so services depend on the
abstraction and tests can substitute an in-memory store.

Usage Example:
    ```python
    repo = FirestoreOrderRepository(database.client, "orders")

    for order in await repo.list_pending():
        ...

    stream = repo.watch_pending()
    async for batch in stream:
        for change in batch:
            ...
    stream.close()
    ```
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

from barprinter.models.order import Order, OrderStatus

logger = structlog.get_logger()


class OrderChangeType(str, Enum):
    """Kinds of change stream deltas."""
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass
class OrderChange:
    """One delta from the order store's change stream."""
    type: OrderChangeType
    order: Order


class OrderChangeStream:
    """
    Async iterator over change notification batches.

    The store SDK may deliver notifications on its own thread; ``push`` is
    safe to call from any thread and hands the batch to the event loop the
    stream was created on.
    """

    def __init__(self, on_close: Optional[Callable[[], None]] = None):
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    def push(self, batch: List[OrderChange]) -> None:
        """Deliver a notification batch."""
        if self._closed:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, batch)

    def close(self) -> None:
        """Stop the stream; a waiting consumer finishes iteration."""
        if self._closed:
            return
        self._closed = True
        if self._on_close:
            try:
                self._on_close()
            except Exception as e:
                logger.warning("Error closing order change stream", error=str(e))
        self._loop.call_soon_threadsafe(self._queue.put_nowait, None)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self) -> List[OrderChange]:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


class BaseRepository(ABC):
    """Capabilities of the order store consumed by the worker."""

    @abstractmethod
    async def list_pending(self) -> List[Order]:
        """Return all orders with status pending, in store order.

        Raises:
            StoreQueryError: If the query fails
        """
        pass

    @abstractmethod
    def watch_pending(self) -> OrderChangeStream:
        """Subscribe to changes of pending orders. Must be called on the event loop."""
        pass

    @abstractmethod
    async def update(self, order_id: str, fields: Dict[str, Any]) -> None:
        """Set the given fields of one order atomically.

        Raises:
            StoreWriteError: If the write is not acknowledged
        """
        pass

    async def mark_done(self, order_id: str, processed_at: int) -> None:
        """Finalize an order after its ticket was printed."""
        await self.update(order_id, {
            "status": OrderStatus.DONE.value,
            "processedAt": processed_at,
        })
