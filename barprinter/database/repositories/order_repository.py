"""
Firestore order repository.

The Firestore SDK is synchronous; queries and writes run in a worker thread
and snapshot listener callbacks (delivered on the SDK's watch thread) are
forwarded to the event loop through an OrderChangeStream.
"""
import asyncio
from typing import Any, Dict, List

import structlog
from google.cloud.firestore_v1.base_query import FieldFilter

from barprinter.database.repositories.base_repository import (
    BaseRepository,
    OrderChange,
    OrderChangeStream,
    OrderChangeType,
)
from barprinter.models.order import Order, OrderStatus
from barprinter.utils.errors import StoreQueryError, StoreWriteError

logger = structlog.get_logger()

_CHANGE_TYPES = {
    "ADDED": OrderChangeType.ADDED,
    "MODIFIED": OrderChangeType.MODIFIED,
    "REMOVED": OrderChangeType.REMOVED,
}


class FirestoreOrderRepository(BaseRepository):
    """Order store backed by a Firestore collection."""

    def __init__(self, client, collection: str = "orders"):
        """
        Initialize the repository.

        Args:
            client: google.cloud.firestore.Client (as returned by firebase_admin.firestore.client())
            collection: Name of the order collection
        """
        self.client = client
        self.collection = collection

    def _pending_query(self):
        return self.client.collection(self.collection).where(
            filter=FieldFilter("status", "==", OrderStatus.PENDING.value)
        )

    def _to_order(self, snapshot) -> Order:
        return Order.from_document(snapshot.id, snapshot.to_dict())

    async def list_pending(self) -> List[Order]:
        def _fetch():
            orders = []
            for doc in self._pending_query().stream():
                try:
                    orders.append(self._to_order(doc))
                except Exception as e:
                    logger.warning("Skipping unreadable order document",
                                   order_id=doc.id, error=str(e))
            return orders

        try:
            orders = await asyncio.to_thread(_fetch)
        except Exception as e:
            logger.error("Failed to query pending orders",
                         collection=self.collection, error=str(e))
            raise StoreQueryError("status == pending", str(e))

        logger.debug("Fetched pending orders", collection=self.collection, count=len(orders))
        return orders

    def watch_pending(self) -> OrderChangeStream:
        watch = None

        def _unsubscribe():
            if watch is not None:
                watch.unsubscribe()

        stream = OrderChangeStream(on_close=_unsubscribe)

        def _on_snapshot(docs, changes, read_time):
            batch = []
            for change in changes:
                change_type = _CHANGE_TYPES.get(change.type.name)
                if change_type is None:
                    continue
                try:
                    batch.append(OrderChange(type=change_type, order=self._to_order(change.document)))
                except Exception as e:
                    logger.warning("Skipping unreadable order document",
                                   order_id=change.document.id, error=str(e))
            if batch:
                stream.push(batch)

        watch = self._pending_query().on_snapshot(_on_snapshot)
        logger.info("Subscribed to pending orders", collection=self.collection)
        return stream

    async def update(self, order_id: str, fields: Dict[str, Any]) -> None:
        doc_ref = self.client.collection(self.collection).document(order_id)
        try:
            await asyncio.to_thread(doc_ref.update, fields)
        except Exception as e:
            raise StoreWriteError(order_id, str(e), details={"fields": sorted(fields)})
