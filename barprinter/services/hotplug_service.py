"""
USB hotplug event service.

Derives attach/detach events by diffing periodic USB device snapshots and
delivers them to subscribers through explicit channels (async iterators over
a queue) that can be awaited and closed.
"""
import asyncio
from typing import Dict, List, Optional, Set

import structlog

from barprinter.config.constants import HotplugConstants
from barprinter.models.printer import DeviceHandle, HotplugEvent, HotplugEventType
from barprinter.services.base_service import BaseService
from barprinter.services.discovery_service import DiscoveryService
from barprinter.utils.errors import DiscoveryEnumerationError
from barprinter.utils.metrics import HOTPLUG_EVENTS

logger = structlog.get_logger()


class HotplugSubscription:
    """
    Channel of hotplug events for one consumer.

    Iterate with ``async for``; iteration ends once ``close()`` is called.
    """

    def __init__(self, service: "HotplugService"):
        self._service = service
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def _deliver(self, event: HotplugEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop receiving events."""
        if self._closed:
            return
        self._closed = True
        self._service._unsubscribe(self)
        self._queue.put_nowait(None)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self) -> HotplugEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class HotplugService(BaseService):
    """
    Service that watches the USB bus and publishes hotplug events.

    The first snapshot only sets the baseline. Enumeration failures keep the
    previous snapshot so a transient permission or driver error does not show
    up as every device being detached.

    Events Emitted:
    - attach: a device appeared since the previous snapshot
    - detach: a device disappeared since the previous snapshot
    """

    def __init__(self, discovery: DiscoveryService,
                 poll_interval: float = HotplugConstants.POLL_INTERVAL):
        """
        Initialize hotplug service.

        Args:
            discovery: Discovery service used to enumerate attached devices
            poll_interval: Seconds between snapshots
        """
        super().__init__()
        self.discovery = discovery
        self.poll_interval = poll_interval
        self._subscriptions: List[HotplugSubscription] = []
        self._known: Optional[Dict[tuple, DeviceHandle]] = None

        # Event counters for debugging
        self.event_counts = {
            HotplugEventType.ATTACH.value: 0,
            HotplugEventType.DETACH.value: 0,
        }

    async def initialize(self) -> None:
        """Take the baseline snapshot and start polling."""
        if self.is_initialized:
            logger.warning("Hotplug service already running")
            return
        await super().initialize()

        try:
            await self.poll_once()
        except DiscoveryEnumerationError as e:
            logger.warning("Initial USB snapshot failed, baseline deferred to next poll",
                           reason=e.reason, hint=e.hint)
        self._spawn(self._poll_loop(), name="hotplug-poll")
        logger.info("Hotplug service started", poll_interval=self.poll_interval,
                    devices=len(self._known or {}))

    async def shutdown(self) -> None:
        """Stop polling and close every subscription."""
        for subscription in list(self._subscriptions):
            subscription.close()
        await super().shutdown()
        logger.info("Hotplug service stopped")

    def subscribe(self) -> HotplugSubscription:
        """Open a new event channel."""
        subscription = HotplugSubscription(self)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: HotplugSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: HotplugEvent) -> None:
        """Deliver an event to every open subscription."""
        self.event_counts[event.kind.value] += 1
        HOTPLUG_EVENTS.labels(kind=event.kind.value).inc()
        logger.info("USB hotplug event", kind=event.kind.value, device=event.device.label)
        for subscription in list(self._subscriptions):
            subscription._deliver(event)

    async def poll_once(self) -> List[HotplugEvent]:
        """
        Take one snapshot and publish the differences to the previous one.

        Returns:
            Events published by this poll

        Raises:
            DiscoveryEnumerationError: If the device layer cannot be queried
        """
        devices = await asyncio.to_thread(self.discovery.enumerate_devices)
        current = {device.handle.key: device.handle for device in devices}

        if self._known is None:
            self._known = current
            return []

        events = []
        removed: Set[tuple] = set(self._known) - set(current)
        added: Set[tuple] = set(current) - set(self._known)
        for key in sorted(removed, key=str):
            events.append(HotplugEvent(kind=HotplugEventType.DETACH, device=self._known[key]))
        for key in sorted(added, key=str):
            events.append(HotplugEvent(kind=HotplugEventType.ATTACH, device=current[key]))

        self._known = current
        for event in events:
            self.publish(event)
        return events

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once()
            except DiscoveryEnumerationError as e:
                logger.warning("Hotplug poll failed, keeping previous snapshot",
                               reason=e.reason, hint=e.hint)
                await asyncio.sleep(HotplugConstants.POLL_ERROR_BACKOFF)
