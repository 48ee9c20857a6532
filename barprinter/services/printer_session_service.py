"""
Printer session service.

Owns the single notion of "the current printer": caches the discovery result,
exposes availability, and reacts to USB hotplug events. Attach events schedule
a delayed forced probe; detach events are informational only and the cached
handle is revalidated lazily: a print that fails against it drops it, and
the following attempt probes again.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import structlog

from barprinter.config.constants import HotplugConstants
from barprinter.models.printer import DeviceHandle, HotplugEvent, HotplugEventType
from barprinter.services.base_service import BaseService
from barprinter.services.discovery_service import DiscoveryService
from barprinter.services.hotplug_service import HotplugSubscription
from barprinter.utils.metrics import PRINTER_AVAILABLE

logger = structlog.get_logger()

ReadyCallback = Callable[[DeviceHandle], Awaitable[Any]]


@dataclass
class PrinterSession:
    """Process-local printer state. Not persisted."""
    handle: Optional[DeviceHandle] = None
    initialized: bool = False
    last_probe_at: Optional[datetime] = None


class PrinterSessionService(BaseService):
    """
    Service managing the cached printer handle.

    Readers must treat ``current_handle`` as a snapshot that may be stale
    between read and use; only this service mutates the session.

    Example:
        >>> sessions = PrinterSessionService(discovery, settle_delay=1.0)
        >>> await sessions.initialize()
        >>> sessions.add_ready_callback(order_service.reconcile_after_attach)
        >>> sessions.start(hotplug.subscribe())
    """

    def __init__(
        self,
        discovery: DiscoveryService,
        settle_delay: float = HotplugConstants.ATTACH_SETTLE_DELAY,
        session: Optional[PrinterSession] = None
    ):
        """
        Initialize printer session service.

        Args:
            discovery: Discovery service probing for printers
            settle_delay: Seconds to wait after an attach event before probing
            session: Session state to manage (a fresh one if omitted)
        """
        super().__init__()
        self.discovery = discovery
        self.settle_delay = settle_delay
        self.session = session or PrinterSession()
        self._probe_lock = asyncio.Lock()
        self._ready_callbacks: List[ReadyCallback] = []
        self._settle_tasks: Set[asyncio.Task] = set()
        self._subscription: Optional[HotplugSubscription] = None

    async def initialize(self) -> None:
        """Run the startup probe."""
        await super().initialize()
        handle = await self.ensure_printer(force=True)
        logger.info("Printer session initialized",
                    available=handle is not None,
                    printer=handle.label if handle else None)

    async def shutdown(self) -> None:
        """Stop consuming events and cancel pending settle probes."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        await super().shutdown()
        self._settle_tasks.clear()

    @property
    def current_handle(self) -> Optional[DeviceHandle]:
        """Cached printer handle, possibly stale."""
        return self.session.handle

    @property
    def is_available(self) -> bool:
        """Check if a printer handle is cached."""
        return self.session.handle is not None

    def add_ready_callback(self, callback: ReadyCallback) -> None:
        """Register a coroutine called after an attach probe finds a printer."""
        self._ready_callbacks.append(callback)

    async def ensure_printer(self, force: bool = False) -> Optional[DeviceHandle]:
        """
        Return the cached printer handle, probing when needed.

        Args:
            force: Probe even if a handle is cached

        Returns:
            Printer handle, or None if no printer is attached. A forced probe
            that finds nothing replaces a cached handle with None.
        """
        if self.session.handle is not None and not force:
            return self.session.handle

        async with self._probe_lock:
            handle = await asyncio.to_thread(self.discovery.discover)
            previous = self.session.handle

            self.session.handle = handle
            self.session.initialized = True
            self.session.last_probe_at = datetime.now()
            PRINTER_AVAILABLE.set(1 if handle is not None else 0)

        if handle != previous:
            if handle is None:
                logger.warning("Printer no longer available", previous=previous.label)
            else:
                logger.info("Printer handle updated", printer=handle.label,
                            previous=previous.label if previous else None)
        return handle

    def invalidate(self, handle: DeviceHandle) -> bool:
        """
        Drop the cached handle after it failed in use.

        Only clears the cache while it still holds the failed handle, so a
        newer probe result is kept. The next print attempt re-probes.

        Returns:
            True if the cached handle was dropped
        """
        cached = self.session.handle
        if cached is None or cached.key != handle.key:
            return False

        self.session.handle = None
        PRINTER_AVAILABLE.set(0)
        logger.warning("Cached printer handle dropped after a failed job, re-probing on next print",
                       printer=handle.label)
        return True

    def handle_event(self, event: HotplugEvent) -> Optional[asyncio.Task]:
        """Dispatch a hotplug event."""
        if event.kind == HotplugEventType.ATTACH:
            return self.on_attach(event)
        self.on_detach(event)
        return None

    def on_attach(self, event: HotplugEvent) -> asyncio.Task:
        """
        Schedule a forced probe after the settle delay.

        Returns:
            The scheduled settle task (awaitable and cancellable)
        """
        logger.info("USB device attached, probing after settle delay",
                    device=event.device.label, settle_delay=self.settle_delay)
        task = self._spawn(self._settle_and_probe(event), name=f"settle-{event.device.usb_id}")
        self._settle_tasks.add(task)
        task.add_done_callback(self._settle_tasks.discard)
        return task

    def on_detach(self, event: HotplugEvent) -> None:
        """Log a detach event. The cached handle is kept until the next print attempt."""
        cached = self.session.handle
        if cached is not None and cached.key == event.device.key:
            logger.warning("Cached printer detached, handle is dropped if the next print fails",
                           printer=cached.label)
        else:
            logger.info("USB device detached", device=event.device.label)

    async def _settle_and_probe(self, event: HotplugEvent) -> Optional[DeviceHandle]:
        await asyncio.sleep(self.settle_delay)
        handle = await self.ensure_printer(force=True)
        if handle is None:
            logger.info("Attached device is not a usable printer", device=event.device.label)
            return None

        for callback in list(self._ready_callbacks):
            try:
                await callback(handle)
            except Exception as e:
                logger.error("Printer ready callback failed",
                             printer=handle.label, error=str(e), exc_info=True)
        return handle

    async def wait_for_settle(self) -> None:
        """Wait until every scheduled settle probe (and its callbacks) finished."""
        while self._settle_tasks:
            await asyncio.gather(*list(self._settle_tasks), return_exceptions=True)

    async def consume(self, subscription: HotplugSubscription) -> None:
        """Handle events from a hotplug subscription until it is closed."""
        async for event in subscription:
            self.handle_event(event)

    def start(self, subscription: HotplugSubscription) -> asyncio.Task:
        """Consume a hotplug subscription in the background."""
        self._subscription = subscription
        return self._spawn(self.consume(subscription), name="printer-session-events")

    def status(self) -> Dict[str, Any]:
        """Snapshot of the session for diagnostics."""
        return {
            "available": self.is_available,
            "initialized": self.session.initialized,
            "printer": self.session.handle.label if self.session.handle else None,
            "last_probe_at": self.session.last_probe_at.isoformat()
                             if self.session.last_probe_at else None,
        }
