"""
Shared fixtures and fakes for the barprinter worker tests.

Fakes replace the three external collaborators: the USB device layer, the
ESC/POS printer session and the order store.
"""
import asyncio
import threading
from typing import Any, Dict, List, Optional

import pytest

from barprinter.database.repositories.base_repository import (
    BaseRepository,
    OrderChange,
    OrderChangeStream,
    OrderChangeType,
)
from barprinter.models.order import Order, OrderStatus
from barprinter.models.printer import DeviceHandle
from barprinter.printers.base import PrinterConnection, PrinterDriver
from barprinter.services.discovery_service import DiscoveryService
from barprinter.services.order_service import OrderService
from barprinter.services.print_job_service import PrintJobService
from barprinter.services.printer_session_service import PrinterSessionService
from barprinter.utils.errors import (
    DeviceCloseError,
    DeviceOpenError,
    DeviceWriteError,
    StoreQueryError,
    StoreWriteError,
)


# =============================================================================
# USB device layer
# =============================================================================

class FakeInterface:
    def __init__(self, interface_class: int):
        self.bInterfaceClass = interface_class


class FakeUsbDevice:
    """Minimal stand-in for a pyusb Device."""

    def __init__(self, vendor_id: int, product_id: int, bus: int = 1, address: int = 1,
                 device_class: int = 0, interfaces: Optional[List[int]] = None):
        self.idVendor = vendor_id
        self.idProduct = product_id
        self.bus = bus
        self.address = address
        self.bDeviceClass = device_class
        self._interfaces = interfaces or []

    def __iter__(self):
        return iter([[FakeInterface(c) for c in self._interfaces]])


class FakeUsbBus:
    """Attached devices, as returned by usb.core.find(find_all=True)."""

    def __init__(self):
        self.devices: List[FakeUsbDevice] = []
        self.error: Optional[Exception] = None
        self.find_calls = 0

    def attach(self, device: FakeUsbDevice) -> FakeUsbDevice:
        self.devices.append(device)
        return device

    def detach(self, device: FakeUsbDevice) -> None:
        self.devices.remove(device)

    def find(self):
        self.find_calls += 1
        if self.error is not None:
            raise self.error
        return list(self.devices)


def epson_printer(bus: int = 1, address: int = 4) -> FakeUsbDevice:
    return FakeUsbDevice(0x04B8, 0x0202, bus=bus, address=address)


def usb_keyboard(bus: int = 1, address: int = 2) -> FakeUsbDevice:
    return FakeUsbDevice(0x046D, 0xC31C, bus=bus, address=address, interfaces=[3])


# =============================================================================
# Printer driver
# =============================================================================

class FakeConnection(PrinterConnection):
    """Records commands; can be told to fail on write or close."""

    def __init__(self, driver: "FakeDriver", handle: DeviceHandle):
        self.driver = driver
        self.handle = handle
        self.commands: List[tuple] = []
        self.failed = False

    def _write(self, command: tuple) -> None:
        failing_drink = command[0] == "text" and command[1].strip() in self.driver.fail_drinks
        if self.driver.fail_write or failing_drink:
            self.failed = True
            raise DeviceWriteError(self.handle.label, "Pipe error")
        self.commands.append(command)

    def set_style(self, align: str = "left", bold: bool = False, large: bool = False) -> None:
        self._write(("style", align, bold, large))

    def text(self, content: str) -> None:
        self._write(("text", content))

    def feed(self, lines: int = 1) -> None:
        self._write(("feed", lines))

    def cut(self) -> None:
        self._write(("cut",))

    def close(self) -> None:
        with self.driver.lock:
            self.driver.active -= 1
        self.driver.closed += 1
        if self.driver.fail_close:
            raise DeviceCloseError(self.handle.label, "Resource busy")
        if not self.failed:
            self.driver.tickets.append(self.commands)

    @property
    def texts(self) -> List[str]:
        return [c[1] for c in self.commands if c[0] == "text"]


class FakeDriver(PrinterDriver):
    """Printer driver keeping completed tickets in memory."""

    def __init__(self):
        self.fail_open = False
        self.fail_write = False
        self.fail_close = False
        self.fail_addresses: set = set()
        self.fail_drinks: set = set()
        # set to hold jobs inside open() until released
        self.gate: Optional[threading.Event] = None
        self.opened: List[DeviceHandle] = []
        self.closed = 0
        self.tickets: List[List[tuple]] = []
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def open(self, handle: DeviceHandle) -> FakeConnection:
        self.opened.append(handle)
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail_open or handle.address in self.fail_addresses:
            raise DeviceOpenError(handle.label, "No such device (it may have been disconnected)")
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        return FakeConnection(self, handle)

    @property
    def printed_drinks(self) -> List[str]:
        """Ticket titles in print order."""
        return [ticket[1][1].strip() for ticket in self.tickets]


# =============================================================================
# Order store
# =============================================================================

class FakeOrderRepository(BaseRepository):
    """In-memory order store with a change stream."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.streams: List[OrderChangeStream] = []
        self.updates: List[tuple] = []
        self.fail_writes = False
        self.fail_write_ids: set = set()
        self.fail_query = False

    def add(self, order_id: str, drink: str, client_name: str = "", status: str = "pending",
            notify: bool = True) -> Order:
        data = {
            "drink": drink,
            "clientName": client_name,
            "employeeId": "emp-1",
            "timestamp": 1700000000000,
            "status": status,
        }
        self.documents[order_id] = data
        order = Order.from_document(order_id, data)
        if notify and order.is_pending:
            self.notify([OrderChange(type=OrderChangeType.ADDED, order=order)])
        return order

    def notify(self, batch: List[OrderChange]) -> None:
        for stream in self.streams:
            stream.push(batch)

    def status_of(self, order_id: str) -> str:
        return self.documents[order_id]["status"]

    async def list_pending(self) -> List[Order]:
        if self.fail_query:
            raise StoreQueryError("status == pending", "deadline exceeded")
        return [
            Order.from_document(order_id, data)
            for order_id, data in self.documents.items()
            if data["status"] == OrderStatus.PENDING.value
        ]

    def watch_pending(self) -> OrderChangeStream:
        stream = OrderChangeStream()
        self.streams.append(stream)
        return stream

    async def update(self, order_id: str, fields: Dict[str, Any]) -> None:
        if self.fail_writes or order_id in self.fail_write_ids:
            raise StoreWriteError(order_id, "UNAVAILABLE: connection reset")
        self.updates.append((order_id, dict(fields)))
        self.documents.setdefault(order_id, {}).update(fields)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def usb_bus():
    return FakeUsbBus()


@pytest.fixture
def discovery(usb_bus):
    return DiscoveryService(find_devices=usb_bus.find)


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def repository():
    return FakeOrderRepository()


@pytest.fixture
def sessions(discovery):
    return PrinterSessionService(discovery, settle_delay=0)


@pytest.fixture
def print_jobs(sessions, driver):
    return PrintJobService(sessions, driver)


@pytest.fixture
def order_service(repository, print_jobs):
    return OrderService(repository, print_jobs)
