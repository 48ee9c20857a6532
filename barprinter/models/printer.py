"""
Printer models for the barprinter worker.
Pydantic models for USB device handles, hotplug events and print results.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class DeviceHandle(BaseModel):
    """Identifying data for an attached USB device (not an open connection)."""
    vendor_id: int = Field(..., description="USB idVendor")
    product_id: int = Field(..., description="USB idProduct")
    bus: Optional[int] = Field(None, description="USB bus number")
    address: Optional[int] = Field(None, description="Device address on the bus")
    name: Optional[str] = Field(None, description="Vendor name when known")

    model_config = ConfigDict(frozen=True)

    @property
    def key(self) -> Tuple[int, int, Optional[int], Optional[int]]:
        """Identity of the physical attachment."""
        return (self.vendor_id, self.product_id, self.bus, self.address)

    @property
    def usb_id(self) -> str:
        """vendor:product in lsusb notation."""
        return f"0x{self.vendor_id:04x}:0x{self.product_id:04x}"

    @property
    def label(self) -> str:
        """Human readable label for logs."""
        if self.bus is None:
            return self.usb_id
        return f"{self.usb_id} (bus {self.bus}, address {self.address})"

    def __str__(self) -> str:
        return self.label


class HotplugEventType(str, Enum):
    """USB hotplug event kinds."""
    ATTACH = "attach"
    DETACH = "detach"


class HotplugEvent(BaseModel):
    """A USB device appeared or disappeared while the worker was running."""
    kind: HotplugEventType
    device: DeviceHandle
    occurred_at: datetime = Field(default_factory=datetime.now)


class PrintOutcome(str, Enum):
    """Outcome of a single print job."""
    SUCCESS = "success"
    PRINTER_UNAVAILABLE = "printer_unavailable"
    HARDWARE_ERROR = "hardware_error"


class PrintResult(BaseModel):
    """Result of one print attempt; failure kinds are values, not exceptions."""
    outcome: PrintOutcome
    error: Optional[str] = None
    printer: Optional[DeviceHandle] = None

    @property
    def ok(self) -> bool:
        """Check if the ticket was printed and the session closed cleanly."""
        return self.outcome == PrintOutcome.SUCCESS

    @classmethod
    def success(cls, printer: DeviceHandle) -> "PrintResult":
        return cls(outcome=PrintOutcome.SUCCESS, printer=printer)

    @classmethod
    def unavailable(cls, error: str = "No USB receipt printer found") -> "PrintResult":
        return cls(outcome=PrintOutcome.PRINTER_UNAVAILABLE, error=error)

    @classmethod
    def hardware_error(cls, printer: DeviceHandle, error: str) -> "PrintResult":
        return cls(outcome=PrintOutcome.HARDWARE_ERROR, error=error, printer=printer)
