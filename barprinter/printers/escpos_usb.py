"""
ESC/POS driver for USB thermal receipt printers.

Uses python-escpos (``escpos.printer.Usb``) on top of pyusb. The device is
located by the vendor/product id and, when known, the bus/address of the
discovered handle so two printers of the same model are not confused.
"""
from typing import Optional

import structlog
from escpos.printer import Usb

from barprinter.models.printer import DeviceHandle
from barprinter.printers.base import PrinterConnection, PrinterDriver
from barprinter.utils.errors import DeviceCloseError, DeviceOpenError, DeviceWriteError

logger = structlog.get_logger()


class EscposUsbConnection(PrinterConnection):
    """Open python-escpos USB session."""

    def __init__(self, printer: Usb, handle: DeviceHandle):
        self._printer = printer
        self.handle = handle

    def set_style(self, align: str = "left", bold: bool = False, large: bool = False) -> None:
        try:
            if large:
                self._printer.set(align=align, bold=bold, double_width=True, double_height=True)
            else:
                self._printer.set(align=align, bold=bold, normal_textsize=True)
        except Exception as e:
            raise DeviceWriteError(self.handle.label, str(e))

    def text(self, content: str) -> None:
        try:
            self._printer.text(content)
        except Exception as e:
            raise DeviceWriteError(self.handle.label, str(e))

    def feed(self, lines: int = 1) -> None:
        try:
            self._printer.ln(lines)
        except Exception as e:
            raise DeviceWriteError(self.handle.label, str(e))

    def cut(self) -> None:
        try:
            self._printer.cut()
        except Exception as e:
            raise DeviceWriteError(self.handle.label, str(e))

    def close(self) -> None:
        try:
            self._printer.close()
        except Exception as e:
            raise DeviceCloseError(self.handle.label, str(e))


class EscposUsbDriver(PrinterDriver):
    """Creates python-escpos USB sessions for discovered printers."""

    def __init__(self, profile: Optional[str] = None, timeout: int = 0):
        """
        Initialize driver.

        Args:
            profile: python-escpos capability profile name, None for the default profile
            timeout: USB write timeout in milliseconds (0 means the libusb default)
        """
        self.profile = profile
        self.timeout = timeout

    def open(self, handle: DeviceHandle) -> EscposUsbConnection:
        usb_args = {}
        if handle.bus is not None:
            usb_args["bus"] = handle.bus
        if handle.address is not None:
            usb_args["address"] = handle.address

        kwargs = {"timeout": self.timeout, "usb_args": usb_args}
        if self.profile:
            kwargs["profile"] = self.profile

        try:
            printer = Usb(handle.vendor_id, handle.product_id, **kwargs)
            printer.open()
        except Exception as e:
            raise DeviceOpenError(handle.label, str(e), details={"error_type": type(e).__name__})

        logger.debug("Printer session opened", printer=handle.label, profile=self.profile)
        return EscposUsbConnection(printer, handle)
