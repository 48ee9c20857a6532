"""
Base printer classes and interfaces for the barprinter worker.
Provides abstract base classes for receipt printer drivers.
"""
from abc import ABC, abstractmethod

from barprinter.models.printer import DeviceHandle


class PrinterConnection(ABC):
    """
    An open session against one physical printer.

    Sessions are created per job and never reused. Every method is blocking
    and raises a DeviceError subclass on failure.
    """

    @abstractmethod
    def set_style(self, align: str = "left", bold: bool = False, large: bool = False) -> None:
        """Set alignment and text size for the following text."""
        pass

    @abstractmethod
    def text(self, content: str) -> None:
        """Print text at the current style."""
        pass

    @abstractmethod
    def feed(self, lines: int = 1) -> None:
        """Advance the paper by the given number of lines."""
        pass

    @abstractmethod
    def cut(self) -> None:
        """Cut the paper."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the device. Raises DeviceCloseError on failure."""
        pass


class PrinterDriver(ABC):
    """Opens printer sessions for discovered device handles."""

    @abstractmethod
    def open(self, handle: DeviceHandle) -> PrinterConnection:
        """Open a fresh session. Raises DeviceOpenError on failure."""
        pass
