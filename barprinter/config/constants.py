"""Application-wide configuration constants.

This module centralizes the hardcoded values used by the worker services,
making them easier to maintain and configure.
"""

from typing import Dict, Final


class HotplugConstants:
    """Timing values for USB hotplug handling (in seconds)."""

    ATTACH_SETTLE_DELAY: Final[float] = 1.0
    """Wait after an attach event before probing; fresh devices are not enumerable at once"""

    POLL_INTERVAL: Final[float] = 2.0
    """Interval between USB device snapshots used to derive attach/detach events"""

    POLL_ERROR_BACKOFF: Final[float] = 10.0
    """Wait before polling again after an enumeration failure"""


class UsbConstants:
    """USB identifiers used to recognise receipt printers."""

    PRINTER_CLASS: Final[int] = 7
    """USB device/interface class code for printers"""

    ERRNO_ACCESS_DENIED: Final[int] = 13
    """errno reported by libusb when the process lacks device permissions"""

    KNOWN_PRINTER_VENDORS: Final[Dict[int, str]] = {
        0x04B8: "Epson",
        0x0519: "Star Micronics",
        0x1D90: "Citizen",
        0x1504: "Bixolon",
        0x0DD4: "Custom",
        0x0FE6: "ICS Advent (generic thermal)",
        0x0416: "Winbond (generic thermal)",
        0x0483: "STMicro (POS-58/80)",
        0x6868: "Xprinter",
        0x154F: "SNBC",
        0x0525: "Netchip (generic thermal)",
    }
    """Vendor ids of common ESC/POS thermal printers"""


class ReceiptConstants:
    """Receipt layout values."""

    CLIENT_PLACEHOLDER: Final[str] = "Guest"
    """Printed instead of the client name when the order has none"""

    FEED_LINES_BEFORE_CUT: Final[int] = 3
    """Blank lines fed so the text clears the cutter"""


class OrderConstants:
    """Order processing values."""

    COLLECTION: Final[str] = "orders"
    """Default order collection in the order store"""

    PRINTED_LEDGER_SIZE: Final[int] = 1000
    """Number of recently printed order ids remembered by the worker"""

    UNRECORDED_RETRY_INTERVAL: Final[float] = 30.0
    """Seconds between retries of status writes for printed but unrecorded orders"""
