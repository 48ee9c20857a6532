"""
Error types for the barprinter worker.

Every failure the worker knows how to classify is raised as a subclass of
BarPrinterError. Drivers and repositories raise them; the services that can
make a retry decision catch them and turn them into results or log lines, so
none of them ever stops the worker.

Error Format (``to_dict``):
    {
        "status": "error",
        "message": "Failed to open printer 0x04b8:0x0202: Resource busy",
        "error_code": "DEVICE_OPEN",
        "details": {"printer": "0x04b8:0x0202 (bus 1, address 4)"},
        "timestamp": "2025-11-08T15:30:00"
    }
"""

import re
from datetime import datetime
from typing import Any, Dict, Optional


class BarPrinterError(Exception):
    """
    Base exception for all barprinter errors.

    Attributes:
        message: Human readable error message
        error_code: Machine-readable error code (derived from the class name)
        details: Additional context as dictionary
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.details = details or {}
        self.timestamp = datetime.now()
        super().__init__(message)

    def _generate_error_code(self) -> str:
        """
        Generate error code from class name.

        Example: DeviceOpenError -> DEVICE_OPEN
        """
        name = self.__class__.__name__
        if name.endswith('Error'):
            name = name[:-5]
        s1 = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', name)
        return re.sub('([a-z0-9])([A-Z])', r'\1_\2', s1).upper()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary format for structured logs."""
        return {
            "status": "error",
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


# =============================================================================
# Device Errors
# =============================================================================

class NoPrinterFoundError(BarPrinterError):
    """Discovery found no attached receipt printer."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="No USB receipt printer found",
            details=details
        )


class DiscoveryEnumerationError(BarPrinterError):
    """USB enumeration itself failed (permissions, missing backend, driver fault)."""

    def __init__(self, reason: str, hint: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        error_details = {"reason": reason}
        if hint:
            error_details["hint"] = hint
        if details:
            error_details.update(details)

        self.reason = reason
        self.hint = hint
        super().__init__(
            message=f"USB enumeration failed: {reason}",
            details=error_details
        )


class DeviceError(BarPrinterError):
    """Hardware or driver level failure while talking to a printer."""

    action = "access"

    def __init__(self, printer: str, reason: str, details: Optional[Dict[str, Any]] = None):
        error_details = {"printer": printer, "reason": reason}
        if details:
            error_details.update(details)

        self.printer = printer
        self.reason = reason
        super().__init__(
            message=f"Failed to {self.action} printer {printer}: {reason}",
            details=error_details
        )


class DeviceOpenError(DeviceError):
    """Opening a session against the printer failed."""

    action = "open"


class DeviceWriteError(DeviceError):
    """Sending receipt data to an open printer session failed."""

    action = "write to"


class DeviceCloseError(DeviceError):
    """Closing the printer session failed."""

    action = "close"


# =============================================================================
# Order Store Errors
# =============================================================================

class StoreQueryError(BarPrinterError):
    """Querying the order store failed."""

    def __init__(self, query: str, reason: str, details: Optional[Dict[str, Any]] = None):
        error_details = {"query": query, "reason": reason}
        if details:
            error_details.update(details)

        super().__init__(
            message=f"Order store query '{query}' failed: {reason}",
            details=error_details
        )


class StoreWriteError(BarPrinterError):
    """Updating an order document failed."""

    def __init__(self, order_id: str, reason: str, details: Optional[Dict[str, Any]] = None):
        error_details = {"order_id": order_id, "reason": reason}
        if details:
            error_details.update(details)

        self.order_id = order_id
        super().__init__(
            message=f"Failed to update order {order_id}: {reason}",
            details=error_details
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(BarPrinterError):
    """Settings are invalid and the worker cannot start."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)
