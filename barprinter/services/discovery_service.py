"""
USB printer discovery service.

Enumerates attached USB devices through pyusb and identifies receipt printers
by configured id, known thermal printer vendor, or the USB printer class.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog
import usb.core

from barprinter.config.constants import UsbConstants
from barprinter.models.printer import DeviceHandle
from barprinter.utils.errors import DiscoveryEnumerationError

logger = structlog.get_logger()


def _find_all_devices() -> Iterable[Any]:
    return list(usb.core.find(find_all=True))


class DiscoveredDevice:
    """An attached USB device as seen by the discovery probe."""

    def __init__(self, handle: DeviceHandle, device_class: Optional[int], is_printer: bool):
        self.handle = handle
        self.device_class = device_class
        self.is_printer = is_printer

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for diagnostics output."""
        return {
            "vendor_id": f"0x{self.handle.vendor_id:04x}",
            "product_id": f"0x{self.handle.product_id:04x}",
            "bus": self.handle.bus,
            "address": self.handle.address,
            "name": self.handle.name,
            "device_class": self.device_class,
            "is_printer": self.is_printer,
        }


class DiscoveryService:
    """
    Stateless probe for attached USB receipt printers.

    ``discover()`` never raises: enumeration failures are logged with an
    operator hint and reported as "no printer".

    Example:
        >>> discovery = DiscoveryService(vendor_id=0x04b8)
        >>> handle = discovery.discover()
        >>> if handle:
        ...     print(handle.label)
    """

    def __init__(
        self,
        vendor_id: Optional[int] = None,
        product_id: Optional[int] = None,
        find_devices: Optional[Callable[[], Iterable[Any]]] = None
    ):
        """
        Initialize discovery service.

        Args:
            vendor_id: Only accept devices with this vendor id
            product_id: Only accept devices with this product id (requires vendor_id)
            find_devices: Enumeration function returning pyusb-like devices
        """
        self.vendor_id = vendor_id
        self.product_id = product_id if vendor_id is not None else None
        self._find_devices = find_devices or _find_all_devices

    def enumerate_devices(self) -> List[DiscoveredDevice]:
        """
        Enumerate every attached USB device.

        Returns:
            Devices in the order reported by the device layer

        Raises:
            DiscoveryEnumerationError: If the device layer cannot be queried
        """
        try:
            raw_devices = list(self._find_devices())
        except usb.core.NoBackendError as e:
            raise DiscoveryEnumerationError(
                str(e) or "no libusb backend available",
                hint="Install libusb (e.g. apt install libusb-1.0-0)"
            )
        except usb.core.USBError as e:
            hint = None
            if e.errno == UsbConstants.ERRNO_ACCESS_DENIED or "access" in str(e).lower():
                hint = ("Grant the worker access to USB devices, e.g. add a udev rule "
                        "for the printer vendor or run it in the plugdev group")
            raise DiscoveryEnumerationError(str(e), hint=hint, details={"errno": e.errno})
        except Exception as e:
            raise DiscoveryEnumerationError(str(e), details={"error_type": type(e).__name__})

        devices = []
        for raw in raw_devices:
            handle = DeviceHandle(
                vendor_id=raw.idVendor,
                product_id=raw.idProduct,
                bus=getattr(raw, "bus", None),
                address=getattr(raw, "address", None),
                name=UsbConstants.KNOWN_PRINTER_VENDORS.get(raw.idVendor),
            )
            devices.append(DiscoveredDevice(
                handle=handle,
                device_class=getattr(raw, "bDeviceClass", None),
                is_printer=self._is_printer(raw, handle),
            ))
        return devices

    def list_devices(self) -> List[DiscoveredDevice]:
        """Enumerate devices, logging instead of raising on failure."""
        try:
            return self.enumerate_devices()
        except DiscoveryEnumerationError as e:
            self._log_enumeration_error(e)
            return []

    def discover(self) -> Optional[DeviceHandle]:
        """
        Find the first attached receipt printer.

        Returns:
            Handle of the first matching device in enumeration order, or None
        """
        try:
            devices = self.enumerate_devices()
        except DiscoveryEnumerationError as e:
            self._log_enumeration_error(e)
            return None

        for device in devices:
            if device.is_printer:
                logger.info("Discovered receipt printer", printer=device.handle.label,
                            vendor=device.handle.name)
                return device.handle

        logger.info("No receipt printer attached", usb_devices=len(devices))
        return None

    def _is_printer(self, raw: Any, handle: DeviceHandle) -> bool:
        if self.vendor_id is not None:
            if handle.vendor_id != self.vendor_id:
                return False
            return self.product_id is None or handle.product_id == self.product_id

        if handle.vendor_id in UsbConstants.KNOWN_PRINTER_VENDORS:
            return True
        if getattr(raw, "bDeviceClass", None) == UsbConstants.PRINTER_CLASS:
            return True
        return self._has_printer_interface(raw, handle)

    def _has_printer_interface(self, raw: Any, handle: DeviceHandle) -> bool:
        # Reading descriptors can fail on devices we have no permission for
        try:
            for config in raw:
                for interface in config:
                    if interface.bInterfaceClass == UsbConstants.PRINTER_CLASS:
                        return True
        except Exception as e:
            logger.debug("Cannot read USB interfaces", device=handle.label, error=str(e))
        return False

    def _log_enumeration_error(self, error: DiscoveryEnumerationError) -> None:
        logger.error("USB enumeration failed, treating as no printer",
                     reason=error.reason,
                     hint=error.hint,
                     error_code=error.error_code)
