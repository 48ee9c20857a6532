"""
List attached USB devices and show which one the worker would print to.

Usage:
    barprinter-list-usb
"""
import sys
from typing import List, Optional

from barprinter.services.discovery_service import DiscoveredDevice, DiscoveryService
from barprinter.utils.config import get_settings
from barprinter.utils.errors import DiscoveryEnumerationError
from barprinter.utils.logging_config import setup_logging


def format_devices(devices: List[DiscoveredDevice], selected: Optional[DiscoveredDevice]) -> str:
    """Render the device table."""
    if not devices:
        return "No USB devices detected"

    lines = [f"{'':2}{'VENDOR':8}{'PRODUCT':9}{'BUS':5}{'ADDR':6}{'PRINTER':9}NAME"]
    for device in devices:
        info = device.to_dict()
        marker = "*" if device is selected else ""
        lines.append(
            f"{marker:2}{info['vendor_id']:8}{info['product_id']:9}"
            f"{str(info['bus']):5}{str(info['address']):6}"
            f"{'yes' if device.is_printer else 'no':9}{info['name'] or ''}"
        )
    if selected is not None:
        lines.append(f"\n* worker would print to {selected.handle.label}")
    else:
        lines.append("\nNo receipt printer among the attached devices")
    return "\n".join(lines)


def main() -> None:
    """Console entry point."""
    settings = get_settings()
    setup_logging("warning")

    discovery = DiscoveryService(vendor_id=settings.vendor_id, product_id=settings.product_id)
    try:
        devices = discovery.enumerate_devices()
    except DiscoveryEnumerationError as e:
        print(f"USB enumeration failed: {e.reason}", file=sys.stderr)
        if e.hint:
            print(f"Hint: {e.hint}", file=sys.stderr)
        sys.exit(1)

    selected = next((device for device in devices if device.is_printer), None)
    print(format_devices(devices, selected))


if __name__ == "__main__":
    main()
