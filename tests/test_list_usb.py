"""Tests for the USB listing tool."""
from barprinter.tools.list_usb import format_devices

from conftest import epson_printer, usb_keyboard


def test_empty_bus():
    assert format_devices([], None) == "No USB devices detected"


def test_marks_selected_printer(usb_bus, discovery):
    usb_bus.attach(usb_keyboard())
    usb_bus.attach(epson_printer())
    devices = discovery.enumerate_devices()

    output = format_devices(devices, devices[1])

    lines = output.splitlines()
    assert lines[1].startswith("  0x046d")
    assert lines[2].startswith("* 0x04b8")
    assert "Epson" in lines[2]
    assert "worker would print to 0x04b8:0x0202" in output


def test_reports_missing_printer(usb_bus, discovery):
    usb_bus.attach(usb_keyboard())

    output = format_devices(discovery.enumerate_devices(), None)

    assert "No receipt printer" in output
