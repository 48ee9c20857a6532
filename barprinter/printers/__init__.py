"""
Receipt printer drivers for the barprinter worker.
"""
from .base import PrinterConnection, PrinterDriver
from .escpos_usb import EscposUsbDriver
from .receipt import render_order_ticket

__all__ = [
    'PrinterConnection',
    'PrinterDriver',
    'EscposUsbDriver',
    'render_order_ticket',
]
