"""
Barprinter - drink order ticket worker.

Watches the shared order queue and prints each pending order on an attached
USB thermal receipt printer.
"""

__version__ = "1.0.0"
