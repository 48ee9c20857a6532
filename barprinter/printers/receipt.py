"""
Drink ticket layout.
"""
from barprinter.config.constants import ReceiptConstants
from barprinter.printers.base import PrinterConnection


def render_order_ticket(
    connection: PrinterConnection,
    drink: str,
    client_name: str,
    placeholder: str = ReceiptConstants.CLIENT_PLACEHOLDER
) -> None:
    """
    Render one drink ticket on an open printer session.

    Layout: drink name centered in bold double size, a blank line, the client
    name centered in normal size, then feed and cut.

    Raises:
        DeviceWriteError: If the printer rejects any of the commands
    """
    client = (client_name or "").strip() or placeholder

    connection.set_style(align="center", bold=True, large=True)
    connection.text(f"{(drink or '').strip()}\n")
    connection.text("\n")
    connection.set_style(align="center", bold=False, large=False)
    connection.text(f"{client}\n")
    connection.feed(ReceiptConstants.FEED_LINES_BEFORE_CUT)
    connection.cut()
