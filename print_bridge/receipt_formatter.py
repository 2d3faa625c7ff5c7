# Receipt Formatter - ESC/POS kitchen tickets for the print bridge
# Renders an Order into the byte stream sent to thermal printers

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .models import Order, Printer

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


class ReceiptFormatter:
    """Builds ESC/POS byte streams. Alignment and emphasis are printer modes,
    so commands must be emitted in exactly this order."""

    # ESC/POS command constants
    ESC = b'\x1b'
    GS = b'\x1d'
    LF = b'\x0a'

    CMD_INITIALIZE = ESC + b'@'          # ESC @ Initialize
    CMD_ALIGN_LEFT = ESC + b'a\x00'      # ESC a 0
    CMD_ALIGN_CENTER = ESC + b'a\x01'    # ESC a 1
    CMD_ALIGN_RIGHT = ESC + b'a\x02'     # ESC a 2
    CMD_BOLD_ON = ESC + b'E\x01'         # ESC E 1
    CMD_BOLD_OFF = ESC + b'E\x00'        # ESC E 0
    CMD_DOUBLE_HEIGHT = GS + b'!\x10'    # GS ! Character size
    CMD_NORMAL_SIZE = GS + b'!\x00'
    CMD_CUT = GS + b'V\x01'              # GS V 1 Partial cut

    LINE_WIDTH = 32  # characters on 58mm paper
    FEED_LINES = 3

    DEFAULT_BRAND = 'RESTORANK'
    DEFAULT_CURRENCY = 'RM'

    def __init__(self, brand: str = DEFAULT_BRAND, currency: str = DEFAULT_CURRENCY):
        self.brand = brand
        self.currency = currency

    def format(self, order: Order, now: Optional[datetime] = None) -> bytes:
        """Render a kitchen ticket. Same order and same `now` give identical bytes."""
        now = now or datetime.now()
        out = bytearray()

        out += self.CMD_INITIALIZE

        # Header
        out += self.CMD_ALIGN_CENTER
        out += self.CMD_BOLD_ON
        out += self.CMD_DOUBLE_HEIGHT
        out += self._line(self.brand)
        out += self.CMD_NORMAL_SIZE
        out += self._line('Kitchen Ticket')
        out += self.CMD_BOLD_OFF
        out += self._rule('=')

        # Order details
        out += self.CMD_ALIGN_LEFT
        out += self._line(f"Order: #{self.short_order_id(order.id)}")
        out += self._line(f"Type: {order.type}")
        if order.table_name:
            out += self._line(f"Table: {order.table_name}")
        out += self._line(f"Time: {now.strftime('%H:%M')}")
        out += self._rule('-')

        # Items
        out += self.CMD_BOLD_ON
        for item in order.items:
            out += self._line(f"{item.quantity}x {item.name}")
            out += self._line(f"   {self.money(item.line_total)}")
            if item.notes:
                out += self._line(f"   > {item.notes}")
        out += self.CMD_BOLD_OFF
        out += self._rule('=')

        # Total
        out += self.CMD_ALIGN_RIGHT
        out += self.CMD_BOLD_ON
        out += self._line(f"TOTAL: {self.money(order.total)}")
        out += self.CMD_BOLD_OFF

        out += self.LF * self.FEED_LINES
        out += self.CMD_CUT

        logger.debug(f"Formatted order {order.id or 'N/A'}: {len(order.items)} items, {len(out)} bytes")
        return bytes(out)

    def format_test_page(self, printer: Printer, now: Optional[datetime] = None) -> bytes:
        """Short page proving a printer accepts raw jobs"""
        now = now or datetime.now()
        out = bytearray()

        out += self.CMD_INITIALIZE
        out += self.CMD_ALIGN_CENTER
        out += self.CMD_BOLD_ON
        out += self._line(f"{self.brand} BRIDGE")
        out += self.CMD_BOLD_OFF
        out += self._line('Test Print')
        out += self._rule('=')
        out += self.CMD_ALIGN_LEFT
        out += self._line(f"Printer: {printer.name}")
        out += self._line(f"IP: {printer.address}")
        out += self._line(f"Time: {now.strftime('%Y-%m-%d %H:%M:%S')}")
        out += self._rule('=')
        out += self.CMD_ALIGN_CENTER
        out += self._line('Printer is working!')
        out += self.LF * self.FEED_LINES
        out += self.CMD_CUT
        return bytes(out)

    def money(self, amount: Decimal) -> str:
        # Half-up: 0.125 prints 0.13
        text = str(amount.quantize(CENT, rounding=ROUND_HALF_UP))
        return f"{self.currency} {text}" if self.currency else text

    @staticmethod
    def short_order_id(order_id: str) -> str:
        """Kitchen staff only need the tail of long server ids"""
        return order_id[-6:] if order_id else 'N/A'

    def _line(self, text: str) -> bytes:
        return text.encode('utf-8') + self.LF

    def _rule(self, char: str) -> bytes:
        return self._line(char * self.LINE_WIDTH)


# Test function
if __name__ == '__main__':
    from .models import OrderItem

    sample = Order(
        id='ord-00012345',
        table_name='T4',
        items=[
            OrderItem('Burger', 2, Decimal('5.00')),
            OrderItem('Fries', 1, Decimal('2.50'), notes='no salt'),
        ],
        total=Decimal('12.50'),
    )
    ticket = ReceiptFormatter().format(sample)
    print(f"{len(ticket)} bytes")
    print(ticket.decode('utf-8', errors='replace'))
