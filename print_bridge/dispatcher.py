# Printer Dispatcher - raw TCP fan-out of tickets to network printers
# Each printer is independent: one offline or misconfigured printer never blocks the others

import socket
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from .models import Order, Printer
from .receipt_formatter import ReceiptFormatter

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0  # seconds
IO_TIMEOUT = 5.0

# What a bad address can raise from create_connection besides OSError:
# UnicodeError (a ValueError) for malformed host names, OverflowError for ports out of range
SEND_ERRORS = (OSError, ValueError, OverflowError)


@dataclass
class PrintOutcome:
    """Result of sending one payload to one printer"""
    printer_id: str
    printer_name: str
    success: bool
    error: str = ""


@dataclass
class DispatchResult:
    """Aggregate of one order's fan-out"""
    any_succeeded: bool = False
    outcomes: List[PrintOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return [o.printer_id for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[str]:
        return [o.printer_id for o in self.outcomes if not o.success]


class PrinterDispatcher:
    """Sends formatted tickets to every enabled printer, sequentially"""

    def __init__(self, formatter: Optional[ReceiptFormatter] = None,
                 connect: Callable[..., socket.socket] = socket.create_connection,
                 connect_timeout: float = CONNECT_TIMEOUT,
                 io_timeout: float = IO_TIMEOUT):
        self.formatter = formatter or ReceiptFormatter()
        self._connect = connect
        self.connect_timeout = connect_timeout
        self.io_timeout = io_timeout

    def send(self, printer: Printer, payload: bytes):
        """Write payload to one printer. Raises one of SEND_ERRORS on failure."""
        conn = self._connect((printer.ip, printer.port), timeout=self.connect_timeout)
        try:
            conn.settimeout(self.io_timeout)
            conn.sendall(payload)
        finally:
            conn.close()

    def dispatch(self, order: Order, printers: Sequence[Printer],
                 now: Optional[datetime] = None) -> DispatchResult:
        """Print order on every enabled printer; any_succeeded if at least one took it"""
        targets = [p for p in printers if p.enabled]
        if not targets:
            logger.warning("No enabled printers configured")
            return DispatchResult(any_succeeded=False)

        payload = self.formatter.format(order, now=now)
        result = DispatchResult()

        for printer in targets:
            try:
                self.send(printer, payload)
            except SEND_ERRORS as e:
                logger.error(f"Failed to print order {order.id} to {printer.name} ({printer.address}): {e}")
                result.outcomes.append(PrintOutcome(printer.id, printer.name, False, str(e) or type(e).__name__))
                continue

            logger.info(f"Printed order {order.id} to {printer.name} ({len(payload)} bytes)")
            result.outcomes.append(PrintOutcome(printer.id, printer.name, True))
            result.any_succeeded = True

        return result
