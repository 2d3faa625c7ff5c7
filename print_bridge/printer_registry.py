# Printer Registry - configured printers for the print bridge
# Local CRUD over the Config Store plus wholesale sync from the server

import socket
import time
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from .config_store import ConfigStore, KEY_PRINTERS
from .dispatcher import SEND_ERRORS, PrinterDispatcher
from .models import (
    DEFAULT_PRINTER_PORT,
    Printer,
    find_printer,
    printer_from_server,
    printers_from_store,
    printers_to_store,
)

logger = logging.getLogger(__name__)

TEST_CONNECTION_TIMEOUT_MS = 3000


class PrinterRegistry:
    """Owns the printer list. Every mutation rewrites the whole list in one store write."""

    def __init__(self, store: ConfigStore, api_client=None,
                 dispatcher: Optional[PrinterDispatcher] = None,
                 connect: Callable[..., socket.socket] = socket.create_connection):
        self.store = store
        self.api_client = api_client
        self.dispatcher = dispatcher or PrinterDispatcher()
        self._connect = connect
        self.lock = threading.RLock()
        self._last_id = 0

    def list_printers(self) -> List[Printer]:
        return printers_from_store(self.store.get(KEY_PRINTERS, []))

    def enabled_printers(self) -> List[Printer]:
        return [p for p in self.list_printers() if p.enabled]

    def get_printer(self, printer_id: str) -> Optional[Printer]:
        return find_printer(self.list_printers(), printer_id)

    def save_printers(self, printers: List[Printer]):
        with self.lock:
            self.store.set(KEY_PRINTERS, printers_to_store(printers))

    def add_printer(self, name: str, ip: str, port: int = DEFAULT_PRINTER_PORT) -> Printer:
        with self.lock:
            printers = self.list_printers()
            printer = Printer(
                id=self._next_id(printers),
                name=name,
                ip=ip,
                port=int(port),
                enabled=True,
            )
            printers.append(printer)
            self.save_printers(printers)
        logger.info(f"Added printer {printer.name} ({printer.address}) as {printer.id}")
        return printer

    def remove_printer(self, printer_id: str):
        with self.lock:
            printers = [p for p in self.list_printers() if p.id != printer_id]
            self.save_printers(printers)
        logger.info(f"Removed printer {printer_id}")

    def update_printer(self, printer: Printer):
        with self.lock:
            printers = [printer if p.id == printer.id else p for p in self.list_printers()]
            self.save_printers(printers)

    def set_enabled(self, printer_id: str, enabled: bool):
        with self.lock:
            printers = self.list_printers()
            for p in printers:
                if p.id == printer_id:
                    p.enabled = enabled
            self.save_printers(printers)
        logger.info(f"Printer {printer_id} {'enabled' if enabled else 'disabled'}")

    def sync_from_server(self) -> Dict[str, Any]:
        """
        Replace the local printer set with the server's list.

        All or nothing: on any failure the local set is left as it was.
        Returns {'success': True, 'printers': [...]} or {'success': False, 'error': str}.
        """
        if self.api_client is None:
            return {'success': False, 'error': 'No API client configured'}

        result = self.api_client.fetch_printers()
        if not result.get('success'):
            logger.warning(f"Printer sync failed: {result.get('error', 'unknown')}")
            return {'success': False, 'error': result.get('error', 'unknown')}

        try:
            printers = [printer_from_server(item) for item in result.get('printers', [])]
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Printer sync payload could not be decoded: {e}")
            return {'success': False, 'error': str(e)}

        self.save_printers(printers)
        logger.info(f"Synced {len(printers)} printer(s) from server")
        return {'success': True, 'printers': printers}

    def test_connection(self, ip: str, port: int = DEFAULT_PRINTER_PORT,
                        timeout_ms: int = TEST_CONNECTION_TIMEOUT_MS) -> Dict[str, Any]:
        """Open and close a TCP connection. Reachable is not the same as printed."""
        try:
            conn = self._connect((ip, int(port)), timeout=timeout_ms / 1000.0)
            conn.close()
        except SEND_ERRORS as e:
            logger.warning(f"Connection test to {ip}:{port} failed: {e}")
            return {'success': False, 'error': str(e) or type(e).__name__}
        return {'success': True}

    def send_test_print(self, printer: Printer) -> Dict[str, Any]:
        """Connection test, then a short test page"""
        result = self.test_connection(printer.ip, printer.port)
        if not result['success']:
            return result

        payload = self.dispatcher.formatter.format_test_page(printer)
        try:
            self.dispatcher.send(printer, payload)
        except SEND_ERRORS as e:
            logger.error(f"Test print to {printer.name} failed: {e}")
            return {'success': False, 'error': str(e) or type(e).__name__}

        logger.info(f"Test print sent to {printer.name}")
        return {'success': True}

    def _next_id(self, existing: List[Printer]) -> str:
        """Millisecond timestamp, bumped so ids stay unique within the list and process"""
        candidate = max(int(time.time() * 1000), self._last_id + 1)
        taken = {p.id for p in existing}
        while str(candidate) in taken:
            candidate += 1
        self._last_id = candidate
        return str(candidate)
