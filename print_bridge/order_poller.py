# Order Poller - control loop of the print bridge
# Fetches pending orders, prints unseen ones, reports them, and reschedules itself

import logging
import threading
import time
from datetime import datetime
from queue import Queue, Empty
from typing import Any, Callable, Dict, List, Optional

from .config_store import AgentSettings
from .dispatcher import PrinterDispatcher
from .models import Order, order_from_json
from .printer_registry import PrinterRegistry
from .processed_orders import ProcessedOrderWindow

logger = logging.getLogger(__name__)

STATE_STOPPED = 'stopped'
STATE_POLLING = 'polling'


class OrderPoller:
    """
    Lifecycle object for the polling worker.

    - One daemon thread runs every cycle, so two cycles never overlap.
    - The next cycle is scheduled only after the current one finishes,
      poll_interval_ms later (read fresh each time).
    - Before each new cycle the stop flag and the auto-print setting are
      checked; either one ends the loop.
    - stop() never interrupts a cycle in flight.
    - Other threads hand work to the worker with post(); posted tasks run
      between cycles.
    """

    SYNC_EVERY = 10  # cycles between printer syncs

    def __init__(self, settings: AgentSettings, registry: PrinterRegistry, api_client,
                 dispatcher: Optional[PrinterDispatcher] = None,
                 window: Optional[ProcessedOrderWindow] = None):
        self.settings = settings
        self.registry = registry
        self.api_client = api_client
        self.dispatcher = dispatcher or registry.dispatcher
        self.window = window if window is not None else ProcessedOrderWindow()

        self._state = STATE_STOPPED
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._tasks: Queue = Queue()
        self._thread: Optional[threading.Thread] = None

        # Worker-thread counters
        self.sync_counter = 0
        self.cycles = 0
        self.orders_printed = 0
        self.orders_failed = 0
        self.last_cycle_at: Optional[str] = None

    @property
    def state(self) -> str:
        if self._state == STATE_POLLING and not self._stop.is_set():
            return STATE_POLLING
        return STATE_STOPPED

    @property
    def is_running(self) -> bool:
        return self.state == STATE_POLLING

    def start(self) -> bool:
        """Enter polling. Returns False if auto-print is disabled."""
        if not self.settings.auto_print_enabled:
            logger.info("Auto-print is disabled, not starting poller")
            return False

        with self._lock:
            if self._state == STATE_POLLING:
                # Either already running or stopping after its current cycle; keep it going
                self._stop.clear()
                return True
            self._stop.clear()
            self._state = STATE_POLLING
            self._thread = threading.Thread(target=self._loop, name='order-poller', daemon=True)
            self._thread.start()

        logger.info("Order poller started")
        return True

    def stop(self):
        """Stop after the cycle in flight (if any). Does not block."""
        with self._lock:
            self._stop.set()
            self._tasks.put(None)  # wake the worker if it is waiting
        logger.info("Order poller stopping")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker thread to exit. True if it has."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def post(self, task: Callable[[], Any]) -> bool:
        """Queue a task for the worker thread. False if the poller is not running."""
        # Same lock as the exit decision: an accepted task is always run
        with self._lock:
            if not self.is_running:
                return False
            self._tasks.put(task)
        return True

    def _loop(self):
        try:
            self.sync_printers()
            while True:
                self.run_cycle()
                self._wait_next_cycle()
                if not self._keep_polling():
                    break
        except Exception:
            # run_cycle never raises; only a settings read can get here
            logger.exception("Order poller crashed")
            with self._lock:
                self._state = STATE_STOPPED
        logger.info("Order poller stopped")

    def _keep_polling(self) -> bool:
        """Run queued tasks, then decide whether another cycle follows"""
        while True:
            self._run_tasks()
            with self._lock:
                if not self._tasks.empty():
                    continue
                if self._stop.is_set():
                    self._state = STATE_STOPPED
                    return False
                if not self.settings.auto_print_enabled:
                    logger.info("Auto-print disabled, order poller stopping")
                    self._state = STATE_STOPPED
                    return False
                return True

    def _wait_next_cycle(self):
        """Sleep poll_interval_ms, running posted tasks as they arrive"""
        deadline = time.monotonic() + self.settings.poll_interval_ms / 1000.0
        while not self._stop.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            try:
                task = self._tasks.get(timeout=remaining)
            except Empty:
                return
            self._run_task(task)

    def _run_tasks(self):
        while True:
            try:
                task = self._tasks.get_nowait()
            except Empty:
                return
            self._run_task(task)

    def _run_task(self, task: Optional[Callable[[], Any]]):
        if task is None:
            return
        try:
            task()
        except Exception:
            logger.exception("Posted task failed")

    def run_cycle(self) -> List[str]:
        """One poll cycle. Never raises. Returns ids of orders printed."""
        printed: List[str] = []
        try:
            self.sync_counter += 1
            if self.sync_counter >= self.SYNC_EVERY:
                self.sync_counter = 0
                self.sync_printers()

            orders = self.api_client.fetch_pending_orders()
            for raw in orders:
                order = order_from_json(raw)
                if not order.id or order.id in self.window:
                    continue
                self.window.add(order.id)
                try:
                    if self.print_order(order):
                        printed.append(order.id)
                except Exception:
                    logger.exception(f"Error printing order {order.id}")
        except Exception:
            logger.exception("Error polling orders")
        finally:
            self.cycles += 1
            self.last_cycle_at = datetime.now().isoformat()
        return printed

    def print_order(self, order: Order) -> bool:
        """Fan the order out; on any success record it and tell the server"""
        result = self.dispatcher.dispatch(order, self.registry.list_printers())
        if not result.any_succeeded:
            self.orders_failed += 1
            logger.warning(f"Order {order.id} was not printed on any printer")
            return False

        self.orders_printed += 1
        self.settings.last_order_id = order.id
        self.api_client.report_printed(order.id)
        return True

    def sync_printers(self) -> Dict[str, Any]:
        try:
            return self.registry.sync_from_server()
        except Exception as e:
            logger.exception("Printer sync failed")
            return {'success': False, 'error': str(e)}

    def status(self) -> Dict[str, Any]:
        return {
            'state': self.state,
            'running': self.is_running,
            'cycles': self.cycles,
            'sync_counter': self.sync_counter,
            'orders_printed': self.orders_printed,
            'orders_failed': self.orders_failed,
            'processed_orders': len(self.window),
            'last_cycle_at': self.last_cycle_at,
            'settings': self.settings.as_dict(),
            'printers': [p.to_dict() for p in self.registry.list_printers()],
        }
