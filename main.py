#!/usr/bin/env python3
"""
RestoRank Print Bridge - background auto-print agent with a local control endpoint
"""

import sys
import json
import logging
import argparse
from datetime import datetime
from http.server import HTTPServer, BaseHTTPRequestHandler
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, parse_qs

from print_bridge.api_client import ApiClient
from print_bridge.config_store import (
    AgentSettings,
    ConfigStore,
    DEFAULT_CONTROL_PORT,
    DEFAULT_DB_PATH,
    load_config_file,
    seed_store,
)
from print_bridge.dispatcher import PrinterDispatcher
from print_bridge.logging_config import set_error_alert_callback, setup_logging
from print_bridge.order_poller import OrderPoller
from print_bridge.printer_registry import PrinterRegistry
from print_bridge.receipt_formatter import ReceiptFormatter

logger = logging.getLogger(__name__)


class BridgeAgent:
    """Wires the store, registry, dispatcher, API client and poller together"""

    def __init__(self, config: dict):
        self.store = ConfigStore(config.get('db_path', DEFAULT_DB_PATH))
        seed_store(self.store, config)
        self.settings = AgentSettings(self.store)
        self.api_client = ApiClient(self.settings)
        formatter = ReceiptFormatter(
            brand=config.get('brand', ReceiptFormatter.DEFAULT_BRAND),
            currency=config.get('currency', ReceiptFormatter.DEFAULT_CURRENCY),
        )
        self.dispatcher = PrinterDispatcher(formatter)
        self.registry = PrinterRegistry(self.store, self.api_client, self.dispatcher)
        self.poller = OrderPoller(self.settings, self.registry, self.api_client, self.dispatcher)

        self.error_count = 0
        self.last_error: Optional[dict] = None
        set_error_alert_callback(self.record_error)

    def start(self) -> bool:
        logger.info(f"Print bridge starting for restaurant {self.settings.restaurant_id} "
                    f"at {self.settings.server_url}")
        return self.poller.start()

    def stop(self):
        self.poller.stop()

    def set_auto_print(self, enabled: bool):
        self.settings.auto_print_enabled = enabled
        if enabled:
            self.poller.start()
        # Disabling needs no call: the poller checks the flag before its next cycle

    def sync_printers(self) -> dict:
        # Registry writes belong to the worker while it runs
        if self.poller.post(self.poller.sync_printers):
            return {'success': True, 'queued': True}
        result = self.registry.sync_from_server()
        if result.get('success'):
            result['printers'] = [p.to_dict() for p in result['printers']]
        return result

    def test_printer(self, printer_id: str) -> dict:
        printer = self.registry.get_printer(printer_id)
        if printer is None:
            return {'success': False, 'error': f"Unknown printer {printer_id}"}
        if self.poller.post(lambda: self.registry.send_test_print(printer)):
            return {'success': True, 'queued': True}
        return self.registry.send_test_print(printer)

    def record_error(self, message: str, level: str):
        """Alert hook: keep the latest ERROR log line for /status"""
        self.error_count += 1
        self.last_error = {'message': message, 'level': level, 'at': datetime.now().isoformat()}

    def get_status(self) -> dict:
        status = self.poller.status()
        status['errors'] = {'count': self.error_count, 'last': self.last_error}
        return status


def make_handler(agent: BridgeAgent):
    """JSON control endpoint bound to one agent"""

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            url = urlparse(self.path)
            query = parse_qs(url.query)

            if url.path == '/status':
                self._send_json(200, agent.get_status())
            elif url.path == '/start':
                started = agent.start()
                self._send_json(200, {'success': started, 'state': agent.poller.state})
            elif url.path == '/stop':
                agent.stop()
                self._send_json(200, {'success': True, 'state': agent.poller.state})
            elif url.path == '/sync':
                self._send_json(200, agent.sync_printers())
            elif url.path == '/auto-print':
                value = query.get('enabled', [''])[0].lower()
                if value not in ('0', '1', 'true', 'false'):
                    self._send_json(400, {'success': False, 'error': 'enabled must be 0 or 1'})
                    return
                agent.set_auto_print(value in ('1', 'true'))
                self._send_json(200, {'success': True, 'auto_print_enabled': agent.settings.auto_print_enabled})
            elif url.path == '/test':
                printer_id = query.get('printer', [''])[0]
                if not printer_id:
                    self._send_json(400, {'success': False, 'error': 'printer is required'})
                    return
                self._send_json(200, agent.test_printer(printer_id))
            else:
                self._send_json(404, {'success': False, 'error': 'Not found'})

        def _send_json(self, code: int, body: dict):
            data = json.dumps(body).encode()
            self.send_response(code)
            self.send_header('Content-type', 'application/json')
            self.send_header('Content-Length', str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format, *args):
            logger.debug("control: " + format, *args)

    return Handler


def cmd_run(agent: BridgeAgent, args, config: dict) -> int:
    if not agent.start():
        logger.warning("Auto-print is disabled; enable it via /auto-print?enabled=1")

    port = getattr(args, 'control_port', None) or config.get('control_port', DEFAULT_CONTROL_PORT)
    server = HTTPServer(('127.0.0.1', port), make_handler(agent))

    print("=" * 50)
    print("  RestoRank Print Bridge")
    print("=" * 50)
    print(f"Server: {agent.settings.server_url}")
    print(f"Printers: {len(agent.registry.list_printers())} configured")
    print(f"Control: http://127.0.0.1:{port}/status")
    print("=" * 50)
    print("Press Ctrl+C to stop")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        server.server_close()
        agent.stop()
        agent.poller.join(timeout=15)
    return 0


def cmd_printers(agent: BridgeAgent, args) -> int:
    registry = agent.registry

    if args.action == 'list':
        for p in registry.list_printers():
            state = 'on ' if p.enabled else 'off'
            print(f"{p.id:<38} {state} {p.name:<20} {p.address}")
        return 0

    if args.action == 'add':
        printer = registry.add_printer(args.name, args.ip, args.port)
        print(f"Added {printer.name} as {printer.id}")
        return 0

    if args.action == 'sync':
        result = registry.sync_from_server()
        if not result['success']:
            print(f"Sync failed: {result['error']}")
            return 1
        print(f"Synced {len(result['printers'])} printer(s) from server")
        return 0

    printer = registry.get_printer(args.id)
    if printer is None:
        print(f"Unknown printer {args.id}")
        return 1

    if args.action == 'remove':
        registry.remove_printer(printer.id)
    elif args.action in ('enable', 'disable'):
        registry.set_enabled(printer.id, args.action == 'enable')
    elif args.action == 'test':
        result = registry.send_test_print(printer)
        if not result['success']:
            print(f"Test failed: {result['error']}")
            return 1
        print(f"Test print sent to {printer.name}")
    return 0


def cmd_config(agent: BridgeAgent, args) -> int:
    settings = agent.settings
    if args.action == 'show':
        print(json.dumps(settings.as_dict(), indent=2))
        return 0

    if args.key == 'poll_interval_ms':
        settings.poll_interval_ms = int(args.value)
    elif args.key == 'auto_print_enabled':
        settings.auto_print_enabled = args.value.lower() in ('1', 'true', 'yes', 'on')
    elif args.key == 'server_url':
        settings.server_url = args.value
    elif args.key == 'restaurant_id':
        settings.restaurant_id = args.value
    print(json.dumps(settings.as_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="print-bridge",
        description="RestoRank Print Bridge - print new orders on network thermal printers",
    )
    parser.add_argument("--config", metavar="PATH", help="Bootstrap config.json (default: next to main.py)")
    parser.add_argument("--db", metavar="PATH", help="Config Store database path")
    parser.add_argument("--log", metavar="PATH", help="Log file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run the auto-print agent (default)")
    run.add_argument("-p", "--control-port", type=int, metavar="PORT",
                     help=f"Local control endpoint port (default: {DEFAULT_CONTROL_PORT})")

    printers = sub.add_parser("printers", help="Manage configured printers")
    psub = printers.add_subparsers(dest="action", required=True)
    psub.add_parser("list", help="List printers")
    add = psub.add_parser("add", help="Add a printer")
    add.add_argument("name")
    add.add_argument("ip")
    add.add_argument("--port", type=int, default=9100)
    for action in ("remove", "enable", "disable", "test"):
        p = psub.add_parser(action, help=f"{action.capitalize()} a printer")
        p.add_argument("id")
    psub.add_parser("sync", help="Replace printers with the server's list")

    config = sub.add_parser("config", help="Show or change agent settings")
    csub = config.add_subparsers(dest="action", required=True)
    csub.add_parser("show", help="Print current settings")
    cset = csub.add_parser("set", help="Change a setting")
    cset.add_argument("key", choices=["server_url", "restaurant_id", "poll_interval_ms", "auto_print_enabled"])
    cset.add_argument("value")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config_file(Path(args.config) if args.config else None)
    if args.db:
        config['db_path'] = args.db

    command = args.command or 'run'
    setup_logging(
        log_path=args.log or config.get('log_path'),
        console=command == 'run',
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    agent = BridgeAgent(config)
    if command == 'printers':
        return cmd_printers(agent, args)
    if command == 'config':
        return cmd_config(agent, args)
    return cmd_run(agent, args, config)


if __name__ == '__main__':
    sys.exit(main())
