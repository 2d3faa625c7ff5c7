# Tests for Printer Registry

import socket

import pytest

from print_bridge.config_store import ConfigStore, KEY_PRINTERS
from print_bridge.dispatcher import PrinterDispatcher
from print_bridge.models import Printer
from print_bridge.printer_registry import PrinterRegistry


class MockApi:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def fetch_printers(self):
        self.calls += 1
        return self.result


class MockConnection:
    def __init__(self):
        self.sent = b''
        self.closed = False

    def settimeout(self, timeout):
        self.timeout = timeout

    def sendall(self, data):
        self.sent += data

    def close(self):
        self.closed = True


class MockConnector:
    """Stands in for socket.create_connection"""

    def __init__(self, unreachable=()):
        self.unreachable = set(unreachable)
        self.calls = []
        self.connections = []

    def __call__(self, address, timeout=None):
        self.calls.append((address, timeout))
        if address[0] in self.unreachable:
            raise ConnectionRefusedError(f"refused {address[0]}")
        conn = MockConnection()
        self.connections.append(conn)
        return conn


@pytest.fixture
def store(tmp_path):
    return ConfigStore(tmp_path / 'bridge.db')


class TestLocalEdits:
    """Test add/remove/update/enable"""

    def test_empty_by_default(self, store):
        assert PrinterRegistry(store).list_printers() == []

    def test_add_printer(self, store):
        registry = PrinterRegistry(store)

        printer = registry.add_printer('Kitchen', '10.0.0.5')

        assert printer.port == 9100
        assert printer.enabled is True
        assert registry.list_printers() == [printer]

    def test_add_assigns_unique_increasing_ids(self, store):
        registry = PrinterRegistry(store)

        ids = [registry.add_printer(f"P{i}", '10.0.0.5').id for i in range(5)]

        assert len(set(ids)) == 5
        assert [int(i) for i in ids] == sorted(int(i) for i in ids)

    def test_remove_printer(self, store):
        registry = PrinterRegistry(store)
        a = registry.add_printer('A', '10.0.0.1')
        b = registry.add_printer('B', '10.0.0.2')

        registry.remove_printer(a.id)

        assert registry.list_printers() == [b]

    def test_update_printer(self, store):
        registry = PrinterRegistry(store)
        a = registry.add_printer('A', '10.0.0.1')

        registry.update_printer(Printer(a.id, 'Grill', '10.0.0.9', 9101, True))

        assert registry.get_printer(a.id) == Printer(a.id, 'Grill', '10.0.0.9', 9101, True)

    def test_set_enabled(self, store):
        registry = PrinterRegistry(store)
        a = registry.add_printer('A', '10.0.0.1')
        b = registry.add_printer('B', '10.0.0.2')

        registry.set_enabled(a.id, False)

        assert registry.get_printer(a.id).enabled is False
        assert registry.enabled_printers() == [b]

    def test_malformed_store_lists_empty(self, store):
        store.set(KEY_PRINTERS, [{'name': 'missing id and ip'}])

        assert PrinterRegistry(store).list_printers() == []

    def test_order_preserved(self, store):
        registry = PrinterRegistry(store)
        names = ['Kitchen', 'Bar', 'Grill']
        for name in names:
            registry.add_printer(name, '10.0.0.1')

        assert [p.name for p in registry.list_printers()] == names


class TestSyncFromServer:
    """Test wholesale replacement from the server"""

    def test_sync_replaces_local_set(self, store):
        api = MockApi({'success': True, 'printers': [
            {'id': 's1', 'name': 'Kitchen', 'networkIp': '10.0.0.5', 'networkPort': 9100},
            {'id': 's2', 'name': 'Bar', 'ipAddress': '10.0.0.6', 'port': '9101', 'isEnabled': False},
        ]})
        registry = PrinterRegistry(store, api)
        registry.add_printer('Local only', '10.0.0.99')

        result = registry.sync_from_server()

        assert result['success'] is True
        assert registry.list_printers() == [
            Printer('s1', 'Kitchen', '10.0.0.5', 9100, True),
            Printer('s2', 'Bar', '10.0.0.6', 9101, False),
        ]
        assert result['printers'] == registry.list_printers()

    def test_sync_to_empty_list_clears(self, store):
        registry = PrinterRegistry(store, MockApi({'success': True, 'printers': []}))
        registry.add_printer('Local only', '10.0.0.99')

        registry.sync_from_server()

        assert registry.list_printers() == []

    def test_failed_sync_keeps_local_set(self, store):
        registry = PrinterRegistry(store, MockApi({'success': False, 'error': 'Server returned 500'}))
        before = [registry.add_printer('A', '10.0.0.1'), registry.add_printer('B', '10.0.0.2')]

        result = registry.sync_from_server()

        assert result == {'success': False, 'error': 'Server returned 500'}
        assert registry.list_printers() == before

    def test_sync_without_api_client(self, store):
        assert PrinterRegistry(store).sync_from_server()['success'] is False


class TestConnectionTest:
    """Test reachability check and test page"""

    def test_reachable(self, store):
        connector = MockConnector()
        registry = PrinterRegistry(store, connect=connector)

        result = registry.test_connection('10.0.0.5', 9100)

        assert result == {'success': True}
        assert connector.calls == [(('10.0.0.5', 9100), 3.0)]
        assert connector.connections[0].closed
        assert connector.connections[0].sent == b''

    def test_unreachable(self, store):
        registry = PrinterRegistry(store, connect=MockConnector(unreachable=['10.0.0.5']))

        result = registry.test_connection('10.0.0.5', 9100, timeout_ms=500)

        assert result['success'] is False
        assert 'refused' in result['error']

    def test_timeout(self, store):
        def slow(address, timeout=None):
            raise socket.timeout('timed out')

        result = PrinterRegistry(store, connect=slow).test_connection('10.0.0.5')

        assert result == {'success': False, 'error': 'timed out'}

    def test_send_test_print(self, store):
        connector = MockConnector()
        dispatcher = PrinterDispatcher(connect=connector)
        registry = PrinterRegistry(store, dispatcher=dispatcher, connect=connector)
        printer = registry.add_printer('Kitchen', '10.0.0.5')

        result = registry.send_test_print(printer)

        assert result == {'success': True}
        # connection check, then the print job
        assert len(connector.connections) == 2
        assert b'Printer: Kitchen\n' in connector.connections[1].sent

    def test_send_test_print_unreachable(self, store):
        connector = MockConnector(unreachable=['10.0.0.5'])
        registry = PrinterRegistry(store, dispatcher=PrinterDispatcher(connect=connector), connect=connector)
        printer = registry.add_printer('Kitchen', '10.0.0.5')

        result = registry.send_test_print(printer)

        assert result['success'] is False
        assert len(connector.calls) == 1

    def test_malformed_host(self, store):
        def bad_host(address, timeout=None):
            raise UnicodeError("encoding with 'idna' codec failed (label empty or too long)")

        result = PrinterRegistry(store, connect=bad_host).test_connection('192.168..1')

        assert result['success'] is False
        assert 'idna' in result['error']

    def test_send_test_print_bad_port(self, store):
        connector = MockConnector()

        def send_fails(address, timeout=None):
            raise OverflowError('getsockaddrarg: port must be 0-65535.')

        registry = PrinterRegistry(store, dispatcher=PrinterDispatcher(connect=send_fails), connect=connector)
        printer = registry.add_printer('Kitchen', '10.0.0.5')

        result = registry.send_test_print(printer)

        assert result['success'] is False
        assert 'port must be' in result['error']
