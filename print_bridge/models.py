# Data models for the RestoRank print bridge
# Printer / Order records and the JSON field mapping used to build them

import uuid
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_PRINTER_PORT = 9100
DEFAULT_PRINTER_NAME = "Printer"
DEFAULT_ORDER_TYPE = "Dine-in"
DEFAULT_ITEM_NAME = "Item"

# Server payloads are not consistent about key names; first key present wins.
SERVER_PRINTER_KEYS = {
    'id': ('id',),
    'name': ('name',),
    'ip': ('networkIp', 'ipAddress'),
    'port': ('networkPort', 'port'),
    'enabled': ('enabled', 'isEnabled'),
}

ORDER_KEYS = {
    'id': ('id',),
    'type': ('type',),
    'table_name': ('tableName',),
    'items': ('items',),
    'total': ('total',),
}

ORDER_ITEM_KEYS = {
    'name': ('name',),
    'quantity': ('quantity',),
    'unit_price': ('price', 'unitPrice'),
    'notes': ('notes',),
}


@dataclass
class Printer:
    """A network thermal printer reachable on ip:port"""
    id: str
    name: str
    ip: str
    port: int = DEFAULT_PRINTER_PORT
    enabled: bool = True

    @property
    def address(self) -> str:
        return f"{self.ip}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        """Config Store form"""
        return {
            'id': self.id,
            'name': self.name,
            'ip': self.ip,
            'port': self.port,
            'isEnabled': self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Printer':
        """Build from the Config Store form. Raises KeyError/TypeError/ValueError on bad data."""
        return cls(
            id=str(data['id']),
            name=str(data['name']),
            ip=str(data['ip']),
            port=int(data.get('port', DEFAULT_PRINTER_PORT)),
            enabled=parse_bool(data.get('isEnabled', True)),
        )


@dataclass
class OrderItem:
    """One line on a kitchen ticket"""
    name: str = DEFAULT_ITEM_NAME
    quantity: int = 1
    unit_price: Decimal = Decimal('0')
    notes: str = ""

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class Order:
    """An order pending print, as listed by the server"""
    id: str = ""
    type: str = DEFAULT_ORDER_TYPE
    table_name: str = ""
    items: List[OrderItem] = field(default_factory=list)
    total: Decimal = Decimal('0')


def pick(data: Dict[str, Any], keys: Sequence[str], default: Any = None) -> Any:
    """Return the value of the first key present (and not null) in data."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ('false', '0', 'no', 'off', '')
    return bool(value)


def _to_int(value: Any, default: int) -> int:
    """Whole numbers, including JSON floats like 2.0; fractions are truncated"""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return default


def _to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal('0')
    try:
        # str() first so floats like 2.5 don't drag binary noise along
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal('0')
    if not result.is_finite():
        return Decimal('0')
    return result


def _to_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def printer_from_server(data: Dict[str, Any]) -> Printer:
    """Decode one element of GET /api/restaurants/{id}/printers"""
    keys = SERVER_PRINTER_KEYS
    printer_id = pick(data, keys['id'])
    return Printer(
        id=_to_str(printer_id) if printer_id not in (None, "") else str(uuid.uuid4()),
        name=_to_str(pick(data, keys['name']), DEFAULT_PRINTER_NAME),
        ip=_to_str(pick(data, keys['ip']), ""),
        port=_to_int(pick(data, keys['port'], DEFAULT_PRINTER_PORT), DEFAULT_PRINTER_PORT),
        enabled=parse_bool(pick(data, keys['enabled'], True)),
    )


def order_item_from_json(data: Dict[str, Any]) -> OrderItem:
    keys = ORDER_ITEM_KEYS
    quantity = _to_int(pick(data, keys['quantity'], 1), 1)
    return OrderItem(
        name=_to_str(pick(data, keys['name']), DEFAULT_ITEM_NAME),
        quantity=quantity if quantity >= 1 else 1,
        unit_price=_to_decimal(pick(data, keys['unit_price'])),
        notes=_to_str(pick(data, keys['notes'])),
    )


def order_from_json(data: Dict[str, Any]) -> Order:
    """Decode one element of GET .../orders/pending-print. Never raises on missing fields."""
    keys = ORDER_KEYS
    raw_items = pick(data, keys['items'], [])
    items = []
    if isinstance(raw_items, list):
        for raw in raw_items:
            if isinstance(raw, dict):
                items.append(order_item_from_json(raw))
            else:
                logger.debug("Skipping malformed order item: %r", raw)
    return Order(
        id=_to_str(pick(data, keys['id'])),
        type=_to_str(pick(data, keys['type']), DEFAULT_ORDER_TYPE),
        table_name=_to_str(pick(data, keys['table_name'])),
        items=items,
        total=_to_decimal(pick(data, keys['total'])),
    )


def printers_from_store(raw: Any) -> List[Printer]:
    """Decode the persisted printer list. Anything malformed gives an empty list."""
    if not isinstance(raw, list):
        return []
    try:
        return [Printer.from_dict(item) for item in raw]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Stored printer list is malformed, ignoring it: {e}")
        return []


def printers_to_store(printers: Sequence[Printer]) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in printers]


def find_printer(printers: Sequence[Printer], printer_id: str) -> Optional[Printer]:
    for p in printers:
        if p.id == printer_id:
            return p
    return None
