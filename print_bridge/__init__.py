# RestoRank Print Bridge
# Polls the order server and prints kitchen tickets on network thermal printers

__version__ = '0.1.0'

from .models import Printer, Order, OrderItem
from .config_store import ConfigStore, AgentSettings
from .receipt_formatter import ReceiptFormatter
from .dispatcher import PrinterDispatcher, DispatchResult, PrintOutcome
from .api_client import ApiClient
from .printer_registry import PrinterRegistry
from .processed_orders import ProcessedOrderWindow
from .order_poller import OrderPoller

__all__ = [
    'Printer',
    'Order',
    'OrderItem',
    'ConfigStore',
    'AgentSettings',
    'ReceiptFormatter',
    'PrinterDispatcher',
    'DispatchResult',
    'PrintOutcome',
    'ApiClient',
    'PrinterRegistry',
    'ProcessedOrderWindow',
    'OrderPoller',
]
