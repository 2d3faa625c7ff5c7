# API Client - REST client for the RestoRank order server
# Fetches pending orders and printers, reports printed orders

import requests
import logging
from typing import Any, Dict, List, Optional

from .config_store import AgentSettings

logger = logging.getLogger(__name__)

ORDERS_TIMEOUT = 10  # seconds, connect and read
PRINTERS_TIMEOUT = 10
REPORT_TIMEOUT = 5


class ApiClient:
    """REST API client for the order server.

    Server URL and restaurant id come from settings on every call, so a
    changed configuration takes effect on the next request.
    """

    def __init__(self, settings: AgentSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': 'RestoRank-Print-Bridge/1.0'
        })

    def _restaurant_url(self, path: str) -> str:
        return f"{self.settings.server_url}/api/restaurants/{self.settings.restaurant_id}{path}"

    def fetch_pending_orders(self) -> List[Dict[str, Any]]:
        """Orders the server has not marked printed yet. Any failure gives []."""
        endpoint = self._restaurant_url('/orders/pending-print')

        try:
            response = self.session.get(
                endpoint,
                headers={'Cache-Control': 'no-cache'},
                timeout=(ORDERS_TIMEOUT, ORDERS_TIMEOUT)
            )
        except requests.exceptions.Timeout:
            logger.warning("Timeout fetching pending orders")
            return []
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to fetch orders: {e}")
            return []

        if response.status_code != 200:
            logger.warning(f"Pending orders request returned {response.status_code}")
            return []

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"Pending orders response is not JSON: {e}")
            return []

        if not isinstance(payload, list):
            logger.error(f"Pending orders response is not a list: {type(payload).__name__}")
            return []

        orders = [o for o in payload if isinstance(o, dict)]
        if len(orders) != len(payload):
            logger.warning(f"Skipped {len(payload) - len(orders)} malformed order entries")
        return orders

    def fetch_printers(self) -> Dict[str, Any]:
        """Raw printer list for this restaurant"""
        endpoint = self._restaurant_url('/printers')

        try:
            response = self.session.get(endpoint, timeout=(PRINTERS_TIMEOUT, PRINTERS_TIMEOUT))
        except requests.exceptions.RequestException as e:
            return {
                'success': False,
                'error': str(e)
            }

        if response.status_code != 200:
            return {
                'success': False,
                'error': f"Server returned {response.status_code}",
                'status_code': response.status_code
            }

        try:
            payload = response.json()
        except ValueError as e:
            return {
                'success': False,
                'error': f"Invalid JSON: {e}",
                'status_code': response.status_code
            }

        if not isinstance(payload, list) or not all(isinstance(p, dict) for p in payload):
            return {
                'success': False,
                'error': 'Printer list must be a JSON array of objects',
                'status_code': response.status_code
            }

        return {
            'success': True,
            'printers': payload,
            'status_code': response.status_code
        }

    def report_printed(self, order_id: str) -> bool:
        """Tell the server an order was printed. Best effort; failures are only logged."""
        endpoint = f"{self.settings.server_url}/api/orders/{order_id}/printed"

        try:
            response = self.session.post(
                endpoint,
                json={},
                timeout=(REPORT_TIMEOUT, REPORT_TIMEOUT)
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to mark order {order_id} as printed: {e}")
            return False

        if response.status_code == 200:
            logger.info(f"Order {order_id} marked as printed")
            return True

        logger.error(f"Failed to mark order {order_id} as printed: {response.status_code}")
        return False
