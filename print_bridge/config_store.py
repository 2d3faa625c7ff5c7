# Config Store - SQLite key/value persistence for the print bridge
# Holds printers, poll interval, auto-print flag, server ids and last printed order

import sqlite3
import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .models import parse_bool

logger = logging.getLogger(__name__)

KEY_PRINTERS = 'printers'
KEY_AUTO_PRINT = 'auto_print_enabled'
KEY_POLL_INTERVAL = 'poll_interval'
KEY_LAST_ORDER_ID = 'last_order_id'
KEY_RESTAURANT_ID = 'restaurant_id'
KEY_SERVER_URL = 'server_url'

DEFAULT_RESTAURANT_ID = '5a7f3275-5f63-4d8e-83dc-b544540e79c3'
DEFAULT_SERVER_URL = 'https://restorank.replit.app'
DEFAULT_POLL_INTERVAL_MS = 5000
DEFAULT_AUTO_PRINT = True

DEFAULT_DB_PATH = 'print_bridge.db'
DEFAULT_CONTROL_PORT = 8080

# config.json key -> store key, for values the bootstrap file may seed
_SEED_KEYS = {
    'server_url': KEY_SERVER_URL,
    'restaurant_id': KEY_RESTAURANT_ID,
    'poll_interval_ms': KEY_POLL_INTERVAL,
    'auto_print_enabled': KEY_AUTO_PRINT,
}


class ConfigStore:
    """SQLite-backed key/value store. Values are stored as JSON."""

    DB_PATH = DEFAULT_DB_PATH

    def __init__(self, db_path: str = None):
        self.db_path = str(db_path or self.DB_PATH)
        self.lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self.lock:
            conn = sqlite3.connect(self.db_path)
            try:
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS state (
                        key TEXT PRIMARY KEY,
                        value TEXT,
                        updated_at TEXT
                    )
                ''')
                conn.commit()
            finally:
                conn.close()

    def set(self, key: str, value: Any):
        """Save a value (JSON encoded)"""
        with self.lock:
            conn = sqlite3.connect(self.db_path)
            try:
                conn.execute('''
                    INSERT OR REPLACE INTO state (key, value, updated_at)
                    VALUES (?, ?, ?)
                ''', (key, json.dumps(value), datetime.now().isoformat()))
                conn.commit()
            finally:
                conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        """Load a value; missing keys and undecodable values give default"""
        with self.lock:
            conn = sqlite3.connect(self.db_path)
            try:
                row = conn.execute('SELECT value FROM state WHERE key = ?', (key,)).fetchone()
            finally:
                conn.close()

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, ValueError):
            logger.warning(f"Stored value for '{key}' is not valid JSON, using default")
            return default

    def delete(self, key: str):
        with self.lock:
            conn = sqlite3.connect(self.db_path)
            try:
                conn.execute('DELETE FROM state WHERE key = ?', (key,))
                conn.commit()
            finally:
                conn.close()

    def items(self) -> Dict[str, Any]:
        """All stored values, decoded where possible"""
        with self.lock:
            conn = sqlite3.connect(self.db_path)
            try:
                rows = conn.execute('SELECT key, value FROM state ORDER BY key').fetchall()
            finally:
                conn.close()

        result = {}
        for key, value in rows:
            try:
                result[key] = json.loads(value)
            except (TypeError, ValueError):
                result[key] = value
        return result


class AgentSettings:
    """
    Typed view over the Config Store.

    Every property reads the store on access, so changes made from the
    control surface apply on the poller's next cycle without a restart.
    """

    def __init__(self, store: ConfigStore):
        self.store = store

    @property
    def server_url(self) -> str:
        url = self.store.get(KEY_SERVER_URL) or DEFAULT_SERVER_URL
        return str(url).rstrip('/')

    @server_url.setter
    def server_url(self, url: str):
        self.store.set(KEY_SERVER_URL, url)

    @property
    def restaurant_id(self) -> str:
        return str(self.store.get(KEY_RESTAURANT_ID) or DEFAULT_RESTAURANT_ID)

    @restaurant_id.setter
    def restaurant_id(self, restaurant_id: str):
        self.store.set(KEY_RESTAURANT_ID, restaurant_id)

    @property
    def poll_interval_ms(self) -> int:
        value = self.store.get(KEY_POLL_INTERVAL, DEFAULT_POLL_INTERVAL_MS)
        try:
            interval = int(value)
        except (TypeError, ValueError):
            return DEFAULT_POLL_INTERVAL_MS
        return interval if interval > 0 else DEFAULT_POLL_INTERVAL_MS

    @poll_interval_ms.setter
    def poll_interval_ms(self, interval_ms: int):
        self.store.set(KEY_POLL_INTERVAL, int(interval_ms))

    @property
    def auto_print_enabled(self) -> bool:
        return parse_bool(self.store.get(KEY_AUTO_PRINT, DEFAULT_AUTO_PRINT))

    @auto_print_enabled.setter
    def auto_print_enabled(self, enabled: bool):
        self.store.set(KEY_AUTO_PRINT, bool(enabled))

    @property
    def last_order_id(self) -> Optional[str]:
        return self.store.get(KEY_LAST_ORDER_ID)

    @last_order_id.setter
    def last_order_id(self, order_id: str):
        self.store.set(KEY_LAST_ORDER_ID, order_id)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'server_url': self.server_url,
            'restaurant_id': self.restaurant_id,
            'poll_interval_ms': self.poll_interval_ms,
            'auto_print_enabled': self.auto_print_enabled,
            'last_order_id': self.last_order_id,
        }


def load_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """Read the bootstrap config.json; missing or unreadable files give {}"""
    config_path = Path(path) if path else Path(__file__).resolve().parent.parent / 'config.json'
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read {config_path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"{config_path} must hold a JSON object, ignoring it")
        return {}
    return data


def seed_store(store: ConfigStore, config: Dict[str, Any]) -> None:
    """
    Copy config.json values into the store for keys it does not hold yet.

    config.json only bootstraps a fresh store; later changes made through the
    CLI or the control endpoint live in the store and win on every restart.
    """
    for config_key, store_key in _SEED_KEYS.items():
        if config.get(config_key) is None or store.get(store_key) is not None:
            continue
        store.set(store_key, config[config_key])
        logger.info(f"Seeded {store_key} from config file")
