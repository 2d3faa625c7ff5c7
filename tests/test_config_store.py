# Tests for Config Store and settings

import json
import sqlite3

from print_bridge.config_store import (
    AgentSettings,
    ConfigStore,
    DEFAULT_RESTAURANT_ID,
    DEFAULT_SERVER_URL,
    KEY_POLL_INTERVAL,
    load_config_file,
    seed_store,
)


class TestConfigStore:
    """Test SQLite key/value store"""

    def test_set_and_get(self, tmp_path):
        store = ConfigStore(tmp_path / 'bridge.db')

        store.set('printers', [{'id': '1'}])

        assert store.get('printers') == [{'id': '1'}]

    def test_missing_key_default(self, tmp_path):
        store = ConfigStore(tmp_path / 'bridge.db')

        assert store.get('nope', 'fallback') == 'fallback'

    def test_values_survive_reopen(self, tmp_path):
        ConfigStore(tmp_path / 'bridge.db').set('last_order_id', 'o-9')

        assert ConfigStore(tmp_path / 'bridge.db').get('last_order_id') == 'o-9'

    def test_corrupt_value_gives_default(self, tmp_path):
        db = tmp_path / 'bridge.db'
        store = ConfigStore(db)
        conn = sqlite3.connect(str(db))
        conn.execute("INSERT INTO state (key, value, updated_at) VALUES ('printers', '{not json', '')")
        conn.commit()
        conn.close()

        assert store.get('printers', []) == []

    def test_delete_and_items(self, tmp_path):
        store = ConfigStore(tmp_path / 'bridge.db')
        store.set('a', 1)
        store.set('b', True)
        store.delete('a')

        assert store.items() == {'b': True}


class TestAgentSettings:
    """Test typed settings"""

    def _settings(self, tmp_path):
        return AgentSettings(ConfigStore(tmp_path / 'bridge.db'))

    def test_defaults(self, tmp_path):
        settings = self._settings(tmp_path)

        assert settings.server_url == DEFAULT_SERVER_URL
        assert settings.restaurant_id == DEFAULT_RESTAURANT_ID
        assert settings.poll_interval_ms == 5000
        assert settings.auto_print_enabled is True
        assert settings.last_order_id is None

    def test_reads_are_fresh(self, tmp_path):
        """A write through another store handle is seen on the next read"""
        settings = self._settings(tmp_path)
        other = AgentSettings(ConfigStore(tmp_path / 'bridge.db'))

        other.poll_interval_ms = 250
        other.auto_print_enabled = False

        assert settings.poll_interval_ms == 250
        assert settings.auto_print_enabled is False

    def test_server_url_trailing_slash_stripped(self, tmp_path):
        settings = self._settings(tmp_path)
        settings.server_url = 'http://localhost:5000/'

        assert settings.server_url == 'http://localhost:5000'

    def test_bad_poll_interval_uses_default(self, tmp_path):
        settings = self._settings(tmp_path)
        settings.store.set(KEY_POLL_INTERVAL, 'soon')

        assert settings.poll_interval_ms == 5000

        settings.store.set(KEY_POLL_INTERVAL, 0)

        assert settings.poll_interval_ms == 5000


class TestBootstrapConfig:
    """Test config.json loading"""

    def test_missing_file(self, tmp_path):
        assert load_config_file(tmp_path / 'config.json') == {}

    def test_invalid_file(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text('[1, 2')

        assert load_config_file(path) == {}

    def test_seed_store(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'server_url': 'http://srv', 'poll_interval_ms': 1000, 'db_path': 'x.db'}))
        store = ConfigStore(tmp_path / 'bridge.db')

        seed_store(store, load_config_file(path))
        settings = AgentSettings(store)

        assert settings.server_url == 'http://srv'
        assert settings.poll_interval_ms == 1000
        assert store.get('db_path') is None

    def test_seed_does_not_override_stored_values(self, tmp_path):
        """Changes made after the first start survive a restart with config.json present"""
        config = {'poll_interval_ms': 5000, 'auto_print_enabled': True}
        store = ConfigStore(tmp_path / 'bridge.db')
        settings = AgentSettings(store)

        seed_store(store, config)
        settings.poll_interval_ms = 3000
        settings.auto_print_enabled = False
        seed_store(store, config)

        assert settings.poll_interval_ms == 3000
        assert settings.auto_print_enabled is False

    def test_auto_print_string_values(self, tmp_path):
        store = ConfigStore(tmp_path / 'bridge.db')
        seed_store(store, {'auto_print_enabled': 'false'})

        assert AgentSettings(store).auto_print_enabled is False

        store.set('auto_print_enabled', 'yes')
        assert AgentSettings(store).auto_print_enabled is True
