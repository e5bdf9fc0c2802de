"""Tests for the SQLite key/value store"""

import sqlite3
import threading
import time

import pytest

from timetracker.database import Database
from timetracker.errors import PersistenceError


class TestDatabase:
    """Tests for whole-value get/set semantics."""

    @pytest.fixture
    def store(self, tmp_path):
        return Database(tmp_path / 'nested' / 'store.db')

    def test_creates_parent_directory(self, tmp_path, store):
        assert (tmp_path / 'nested' / 'store.db').exists()

    def test_missing_key_returns_default(self, store):
        assert store.get('nothing') is None
        assert store.get('nothing', []) == []

    def test_set_replaces_whole_value(self, store):
        store.set('entries', [{'id': '1'}])
        store.set('entries', [{'id': '2'}, {'id': '3'}])

        assert store.get('entries') == [{'id': '2'}, {'id': '3'}]

    def test_values_survive_reopen(self, tmp_path, store):
        store.set('metadata', {'totalTrackedMs': 42})

        reopened = Database(tmp_path / 'nested' / 'store.db')

        assert reopened.get('metadata') == {'totalTrackedMs': 42}

    def test_none_deletes(self, store):
        store.set('currentSession', {'id': 'a'})
        store.set('currentSession', None)

        assert store.get('currentSession') is None

    def test_delete_missing_key_is_noop(self, store):
        store.delete('currentSession')
        assert store.get('currentSession') is None

    def test_set_many_writes_all_keys(self, store):
        store.set('currentSession', {'id': 'a'})

        store.set_many({'entries': [{'id': 'a'}], 'metadata': {'projectCount': 1}, 'currentSession': None})

        assert store.get('entries') == [{'id': 'a'}]
        assert store.get('metadata') == {'projectCount': 1}
        assert store.get('currentSession') is None

    def test_set_many_unserializable_writes_nothing(self, store):
        with pytest.raises(PersistenceError):
            store.set_many({'entries': [1], 'metadata': object()})

        assert store.get('entries') is None

    def test_update_passes_current_values(self, store):
        store.set('entries', [{'id': 'a'}])
        seen = {}

        def compute(current):
            seen.update(current)
            return {'entries': current['entries'] + [{'id': 'b'}], 'metadata': {'projectCount': 2}}

        written = store.update(['entries', 'metadata'], compute)

        assert seen == {'entries': [{'id': 'a'}], 'metadata': None}
        assert written['metadata'] == {'projectCount': 2}
        assert store.get('entries') == [{'id': 'a'}, {'id': 'b'}]

    def test_update_failure_rolls_back(self, store):
        store.set('entries', [{'id': 'a'}])

        def compute(current):
            raise ValueError("bad entry")

        with pytest.raises(ValueError):
            store.update(['entries'], compute)

        assert store.get('entries') == [{'id': 'a'}]
        store.set('entries', [])
        assert store.get('entries') == []

    def test_update_blocks_second_writer(self, tmp_path, store):
        other = Database(tmp_path / 'nested' / 'store.db')
        store.set('counter', 0)
        inside = threading.Event()

        def slow_increment(current):
            inside.set()
            time.sleep(0.2)
            return {'counter': current['counter'] + 1}

        worker = threading.Thread(target=store.update, args=(['counter'], slow_increment))
        worker.start()
        assert inside.wait(2)

        other.update(['counter'], lambda current: {'counter': current['counter'] + 1})
        worker.join()

        assert store.get('counter') == 2

    def test_corrupt_value_raises_persistence_error(self, tmp_path, store):
        conn = sqlite3.connect(tmp_path / 'nested' / 'store.db')
        conn.execute("INSERT INTO store (key, value, updated_at) VALUES ('entries', '{oops', 'now')")
        conn.commit()
        conn.close()

        with pytest.raises(PersistenceError) as exc_info:
            store.get('entries')

        assert exc_info.value.key == 'entries'

    def test_unopenable_database_raises_persistence_error(self, tmp_path):
        directory = tmp_path / 'a-directory'
        directory.mkdir()

        with pytest.raises(PersistenceError):
            Database(directory)

    def test_set_overwrites_corrupt_value(self, tmp_path, store):
        conn = sqlite3.connect(tmp_path / 'nested' / 'store.db')
        conn.execute("INSERT INTO store (key, value, updated_at) VALUES ('entries', '{oops', 'now')")
        conn.commit()
        conn.close()

        store.set('entries', [])

        assert store.get('entries') == []
