"""
Cursor persistence
"""
import sqlite3

import pytest

from cursor_store import MemoryCursorStore, SQLiteCursorStore
from poll_cursor import PollCursorState


class TestSQLiteCursorStore:
    def test_unknown_trigger_is_uninitialized(self, tmp_path):
        store = SQLiteCursorStore(str(tmp_path / 'state.db'))
        assert store.load('missing').last_processed_block is None

    def test_save_and_load(self, tmp_path):
        store = SQLiteCursorStore(str(tmp_path / 'state.db'))
        store.save('transfers', PollCursorState(1050))
        store.save('transfers', PollCursorState(1150))
        store.save('blocks', PollCursorState(7))

        assert store.load('transfers').last_processed_block == 1150
        assert store.load('blocks').last_processed_block == 7

    def test_state_survives_reopen(self, tmp_path):
        path = str(tmp_path / 'state.db')
        SQLiteCursorStore(path).save('t1', PollCursorState(99))
        assert SQLiteCursorStore(path).load('t1').last_processed_block == 99

        conn = sqlite3.connect(path)
        rows = conn.execute('SELECT trigger_id, last_processed_block FROM monitoring_state').fetchall()
        conn.close()
        assert rows == [('t1', 99)]

    def test_connection_closed_when_statement_fails(self, tmp_path, monkeypatch):
        path = str(tmp_path / 'state.db')
        store = SQLiteCursorStore(path)
        conn = sqlite3.connect(path)
        conn.execute('DROP TABLE monitoring_state')
        conn.close()

        opened = []
        real_connect = sqlite3.connect

        class TrackedConnection:
            def __init__(self, db_path):
                self.inner = real_connect(db_path)
                self.closed = False
                opened.append(self)

            def execute(self, *args):
                return self.inner.execute(*args)

            def commit(self):
                self.inner.commit()

            def close(self):
                self.closed = True
                self.inner.close()

        monkeypatch.setattr('cursor_store.sqlite3.connect', TrackedConnection)
        with pytest.raises(sqlite3.OperationalError):
            store.load('t1')
        with pytest.raises(sqlite3.OperationalError):
            store.save('t1', PollCursorState(3))

        assert len(opened) == 2
        assert all(c.closed for c in opened)


class TestMemoryCursorStore:
    def test_uses_given_dict(self):
        data = {}
        store = MemoryCursorStore(data)
        store.save('t1', PollCursorState(5))
        assert data == {'t1': {'lastProcessedBlock': 5}}
        assert store.load('t1').last_processed_block == 5
