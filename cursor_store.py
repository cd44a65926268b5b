"""
Persistence for poll cursor state, keyed by trigger id
"""
import logging
import sqlite3
from contextlib import closing
from typing import Dict

from poll_cursor import PollCursorState

logger = logging.getLogger(__name__)


class CursorStore:
    """Load and save PollCursorState between poll cycles"""

    def load(self, trigger_id: str) -> PollCursorState:
        raise NotImplementedError

    def save(self, trigger_id: str, state: PollCursorState):
        raise NotImplementedError


class MemoryCursorStore(CursorStore):
    """Keeps state in a dict, the way the host keeps per-node static data"""

    def __init__(self, data: Dict[str, Dict] = None):
        self.data = data if data is not None else {}

    def load(self, trigger_id: str) -> PollCursorState:
        return PollCursorState.from_dict(self.data.get(trigger_id))

    def save(self, trigger_id: str, state: PollCursorState):
        self.data[trigger_id] = state.to_dict()


class SQLiteCursorStore(CursorStore):
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.init_database()

    def _connect(self):
        # closed on every exit path, including failed statements
        return closing(sqlite3.connect(self.db_path))

    def init_database(self):
        """Initialize database tables"""
        with self._connect() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS monitoring_state (
                    trigger_id TEXT PRIMARY KEY,
                    last_processed_block INTEGER,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.commit()
        logger.info("Cursor database initialized successfully")

    def load(self, trigger_id: str) -> PollCursorState:
        """Get the last processed block number for a specific trigger"""
        with self._connect() as conn:
            result = conn.execute(
                'SELECT last_processed_block FROM monitoring_state WHERE trigger_id = ?', (trigger_id,)
            ).fetchone()

        return PollCursorState(last_processed_block=result[0] if result else None)

    def save(self, trigger_id: str, state: PollCursorState):
        """Update the last processed block number for a specific trigger"""
        with self._connect() as conn:
            conn.execute('''
                INSERT INTO monitoring_state (trigger_id, last_processed_block, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(trigger_id) DO UPDATE SET
                    last_processed_block = excluded.last_processed_block,
                    updated_at = CURRENT_TIMESTAMP
            ''', (trigger_id, state.last_processed_block))
            conn.commit()
