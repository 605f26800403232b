import sqlite3
import threading
from contextlib import contextmanager
from typing import Optional, List, Tuple

class StorageDB:
    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.RLock()
        self._in_transaction = False
        self._init_db()

    def _init_db(self):
        with self._lock:
            # State table: Key-Value store for singleton items (params, mining, pending batch)
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            # Submitted batches, indexed by reconciled flag
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS batches (
                    id INTEGER PRIMARY KEY,
                    reconciled INTEGER NOT NULL,
                    data TEXT
                )
            ''')
            self.cursor.execute(
                'CREATE INDEX IF NOT EXISTS batches_by_reconciled ON batches (reconciled, id)'
            )
            # Unbond requests keyed by (batch id, user), indexed by user
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS unbond_requests (
                    batch_id INTEGER NOT NULL,
                    user TEXT NOT NULL,
                    data TEXT,
                    PRIMARY KEY (batch_id, user)
                )
            ''')
            self.cursor.execute(
                'CREATE INDEX IF NOT EXISTS unbond_requests_by_user ON unbond_requests (user, batch_id)'
            )
            self.conn.commit()

    def _commit(self):
        if not self._in_transaction:
            self.conn.commit()

    @contextmanager
    def transaction(self):
        """
        Groups writes into one commit.

        Example:
            with db.transaction():
                db.set_state("params", ...)
                db.save_batch(1, False, ...)
        """
        with self._lock:
            self._in_transaction = True
            try:
                yield self
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise
            finally:
                self._in_transaction = False

    def close(self):
        with self._lock:
            self.conn.close()

    # --- State Methods ---
    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self._commit()

    # --- Batch Methods ---
    def get_batch(self, batch_id: int) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT data FROM batches WHERE id = ?', (batch_id,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def save_batch(self, batch_id: int, reconciled: bool, data: str):
        with self._lock:
            self.cursor.execute(
                'INSERT OR REPLACE INTO batches (id, reconciled, data) VALUES (?, ?, ?)',
                (batch_id, int(reconciled), data)
            )
            self._commit()

    def delete_batch(self, batch_id: int):
        with self._lock:
            self.cursor.execute('DELETE FROM batches WHERE id = ?', (batch_id,))
            self._commit()

    def get_batches(self, reconciled: Optional[bool] = None) -> List[Tuple[int, str]]:
        """Returns (id, data) rows ordered by id, optionally filtered by reconciled flag."""
        with self._lock:
            if reconciled is None:
                self.cursor.execute('SELECT id, data FROM batches ORDER BY id')
            else:
                self.cursor.execute(
                    'SELECT id, data FROM batches WHERE reconciled = ? ORDER BY id',
                    (int(reconciled),)
                )
            return list(self.cursor.fetchall())

    # --- Unbond Request Methods ---
    def get_unbond_request(self, batch_id: int, user: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute(
                'SELECT data FROM unbond_requests WHERE batch_id = ? AND user = ?',
                (batch_id, user)
            )
            row = self.cursor.fetchone()
            return row[0] if row else None

    def save_unbond_request(self, batch_id: int, user: str, data: str):
        with self._lock:
            self.cursor.execute(
                'INSERT OR REPLACE INTO unbond_requests (batch_id, user, data) VALUES (?, ?, ?)',
                (batch_id, user, data)
            )
            self._commit()

    def delete_unbond_request(self, batch_id: int, user: str):
        with self._lock:
            self.cursor.execute(
                'DELETE FROM unbond_requests WHERE batch_id = ? AND user = ?',
                (batch_id, user)
            )
            self._commit()

    def get_unbond_requests_by_user(self, user: str) -> List[Tuple[int, str, str]]:
        """Returns (batch_id, user, data) rows ordered by batch id."""
        with self._lock:
            self.cursor.execute(
                'SELECT batch_id, user, data FROM unbond_requests WHERE user = ? ORDER BY batch_id',
                (user,)
            )
            return list(self.cursor.fetchall())

    def get_unbond_requests_by_batch(self, batch_id: int) -> List[Tuple[int, str, str]]:
        """Returns (batch_id, user, data) rows ordered by user."""
        with self._lock:
            self.cursor.execute(
                'SELECT batch_id, user, data FROM unbond_requests WHERE batch_id = ? ORDER BY user',
                (batch_id,)
            )
            return list(self.cursor.fetchall())
