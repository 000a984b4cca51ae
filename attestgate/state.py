"""
Attestation Gateway - State Database

A single SQLite database holds the gateway's shared state (owner,
allow-list, recipient nonces, treasury). Every public operation runs
inside one transaction; nested operations open savepoints, so a failure
anywhere in a call rolls back everything that call wrote.

Execution is serialized: one re-entrant lock guards the connection for
reads and writes alike.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Union


class StateDB:
    """
    Serialized unit-of-work over a SQLite connection.

    Components create their own tables through `executescript` at
    construction and do all their writes inside `transaction()`.
    Callbacks registered with `after_commit` run once the outermost
    transaction commits and are discarded if it (or the savepoint that
    registered them) rolls back.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        self._pending: list[Callable[[], None]] = []
        # Autocommit mode: BEGIN/SAVEPOINT are issued explicitly.
        self._conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row

    def executescript(self, script: str):
        """Run DDL. Must not be called inside a transaction."""
        with self._lock:
            if self._depth:
                raise RuntimeError("executescript is not allowed inside a transaction")
            self._conn.executescript(script)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self):
        """
        Open a transaction, or a savepoint when one is already open.

        Yields the connection. Any exception rolls back to the point
        where this block was entered and is re-raised.
        """
        with self._lock:
            level = self._depth
            savepoint = f"sp_{level}"
            mark = len(self._pending)

            if level == 0:
                self._conn.execute("BEGIN IMMEDIATE")
            else:
                self._conn.execute(f"SAVEPOINT {savepoint}")
            self._depth += 1

            try:
                yield self._conn
            except BaseException:
                self._depth -= 1
                del self._pending[mark:]
                if level == 0:
                    self._conn.execute("ROLLBACK")
                else:
                    self._conn.execute(f"ROLLBACK TO {savepoint}")
                    self._conn.execute(f"RELEASE {savepoint}")
                raise

            self._depth -= 1
            if level > 0:
                self._conn.execute(f"RELEASE {savepoint}")
                return

            self._conn.execute("COMMIT")
            callbacks, self._pending = self._pending, []
            for callback in callbacks:
                callback()

    def after_commit(self, callback: Callable[[], None]):
        """Defer `callback` until the outermost transaction commits."""
        with self._lock:
            if self._depth == 0:
                callback()
            else:
                self._pending.append(callback)

    def fetchone(self, sql: str, params: tuple = ()):
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple = ()) -> list:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def close(self):
        with self._lock:
            self._conn.close()
