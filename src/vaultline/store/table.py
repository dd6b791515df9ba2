# table.py
# Vaultline – Store subsystem: durable key/value table over sqlite

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union


# ============================================================
# Exceptions
# ============================================================

class StoreError(Exception):
    """Durable storage fault. The failed operation is aborted; committed data is untouched."""
    pass


@contextmanager
def _errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        raise StoreError(f"Failed to {action}: {e}") from e


# ============================================================
# Record Table
# ============================================================

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    key   TEXT PRIMARY KEY,
    iv    BLOB,
    value BLOB NOT NULL
)
"""

Row = Tuple[Optional[bytes], bytes]  # (iv for named records, value)


class RecordTable:
    """
    A single-table record store shared by every reader and writer of one vault.

    Writes go through one connection and happen inside `transaction()`,
    which takes sqlite's reserved lock up front (BEGIN IMMEDIATE) so
    concurrent writers, in this process or another, queue instead of
    interleaving. Outside a transaction each write is its own atomic
    statement.

    Reads use a connection per thread, so under WAL they see the last
    committed state without waiting on the writer or on each other. A
    thread reading inside its own transaction uses the write connection
    and sees its uncommitted writes.
    """

    def __init__(self, path: Union[str, Path], timeout: float = 30.0):
        self.path = str(path)
        self.timeout = timeout
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = self._connect()
        with _errors("open store"):
            if self.path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(SCHEMA)

        self._lock = threading.RLock()
        self._depth = 0
        self._owner: Optional[int] = None
        self._local = threading.local()
        self._readers: List[sqlite3.Connection] = []
        self._closed = False

    def _connect(self) -> sqlite3.Connection:
        with _errors("open store"):
            return sqlite3.connect(
                self.path,
                timeout=self.timeout,
                isolation_level=None,  # explicit transactions only
                check_same_thread=False,
            )

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise StoreError("Failed to read: store is closed")

        # an in-memory database exists only on its one connection
        if self._owner == threading.get_ident() or self.path == ":memory:":
            with self._lock:
                yield self._conn
            return

        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
            with self._lock:
                self._readers.append(conn)
        yield conn

    # --------------------------------------------------------
    # Transactions
    # --------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["RecordTable"]:
        """Immediate write transaction. Nested calls join the outer one."""
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            with _errors("begin transaction"):
                self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            self._owner = threading.get_ident()
            try:
                yield self
            except BaseException:
                self._depth = 0
                self._owner = None
                with _errors("roll back"):
                    self._conn.execute("ROLLBACK")
                raise
            self._depth = 0
            self._owner = None
            with _errors("commit"):
                self._conn.execute("COMMIT")

    # --------------------------------------------------------
    # Operations
    # --------------------------------------------------------

    def get(self, key: str) -> Optional[Row]:
        with self._reading() as conn, _errors(f"read {key!r}"):
            row = conn.execute(
                "SELECT iv, value FROM records WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        iv, value = row
        return (bytes(iv) if iv is not None else None, bytes(value))

    def put(self, key: str, value: bytes, iv: Optional[bytes] = None) -> None:
        with self._lock, _errors(f"write {key!r}"):
            self._conn.execute(
                "INSERT OR REPLACE INTO records (key, iv, value) VALUES (?, ?, ?)",
                (key, iv, value),
            )

    def put_many(self, rows: Iterable[Tuple[str, Optional[bytes], bytes]]) -> None:
        """Write (key, iv, value) rows all-or-nothing."""
        with self.transaction(), _errors("write records"):
            self._conn.executemany(
                "INSERT OR REPLACE INTO records (key, iv, value) VALUES (?, ?, ?)",
                list(rows),
            )

    def delete_many(self, keys: Iterable[str]) -> None:
        with self.transaction(), _errors("delete records"):
            self._conn.executemany(
                "DELETE FROM records WHERE key = ?", [(k,) for k in keys]
            )

    def keys(self) -> list:
        with self._reading() as conn, _errors("list records"):
            return [k for (k,) in conn.execute("SELECT key FROM records ORDER BY key")]

    def __len__(self) -> int:
        with self._reading() as conn, _errors("count records"):
            return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]

    def clear(self) -> None:
        with self.transaction(), _errors("clear store"):
            self._conn.execute("DELETE FROM records")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            for conn in self._readers:
                conn.close()
            self._readers = []
            self._conn.close()

    def __enter__(self) -> "RecordTable":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
