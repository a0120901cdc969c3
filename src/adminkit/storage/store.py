"""
Embedded key-value store.

Buckets of ordered byte keys on top of SQLite. Buckets nest, reads run
concurrently on per-thread connections, and every write transaction is
serialized behind one process-wide lock.
"""

import fcntl
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from loguru import logger

from ..errors import StorageError

Name = Union[str, bytes]

# Separates the components of a nested bucket path
_PATH_SEP = "\x1f"

# Seconds between attempts to take the file lock
_LOCK_POLL = 0.05


def is_valid_name(name: Name) -> bool:
    """Whether name can be used as a bucket name."""
    if isinstance(name, bytes):
        try:
            name = name.decode("utf-8")
        except UnicodeDecodeError:
            return False
    return bool(name) and _PATH_SEP not in name


def _component(name: Name) -> str:
    if isinstance(name, bytes):
        name = name.decode("utf-8")
    if not is_valid_name(name):
        raise StorageError(f"invalid bucket name {name!r}")
    return name


def _key(key: Name) -> bytes:
    if isinstance(key, str):
        key = key.encode("utf-8")
    if not key:
        raise StorageError("key required")
    return key


class Bucket:
    """
    A named partition of ordered key/value pairs.

    Buckets are only valid inside the transaction that produced them.
    """

    def __init__(self, tx: "Transaction", path: Tuple[str, ...]):
        self._tx = tx
        self.path = path
        self._path = _PATH_SEP.join(path)

    @property
    def name(self) -> str:
        return self.path[-1]

    def get(self, key: Name) -> Optional[bytes]:
        row = self._tx._fetchone(
            "SELECT value FROM entries WHERE bucket = ? AND key = ?",
            (self._path, _key(key)),
        )
        return None if row is None else bytes(row[0])

    def put(self, key: Name, value: bytes) -> None:
        self._tx._check_writable(self._path)
        self._tx._execute(
            "INSERT OR REPLACE INTO entries (bucket, key, value) VALUES (?, ?, ?)",
            (self._path, _key(key), bytes(value)),
        )

    def delete(self, key: Name) -> None:
        """Delete a key. Deleting a missing key is not an error."""
        self._tx._check_writable(self._path)
        self._tx._execute(
            "DELETE FROM entries WHERE bucket = ? AND key = ?",
            (self._path, _key(key)),
        )

    def items(self) -> Iterator[Tuple[bytes, bytes]]:
        """
        Iterate over all pairs in key order.

        The bucket cannot be mutated while an iteration over it is open;
        collect the keys first and mutate afterwards.
        """
        self._tx._iterating[self._path] = self._tx._iterating.get(self._path, 0) + 1
        try:
            cursor = self._tx._execute(
                "SELECT key, value FROM entries WHERE bucket = ? ORDER BY key",
                (self._path,),
            )
            while True:
                try:
                    row = cursor.fetchone()
                except sqlite3.Error as e:
                    raise StorageError(str(e)) from e
                if row is None:
                    break
                yield bytes(row[0]), bytes(row[1])
        finally:
            self._tx._iterating[self._path] -= 1

    def keys(self) -> List[bytes]:
        return [key for key, _ in self.items()]

    def __len__(self) -> int:
        row = self._tx._fetchone(
            "SELECT COUNT(*) FROM entries WHERE bucket = ?", (self._path,)
        )
        return int(row[0])

    def bucket(self, name: Name) -> Optional["Bucket"]:
        return self._tx._bucket(self.path + (_component(name),))

    def create_bucket_if_not_exists(self, name: Name) -> "Bucket":
        return self._tx._create_bucket(self.path + (_component(name),))

    def buckets(self) -> List[str]:
        """Names of the buckets nested directly under this one."""
        prefix = self._path + _PATH_SEP
        rows = self._tx._fetchall(
            "SELECT path FROM buckets WHERE substr(path, 1, ?) = ? ORDER BY path",
            (len(prefix), prefix),
        )
        names = []
        for (path,) in rows:
            rest = path[len(prefix):]
            if _PATH_SEP not in rest:
                names.append(rest)
        return names


class Transaction:
    """A read-only or read-write transaction over the store."""

    def __init__(self, conn: sqlite3.Connection, writable: bool):
        self._conn = conn
        self.writable = writable
        self.closed = False
        self._iterating = {}

    def bucket(self, name: Name) -> Optional[Bucket]:
        return self._bucket((_component(name),))

    def create_bucket_if_not_exists(self, name: Name) -> Bucket:
        return self._create_bucket((_component(name),))

    def _bucket(self, path: Tuple[str, ...]) -> Optional[Bucket]:
        row = self._fetchone(
            "SELECT 1 FROM buckets WHERE path = ?", (_PATH_SEP.join(path),)
        )
        return None if row is None else Bucket(self, path)

    def _create_bucket(self, path: Tuple[str, ...]) -> Bucket:
        if len(path) > 1 and self._bucket(path[:-1]) is None:
            raise StorageError(f"bucket '{'/'.join(path[:-1])}' not found")
        self._check_writable(_PATH_SEP.join(path[:-1]))
        self._execute(
            "INSERT OR IGNORE INTO buckets (path) VALUES (?)",
            (_PATH_SEP.join(path),),
        )
        return Bucket(self, path)

    def _check_writable(self, path: str) -> None:
        if self.closed:
            raise StorageError("transaction closed")
        if not self.writable:
            raise StorageError("transaction is read-only")
        if self._iterating.get(path):
            raise StorageError("bucket mutated during iteration")

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        if self.closed:
            raise StorageError("transaction closed")
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def _fetchone(self, sql: str, params: tuple = ()):
        cursor = self._execute(sql, params)
        try:
            return cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def _fetchall(self, sql: str, params: tuple = ()):
        cursor = self._execute(sql, params)
        try:
            return cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e


class Store:
    """
    Thread-safe bucketed key-value store.

    Many readers may run at once, each on its own connection. Writers are
    serialized application-wide by ``write_lock``; ``update()`` takes it, so
    callers never lock by hand. ``update()`` is not re-entrant.

    An open store holds an exclusive lock on ``<db_path>.lock`` until it is
    closed, so only one store at a time can use a database file.
    """

    def __init__(self, db_path: Path, timeout: float = 1.0):
        """
        Open (or create) the store.

        Args:
            db_path: Path to the database file
            timeout: Seconds to wait for exclusive access before giving up

        Raises:
            StorageError: If exclusive access cannot be obtained within timeout
        """
        self.db_path = Path(db_path)
        self.lock_path = self.db_path.with_name(self.db_path.name + ".lock")
        self.timeout = timeout
        self.write_lock = threading.Lock()
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._closed = False
        self._lock_fd: Optional[int] = None

        self._acquire_file_lock()
        try:
            self._init_db()
        except BaseException:
            self.close()
            raise

    def _acquire_file_lock(self) -> None:
        """Take the sidecar lock file, polling until timeout."""
        try:
            fd = os.open(str(self.lock_path), os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise StorageError(f"failed to open lock file: {e}") from e

        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise StorageError(f"timed out waiting for exclusive access to {self.db_path}")
                time.sleep(_LOCK_POLL)
            except OSError as e:
                os.close(fd)
                raise StorageError(f"failed to lock store: {e}") from e

        self._lock_fd = fd

    def _release_file_lock(self) -> None:
        if self._lock_fd is None:
            return
        try:
            fcntl.flock(self._lock_fd, fcntl.LOCK_UN)
        except OSError as e:
            logger.warning(f"Failed to unlock store: {e}")
        finally:
            os.close(self._lock_fd)
            self._lock_fd = None

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        with self.update() as tx:
            tx._execute("""
                CREATE TABLE IF NOT EXISTS buckets (
                    path TEXT PRIMARY KEY
                )
            """)
            tx._execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    bucket TEXT NOT NULL,
                    key BLOB NOT NULL,
                    value BLOB NOT NULL,
                    PRIMARY KEY (bucket, key)
                )
            """)

        logger.info(f"Store opened: {self.db_path}")

    def _connection(self) -> sqlite3.Connection:
        if self._closed:
            raise StorageError("store closed")

        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as e:
            raise StorageError(f"failed to open store: {e}") from e

        with self._connections_lock:
            self._connections.append(conn)
        self._local.conn = conn
        return conn

    @contextmanager
    def view(self) -> Iterator[Transaction]:
        """Run a read-only transaction."""
        conn = self._connection()
        try:
            conn.execute("BEGIN")
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

        tx = Transaction(conn, writable=False)
        try:
            yield tx
        finally:
            tx.closed = True
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error as e:
                logger.warning(f"Failed to end read transaction: {e}")

    @contextmanager
    def update(self) -> Iterator[Transaction]:
        """
        Run a read-write transaction under the global write lock.

        The transaction commits when the block exits normally and rolls back
        if it raises.
        """
        with self.write_lock:
            conn = self._connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

            tx = Transaction(conn, writable=True)
            try:
                yield tx
            except BaseException:
                tx.closed = True
                self._rollback(conn)
                raise

            tx.closed = True
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn)
                raise StorageError(str(e)) from e

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.warning(f"Failed to roll back write transaction: {e}")

    def create_buckets(self, names) -> None:
        """Create top-level buckets that do not exist yet."""
        with self.update() as tx:
            for name in names:
                tx.create_bucket_if_not_exists(name)

    def close(self) -> None:
        with self._connections_lock:
            if self._closed:
                return
            self._closed = True
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Failed to close store connection: {e}")
            self._connections.clear()
            self._release_file_lock()

        logger.info(f"Store closed: {self.db_path}")

    @property
    def closed(self) -> bool:
        return self._closed
