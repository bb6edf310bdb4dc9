"""
Storage Backend Module

Document-store interface used by every manager, with an in-memory backend
(testing) and a SQLite backend (persistence). Documents are plain JSON
dictionaries keyed by id inside named collections; Decimals are stored as
strings and datetimes as ISO strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager
import copy
import json
import sqlite3
import threading
import re


class StorageError(Exception):
    """Raised when the backing store fails; callers surface it, never retry"""


class NotFoundError(ValueError):
    """Raised when a requested document does not exist"""


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result

    def touch(self) -> None:
        """Bump updated_at to now"""
        self.updated_at = datetime.now(timezone.utc)


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for key, value in filters.items():
        if key not in record or record[key] != value:
            return False
    return True


class StorageInterface(ABC):
    """Abstract document-store interface"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Create or replace a document"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a document, None when missing"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all documents of a collection"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a document, returning whether it existed"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find documents whose top-level keys equal all filter values"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge top-level fields into an existing document.

        Raises:
            ValueError: If the document does not exist
        """
        current = self.load(table, record_id)
        if current is None:
            raise NotFoundError(f"{table} record {record_id} not found")
        current.update(changes)
        self.save(table, record_id, current)
        return current

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete every document matching filters, returning the number deleted"""
        deleted = 0
        for record in self.find(table, filters):
            if self.delete(table, record['id']):
                deleted += 1
        return deleted

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic multi-document mutations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """In-memory storage for tests and single-process use"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._snapshots: List[Dict[str, Dict[str, Dict[str, Any]]]] = []

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            # Round-trip through JSON so callers never share mutable state
            self._table(table)[record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            if record is None:
                return None
            return copy.deepcopy(record)

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(record) for record in self._table(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(record)
                for record in self._table(table).values()
                if _matches(record, filters)
            ]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._data[table] = {}

    def begin_transaction(self) -> None:
        with self._lock:
            self._snapshots.append(copy.deepcopy(self._data))

    def commit(self) -> None:
        with self._lock:
            if self._snapshots:
                self._snapshots.pop()

    def rollback(self) -> None:
        with self._lock:
            if self._snapshots:
                self._data = self._snapshots.pop()

    def close(self) -> None:
        pass


_TABLE_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class SQLiteStorage(StorageInterface):
    """SQLite storage: one table per collection, documents kept as JSON text"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        try:
            self._connection = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level='DEFERRED'
            )
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._transaction_depth = 0
        self._known_tables = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    @contextmanager
    def _guard(self):
        """Serialize access and convert driver errors into StorageError"""
        with self._lock:
            if self._connection is None:
                raise StorageError("Storage is closed")
            try:
                yield self._connection
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    def _maybe_commit(self, connection: sqlite3.Connection) -> None:
        if self._transaction_depth == 0:
            connection.commit()

    def _ensure_table(self, table: str) -> None:
        if table in self._known_tables:
            return
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid collection name: {table}")
        with self._guard() as connection:
            connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            self._maybe_commit(connection)
        self._known_tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        self._ensure_table(table)
        now = datetime.now(timezone.utc).isoformat()
        data_json = json.dumps(data, default=str)
        with self._guard() as connection:
            connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, now, now))
            self._maybe_commit(connection)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        self._ensure_table(table)
        with self._guard() as connection:
            row = connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        self._ensure_table(table)
        with self._guard() as connection:
            cursor = connection.execute(f"SELECT data FROM {table} ORDER BY created_at, rowid")
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        self._ensure_table(table)
        with self._guard() as connection:
            cursor = connection.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            self._maybe_commit(connection)
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        self._ensure_table(table)
        with self._guard() as connection:
            cursor = connection.execute(
                f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)
            )
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        # Filtering happens in Python; JSON1 support varies between builds
        return [record for record in self.load_all(table) if _matches(record, filters)]

    def count(self, table: str) -> int:
        self._ensure_table(table)
        with self._guard() as connection:
            row = connection.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()
            return row['count']

    def clear_table(self, table: str) -> None:
        self._ensure_table(table)
        with self._guard() as connection:
            connection.execute(f"DELETE FROM {table}")
            self._maybe_commit(connection)

    def begin_transaction(self) -> None:
        with self._lock:
            self._transaction_depth += 1

    def commit(self) -> None:
        with self._guard() as connection:
            if self._transaction_depth > 0:
                self._transaction_depth -= 1
                if self._transaction_depth == 0:
                    connection.commit()

    def rollback(self) -> None:
        with self._guard() as connection:
            if self._transaction_depth > 0:
                self._transaction_depth = 0
                connection.rollback()
                self._known_tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


def create_storage(backend: str = "memory", path: Optional[str] = None) -> StorageInterface:
    """Build a storage backend by name ("memory" or "sqlite")"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(path or ":memory:")
    raise ValueError(f"Unknown storage backend: {backend}")
