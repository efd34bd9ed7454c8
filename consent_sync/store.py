"""
Local State Store - durable storage for the consent record.

Three typed keys hold the consent state (status ordinal, update timestamp,
remote-sync flag) plus a version counter. Missing keys read as their
defaults, so a fresh or cleared store reads as UNDEFINED / 0 / False.

Two implementations:
- SQLiteConsentStore: namespaced key-value table, one transaction per record write
- MemoryConsentStore: dict-backed, for tests and ephemeral use
"""

import json
import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

from consent_sync.models import ConsentRecord, ConsentStatus

logger = logging.getLogger(__name__)

KEY_STATUS = "consent_status"
KEY_TIMESTAMP = "consent_update_timestamp"
KEY_SYNCED = "consent_is_remotely_updated"
KEY_VERSION = "consent_version"

DEFAULTS: Dict[str, Any] = {
    KEY_STATUS: ConsentStatus.UNDEFINED.value,
    KEY_TIMESTAMP: 0,
    KEY_SYNCED: False,
    KEY_VERSION: 0,
}

_MISSING = object()


def _record_to_values(record: ConsentRecord) -> Dict[str, Any]:
    return {
        KEY_STATUS: record.status.value,
        KEY_TIMESTAMP: int(record.updated_at_ms),
        KEY_SYNCED: bool(record.remotely_synced),
        KEY_VERSION: int(record.version),
    }


def _values_to_record(values: Mapping[str, Any]) -> ConsentRecord:
    timestamp = values.get(KEY_TIMESTAMP, 0)
    version = values.get(KEY_VERSION, 0)
    return ConsentRecord(
        status=ConsentStatus.from_ordinal(values.get(KEY_STATUS, DEFAULTS[KEY_STATUS])),
        updated_at_ms=timestamp if isinstance(timestamp, int) and timestamp >= 0 else 0,
        remotely_synced=bool(values.get(KEY_SYNCED, False)),
        version=version if isinstance(version, int) and version >= 0 else 0,
    )


class ConsentStore(ABC):
    """Contract of the local consent state store."""

    @abstractmethod
    def get(self, key: str, default: Any = _MISSING) -> Any:
        """Read one field; missing fields return `default` or the key's default."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Write one field."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every field."""

    @abstractmethod
    def read_record(self) -> ConsentRecord:
        """Read all fields as one consistent record."""

    @abstractmethod
    def write_record(self, record: ConsentRecord) -> None:
        """Write all fields in one transaction."""

    @abstractmethod
    def mark_synced(self, version: int) -> bool:
        """
        Set the remote-sync flag if the stored version still equals `version`.

        Returns:
            True if the flag was set, False if the record was superseded
        """

    # Typed accessors over the single-field contract

    def get_status(self) -> ConsentStatus:
        return ConsentStatus.from_ordinal(self.get(KEY_STATUS))

    def set_status(self, status: ConsentStatus) -> None:
        self.set(KEY_STATUS, status.value)

    def get_timestamp(self) -> int:
        return int(self.get(KEY_TIMESTAMP))

    def set_timestamp(self, timestamp_ms: int) -> None:
        self.set(KEY_TIMESTAMP, int(timestamp_ms))

    def is_synced(self) -> bool:
        return bool(self.get(KEY_SYNCED))

    def set_synced(self, synced: bool) -> None:
        self.set(KEY_SYNCED, bool(synced))

    def close(self) -> None:
        """Release resources held by the store."""

    @staticmethod
    def _default_for(key: str, default: Any) -> Any:
        if default is not _MISSING:
            return default
        return DEFAULTS.get(key)


class MemoryConsentStore(ConsentStore):
    """Dict-backed consent store."""

    def __init__(self, initial: Optional[ConsentRecord] = None):
        self._values: Dict[str, Any] = {}
        self._lock = threading.Lock()
        if initial is not None:
            self._values.update(_record_to_values(initial))

    def get(self, key: str, default: Any = _MISSING) -> Any:
        with self._lock:
            if key in self._values:
                return self._values[key]
        return self._default_for(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def read_record(self) -> ConsentRecord:
        with self._lock:
            return _values_to_record(self._values)

    def write_record(self, record: ConsentRecord) -> None:
        with self._lock:
            self._values.update(_record_to_values(record))

    def mark_synced(self, version: int) -> bool:
        with self._lock:
            if self._values.get(KEY_VERSION, 0) != version:
                return False
            self._values[KEY_SYNCED] = True
            return True


class SQLiteConsentStore(ConsentStore):
    """
    SQLite key-value consent store.

    Values are stored JSON-encoded in a namespaced table so several
    applications can share one database file.
    """

    def __init__(self, db_path: str, namespace: str = "consent"):
        self.db_path = str(db_path)
        self.namespace = namespace
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._transaction() as conn:
            conn.execute("""CREATE TABLE IF NOT EXISTS kv (
                namespace TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (namespace, key)
            )""")
        logger.debug(f"Consent store ready: {self.db_path} [{self.namespace}]")

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly
        return sqlite3.connect(self.db_path, isolation_level=None)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _read_all(self, conn: sqlite3.Connection) -> Dict[str, Any]:
        rows = conn.execute(
            "SELECT key, value FROM kv WHERE namespace=?",
            (self.namespace,),
        ).fetchall()
        values = {}
        for key, raw in rows:
            try:
                values[key] = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring corrupt consent value for {key!r}")
        return values

    def _write(self, conn: sqlite3.Connection, key: str, value: Any) -> None:
        now = datetime.now(timezone.utc).isoformat()
        conn.execute(
            """INSERT INTO kv (namespace, key, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(namespace, key) DO UPDATE SET
                value=excluded.value, updated_at=excluded.updated_at""",
            (self.namespace, key, json.dumps(value), now),
        )

    def get(self, key: str, default: Any = _MISSING) -> Any:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT value FROM kv WHERE namespace=? AND key=?",
                (self.namespace, key),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return self._default_for(key, default)
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning(f"Ignoring corrupt consent value for {key!r}")
            return self._default_for(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock, self._transaction() as conn:
            self._write(conn, key, value)

    def clear(self) -> None:
        with self._lock, self._transaction() as conn:
            conn.execute("DELETE FROM kv WHERE namespace=?", (self.namespace,))
        logger.info(f"Consent store cleared [{self.namespace}]")

    def read_record(self) -> ConsentRecord:
        conn = self._connect()
        try:
            values = self._read_all(conn)
        finally:
            conn.close()
        return _values_to_record(values)

    def write_record(self, record: ConsentRecord) -> None:
        with self._lock, self._transaction() as conn:
            for key, value in _record_to_values(record).items():
                self._write(conn, key, value)

    def mark_synced(self, version: int) -> bool:
        with self._lock, self._transaction() as conn:
            current = self._read_all(conn).get(KEY_VERSION, 0)
            if current != version:
                return False
            self._write(conn, KEY_SYNCED, True)
            return True

    def stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        conn = self._connect()
        try:
            total = conn.execute(
                "SELECT COUNT(*) FROM kv WHERE namespace=?", (self.namespace,)
            ).fetchone()[0]
        finally:
            conn.close()
        size = os.path.getsize(self.db_path) if os.path.exists(self.db_path) else 0
        return {
            "namespace": self.namespace,
            "total_keys": total,
            "db_size_bytes": size,
        }
