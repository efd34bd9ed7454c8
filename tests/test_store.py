"""
Tests for the local consent state stores.

Both implementations share the same contract, so most tests run
against each of them.
"""

import sqlite3

import pytest

from consent_sync.models import ConsentRecord, ConsentStatus
from consent_sync.store import (
    KEY_STATUS,
    KEY_SYNCED,
    KEY_TIMESTAMP,
    KEY_VERSION,
    MemoryConsentStore,
    SQLiteConsentStore,
)


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        yield MemoryConsentStore()
    else:
        store = SQLiteConsentStore(db_path=str(tmp_path / "consent.db"))
        yield store
        store.close()


class TestStoreContract:
    """Behaviour shared by every store."""

    def test_fresh_store_defaults(self, any_store):
        assert any_store.get_status() == ConsentStatus.UNDEFINED
        assert any_store.get_timestamp() == 0
        assert any_store.is_synced() is False
        assert any_store.read_record() == ConsentRecord()

    def test_explicit_default_wins(self, any_store):
        assert any_store.get("missing_key", "fallback") == "fallback"
        assert any_store.get(KEY_TIMESTAMP, 42) == 42

    def test_typed_accessors(self, any_store):
        any_store.set_status(ConsentStatus.DENIED)
        any_store.set_timestamp(1000)
        any_store.set_synced(True)

        assert any_store.get_status() == ConsentStatus.DENIED
        assert any_store.get_timestamp() == 1000
        assert any_store.is_synced() is True

    def test_write_and_read_record(self, any_store):
        record = ConsentRecord(ConsentStatus.ACCEPTED, 1000, False, 3)

        any_store.write_record(record)

        assert any_store.read_record() == record
        assert any_store.get(KEY_VERSION) == 3

    def test_clear_restores_defaults(self, any_store):
        any_store.write_record(ConsentRecord(ConsentStatus.ACCEPTED, 1000, True, 1))

        any_store.clear()

        assert any_store.get_status() == ConsentStatus.UNDEFINED
        assert any_store.get_timestamp() == 0
        assert any_store.is_synced() is False

    def test_unknown_ordinal_reads_undefined(self, any_store):
        any_store.set(KEY_STATUS, 7)

        assert any_store.get_status() == ConsentStatus.UNDEFINED
        assert any_store.read_record().status == ConsentStatus.UNDEFINED

    def test_mark_synced_matching_version(self, any_store):
        any_store.write_record(ConsentRecord(ConsentStatus.ACCEPTED, 1000, False, 2))

        assert any_store.mark_synced(2) is True
        assert any_store.is_synced() is True

    def test_mark_synced_stale_version(self, any_store):
        any_store.write_record(ConsentRecord(ConsentStatus.DENIED, 2000, False, 3))

        assert any_store.mark_synced(2) is False
        assert any_store.is_synced() is False

    def test_mark_synced_on_legacy_record(self, any_store):
        """Stores written before versioning carry an implicit version 0."""
        any_store.set(KEY_STATUS, ConsentStatus.ACCEPTED.value)
        any_store.set(KEY_SYNCED, False)

        assert any_store.mark_synced(0) is True
        assert any_store.is_synced() is True


class TestMemoryConsentStore:

    def test_initial_record(self):
        record = ConsentRecord(ConsentStatus.DENIED, 5, True, 1)
        store = MemoryConsentStore(initial=record)

        assert store.read_record() == record


class TestSQLiteConsentStore:

    def test_survives_reopen(self, tmp_path):
        db_path = str(tmp_path / "consent.db")
        record = ConsentRecord(ConsentStatus.ACCEPTED, 1000, True, 4)

        SQLiteConsentStore(db_path=db_path).write_record(record)
        reopened = SQLiteConsentStore(db_path=db_path)

        assert reopened.read_record() == record

    def test_creates_parent_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "consent.db"

        SQLiteConsentStore(db_path=str(db_path))

        assert db_path.exists()

    def test_namespaces_are_isolated(self, tmp_path):
        db_path = str(tmp_path / "consent.db")
        app_a = SQLiteConsentStore(db_path=db_path, namespace="app_a")
        app_b = SQLiteConsentStore(db_path=db_path, namespace="app_b")

        app_a.write_record(ConsentRecord(ConsentStatus.ACCEPTED, 1000, True, 1))
        app_b.clear()

        assert app_a.get_status() == ConsentStatus.ACCEPTED
        assert app_b.get_status() == ConsentStatus.UNDEFINED

    def test_corrupt_value_reads_default(self, tmp_path):
        db_path = str(tmp_path / "consent.db")
        store = SQLiteConsentStore(db_path=db_path)
        store.set_status(ConsentStatus.ACCEPTED)

        conn = sqlite3.connect(db_path)
        conn.execute("UPDATE kv SET value='{not json' WHERE key=?", (KEY_STATUS,))
        conn.commit()
        conn.close()

        assert store.get_status() == ConsentStatus.UNDEFINED
        assert store.read_record().status == ConsentStatus.UNDEFINED

    def test_stats(self, tmp_path):
        store = SQLiteConsentStore(db_path=str(tmp_path / "consent.db"))
        store.write_record(ConsentRecord(ConsentStatus.DENIED, 1000, False, 1))

        stats = store.stats()

        assert stats["namespace"] == "consent"
        assert stats["total_keys"] == 4
        assert stats["db_size_bytes"] > 0
