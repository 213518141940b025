"""
Tests for the EnrollmentStore module.

This test suite verifies:
- IdentityRecord and record ID generation
- Enrollment and snapshot round-trip
- Append and replace re-enrollment policies
- User listing and deletion
- Recognition logging and stats
- Store failures surfacing as StoreUnavailableError
- Snapshot isolation under concurrent enrollment

Run with: pytest tests/test_enrollment_store.py -v
"""

import os
import sys
import shutil
import sqlite3
import tempfile
import threading
from unittest.mock import patch

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.enrollment_store import (
    EnrollmentStore,
    IdentityRecord,
    generate_record_id,
)
from core.errors import EmptyNameError, InvalidEmbeddingError, StoreUnavailableError


DIM = 128


def random_embedding(seed: int) -> np.ndarray:
    return np.random.default_rng(seed).normal(size=DIM).astype(np.float32)


class TestGenerateRecordId:
    """Tests for the generate_record_id function."""

    def test_generate_unique_ids(self):
        ids = [generate_record_id() for _ in range(100)]
        assert len(set(ids)) == 100

    def test_id_format(self):
        record_id = generate_record_id()
        assert record_id.startswith("rec_")
        assert len(record_id) == 12  # "rec_" + 8 hex chars


class TestIdentityRecord:
    """Tests for the IdentityRecord dataclass."""

    def test_embedding_dim(self):
        rec = IdentityRecord("rec_1", "Alice", np.zeros(DIM, dtype=np.float32), "2026-01-01")
        assert rec.embedding_dim == DIM

    def test_repr_hides_embedding(self):
        rec = IdentityRecord("rec_1", "Alice", np.zeros(DIM, dtype=np.float32), "2026-01-01")
        assert "embedding" not in repr(rec)


class TestEnrollmentStore:
    """Tests for the EnrollmentStore class."""

    @pytest.fixture
    def temp_dir(self):
        """Create a temporary directory for testing."""
        temp_dir = tempfile.mkdtemp(prefix="enrollment_test_")
        yield temp_dir
        shutil.rmtree(temp_dir)

    @pytest.fixture
    def store(self, temp_dir):
        """Create an EnrollmentStore with the append policy."""
        s = EnrollmentStore(db_path=os.path.join(temp_dir, "test.sqlite"), embedding_dim=DIM)
        yield s
        s.close()

    @pytest.fixture
    def replace_store(self, temp_dir):
        """Create an EnrollmentStore with the replace policy."""
        s = EnrollmentStore(
            db_path=os.path.join(temp_dir, "replace.sqlite"),
            embedding_dim=DIM,
            reenrollment="replace",
        )
        yield s
        s.close()

    def test_init_creates_database(self, temp_dir):
        db_path = os.path.join(temp_dir, "nested", "dir", "store.sqlite")
        store = EnrollmentStore(db_path=db_path)

        assert os.path.exists(db_path)
        store.close()

    def test_unknown_policy_rejected(self, temp_dir):
        with pytest.raises(ValueError, match="policy"):
            EnrollmentStore(db_path=os.path.join(temp_dir, "x.sqlite"), reenrollment="merge")

    def test_empty_snapshot(self, store):
        assert store.snapshot() == []
        assert store.count_records() == 0

    def test_add_and_snapshot(self, store):
        """Stored descriptors come back bit-identical."""
        embedding = random_embedding(1)
        record = store.add_record("Alice", embedding)

        records = store.snapshot()
        assert len(records) == 1
        assert records[0].record_id == record.record_id
        assert records[0].name == "Alice"
        assert records[0].embedding.dtype == np.float32
        assert np.array_equal(records[0].embedding, embedding)

    def test_name_is_stripped(self, store):
        record = store.add_record("  Alice  ", random_embedding(1))
        assert record.name == "Alice"
        assert store.user_exists("Alice")

    def test_blank_name_rejected(self, store):
        with pytest.raises(EmptyNameError):
            store.add_record("   ", random_embedding(1))
        assert store.count_records() == 0

    def test_wrong_dimension_rejected(self, store):
        with pytest.raises(InvalidEmbeddingError):
            store.add_record("Alice", np.zeros(64, dtype=np.float32))
        assert store.count_records() == 0

    def test_snapshot_in_enrollment_order(self, store):
        names = ["Carol", "Alice", "Bob"]
        for i, name in enumerate(names):
            store.add_record(name, random_embedding(i))

        assert [r.name for r in store.snapshot()] == names

    def test_append_policy_keeps_samples(self, store):
        """Re-enrolling a name adds another record."""
        first = store.add_record("Alice", random_embedding(1))
        second = store.add_record("Alice", random_embedding(2))

        assert first.record_id != second.record_id
        assert store.count_records("Alice") == 2

    def test_replace_policy_keeps_latest(self, replace_store):
        replace_store.add_record("Alice", random_embedding(1))
        latest = replace_store.add_record("Alice", random_embedding(2))
        replace_store.add_record("Bob", random_embedding(3))

        records = replace_store.snapshot()
        alice = [r for r in records if r.name == "Alice"]
        assert len(alice) == 1
        assert alice[0].record_id == latest.record_id
        assert replace_store.count_records() == 2

    def test_enroll_reports_records_for_name(self, store, replace_store):
        store.add_record("Alice", random_embedding(1))
        record, count = store.enroll("Alice", random_embedding(2))
        assert record.name == "Alice"
        assert count == 2

        replace_store.add_record("Alice", random_embedding(1))
        _, count = replace_store.enroll("Alice", random_embedding(2))
        assert count == 1

    def test_snapshot_skips_wrong_dimension_records(self, temp_dir, caplog):
        """Records enrolled under another dimension never reach the matcher."""
        db_path = os.path.join(temp_dir, "redim.sqlite")
        old = EnrollmentStore(db_path=db_path, embedding_dim=DIM)
        old.add_record("Alice", random_embedding(1))
        old.close()

        store = EnrollmentStore(db_path=db_path, embedding_dim=64)
        fresh = store.add_record("Bob", np.ones(64, dtype=np.float32))
        with caplog.at_level("ERROR", logger="core.enrollment_store"):
            records = store.snapshot()
        store.close()

        assert [r.record_id for r in records] == [fresh.record_id]
        assert "Skipping record" in caplog.text

    def test_get_record(self, store):
        record = store.add_record("Alice", random_embedding(1))

        loaded = store.get_record(record.record_id)
        assert loaded is not None
        assert loaded.name == "Alice"
        assert store.get_record("rec_missing") is None

    def test_list_users(self, store):
        store.add_record("Bob", random_embedding(1))
        store.add_record("Alice", random_embedding(2))
        store.add_record("Alice", random_embedding(3))

        users = store.list_users()
        assert [u["name"] for u in users] == ["Alice", "Bob"]
        assert users[0]["n_records"] == 2
        assert users[1]["n_records"] == 1
        assert users[0]["last_enrolled_at"] is not None

    def test_delete_user(self, store):
        store.add_record("Alice", random_embedding(1))
        store.add_record("Alice", random_embedding(2))
        store.add_record("Bob", random_embedding(3))

        assert store.delete_user("Alice") == 2
        assert not store.user_exists("Alice")
        assert store.user_exists("Bob")

    def test_delete_unknown_user(self, store):
        assert store.delete_user("Nobody") == 0

    def test_delete_record(self, store):
        keep = store.add_record("Alice", random_embedding(1))
        drop = store.add_record("Alice", random_embedding(2))

        assert store.delete_record(drop.record_id) is True
        assert store.delete_record(drop.record_id) is False
        assert [r.record_id for r in store.snapshot()] == [keep.record_id]

    def test_persists_across_instances(self, temp_dir):
        db_path = os.path.join(temp_dir, "persist.sqlite")
        first = EnrollmentStore(db_path=db_path)
        first.add_record("Alice", random_embedding(1))
        first.close()

        second = EnrollmentStore(db_path=db_path)
        assert [r.name for r in second.snapshot()] == ["Alice"]
        second.close()

    def test_log_recognition_and_stats(self, store):
        record = store.add_record("Alice", random_embedding(1))

        store.log_recognition("Alice", record.record_id, 0.2, True, 3)
        store.log_recognition(None, record.record_id, 0.9, False, 2)

        logs = store.get_recognition_logs()
        assert len(logs) == 2
        assert logs[0]["allowed"] is False
        assert logs[1]["name"] == "Alice"

        stats = store.get_stats()
        assert stats == {
            "total_users": 1,
            "total_records": 1,
            "total_recognitions": 2,
            "successful_recognitions": 1,
        }

    def test_empty_stats(self, store):
        stats = store.get_stats()
        assert stats["total_users"] == 0
        assert stats["total_recognitions"] == 0

    def test_close_is_idempotent(self, store):
        store.close()
        store.close()
        # Reopens lazily
        assert store.snapshot() == []


class TestStoreUnavailable:
    """A failing database is reported, never treated as an empty store."""

    @pytest.fixture
    def store(self):
        temp_dir = tempfile.mkdtemp(prefix="enrollment_fail_")
        s = EnrollmentStore(db_path=os.path.join(temp_dir, "test.sqlite"))
        yield s
        s.close()
        shutil.rmtree(temp_dir)

    def test_snapshot_raises(self, store):
        with patch.object(store, "_get_connection", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(StoreUnavailableError, match="disk I/O error"):
                store.snapshot()

    def test_enroll_failure_stores_nothing(self, store):
        """A failure inside the enrollment transaction rolls the insert back."""
        real_connection = store._get_connection()

        class CountFails:
            def __init__(self, conn):
                self._conn = conn

            def execute(self, sql, params=()):
                if sql.lstrip().startswith("SELECT COUNT"):
                    raise sqlite3.OperationalError("disk I/O error")
                return self._conn.execute(sql, params)

            def __enter__(self):
                return self._conn.__enter__()

            def __exit__(self, *exc):
                return self._conn.__exit__(*exc)

        with patch.object(store, "_get_connection", return_value=CountFails(real_connection)):
            with pytest.raises(StoreUnavailableError):
                store.enroll("Alice", random_embedding(1))

        assert store.count_records() == 0

    def test_add_record_raises(self, store):
        with patch.object(store, "_get_connection", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(StoreUnavailableError):
                store.add_record("Alice", random_embedding(1))

    def test_unopenable_database(self):
        temp_dir = tempfile.mkdtemp(prefix="enrollment_dir_")
        try:
            # A directory cannot be opened as a database file
            with pytest.raises(StoreUnavailableError):
                EnrollmentStore(db_path=temp_dir)
        finally:
            shutil.rmtree(temp_dir)

    def test_store_unavailable_matches_both_taxonomies(self):
        from core.errors import EnrollError, VerifyError

        err = StoreUnavailableError("down")
        assert isinstance(err, EnrollError)
        assert isinstance(err, VerifyError)


class TestConcurrency:
    """Snapshots stay consistent while another thread enrolls."""

    def test_snapshot_isolation(self):
        temp_dir = tempfile.mkdtemp(prefix="enrollment_conc_")
        store = EnrollmentStore(db_path=os.path.join(temp_dir, "test.sqlite"))
        n_writes = 100
        errors = []

        def writer():
            try:
                for i in range(n_writes):
                    store.add_record(f"user{i % 10}", random_embedding(i))
            except Exception as e:  # surfaced through the errors list
                errors.append(e)

        try:
            thread = threading.Thread(target=writer)
            thread.start()

            sizes = []
            while thread.is_alive():
                records = store.snapshot()
                assert all(r.embedding.shape == (DIM,) for r in records)
                assert len({r.record_id for r in records}) == len(records)
                sizes.append(len(records))
            thread.join()

            assert errors == []
            assert sizes == sorted(sizes)
            assert store.count_records() == n_writes
        finally:
            store.close()
            shutil.rmtree(temp_dir)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
