"""
Enrollment Store Module

This module handles persistence and retrieval of enrolled face descriptors.

Records are stored in a single SQLite database:
- records: One row per enrollment sample (name + 128-dim float32 descriptor)
- recognition_logs: History of recognition attempts (for auditing and stats)

The EnrollmentStore class provides:
- add_record: Enroll a name/descriptor pair (append or replace policy)
- snapshot: Materialise every record for one matching pass
- list_users: Names with record counts
- delete_user / delete_record: Administrative removal
- log_recognition: Audit trail for /recognize

All access goes through one connection guarded by a re-entrant lock, so a
matching pass reading a snapshot never observes a half-applied enrollment.
A pass may or may not include a record enrolled concurrently with it.

Usage:
    from core.enrollment_store import EnrollmentStore

    store = EnrollmentStore(db_path="storage/face_access.sqlite")
    record = store.add_record("Alice", embedding)
    records = store.snapshot()

Any sqlite3 failure is raised as StoreUnavailableError.
"""

import sqlite3
import threading
import uuid
import logging
from pathlib import Path
from datetime import datetime
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple

import numpy as np

from core.errors import StoreUnavailableError
from core.matching.interfaces import as_embedding, validate_name

# Setup logging
logger = logging.getLogger(__name__)

REENROLLMENT_POLICIES = ("append", "replace")


@dataclass(frozen=True)
class IdentityRecord:
    """
    One enrolled descriptor sample.

    Attributes:
        record_id: Unique identifier for the record (e.g., "rec_a1b2c3d4").
        name: Display name. Not unique: a person may own many records.
        embedding: Face descriptor. Shape: (D,), dtype: float32.
        enrolled_at: ISO timestamp of enrollment.
    """

    record_id: str
    name: str
    embedding: np.ndarray = field(repr=False, compare=False)
    enrolled_at: str = ""

    @property
    def embedding_dim(self) -> int:
        return int(self.embedding.shape[0])


def generate_record_id() -> str:
    """
    Generate a unique record ID.

    Format: "rec_" followed by 8 random hex characters.
    """
    return f"rec_{uuid.uuid4().hex[:8]}"


class EnrollmentStore:
    """
    Durable mapping from identity name to one or more descriptors.

    Attributes:
        db_path: Path to the SQLite database file.
        embedding_dim: Required descriptor length.
        reenrollment: "append" keeps every sample for a name, "replace"
                      deletes the name's previous samples in the same
                      transaction that inserts the new one.
    """

    def __init__(
        self,
        db_path: str,
        embedding_dim: int = 128,
        reenrollment: str = "append",
    ):
        """
        Initialize the EnrollmentStore.

        Creates the database file and schema if they don't exist.

        Args:
            db_path: Path to SQLite database file.
            embedding_dim: Descriptor length enforced on insert.
            reenrollment: Re-enrollment policy, "append" or "replace".

        Raises:
            ValueError: If the policy is unknown.
            StoreUnavailableError: If the database cannot be opened.
        """
        if reenrollment not in REENROLLMENT_POLICIES:
            raise ValueError(
                f"Unknown re-enrollment policy '{reenrollment}', "
                f"expected one of {REENROLLMENT_POLICIES}"
            )

        self.db_path = Path(db_path)
        self.embedding_dim = embedding_dim
        self.reenrollment = reenrollment
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

        logger.info(f"EnrollmentStore initialized: db={self.db_path}, "
                    f"dim={self.embedding_dim}, reenrollment={self.reenrollment}")

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get or create the SQLite connection.

        The connection is shared across FastAPI's worker threads; every use
        happens while holding self._lock.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_database(self) -> None:
        """
        Initialize the SQLite database schema.

        Creates tables if they don't exist:
        - records: Enrolled descriptors
        - recognition_logs: Recognition attempt history
        """
        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS records (
                            seq INTEGER PRIMARY KEY AUTOINCREMENT,
                            record_id TEXT UNIQUE NOT NULL,
                            name TEXT NOT NULL,
                            embedding BLOB NOT NULL,
                            enrolled_at TEXT NOT NULL
                        )
                    """)
                    conn.execute(
                        "CREATE INDEX IF NOT EXISTS idx_records_name ON records(name)"
                    )
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS recognition_logs (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                            name TEXT,
                            record_id TEXT,
                            distance REAL,
                            allowed BOOLEAN,
                            processing_time_ms INTEGER
                        )
                    """)
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Cannot open enrollment store: {e}") from e

        logger.debug("Database schema initialized")

    def _row_to_record(self, row: sqlite3.Row) -> IdentityRecord:
        embedding = np.frombuffer(row["embedding"], dtype=np.float32).copy()
        return IdentityRecord(
            record_id=row["record_id"],
            name=row["name"],
            embedding=embedding,
            enrolled_at=row["enrolled_at"],
        )

    def enroll(self, name: str, embedding) -> Tuple[IdentityRecord, int]:
        """
        Enroll a descriptor under a name.

        Under the "append" policy a new record is always added. Under
        "replace" the name's existing records are removed in the same
        transaction, so a concurrent snapshot sees either the old set or
        the new record, never neither. The name's record count is read in
        that transaction too, so once the insert commits there is no
        further store access that could fail.

        Args:
            name: Display name (surrounding whitespace is stripped).
            embedding: (D,) descriptor.

        Returns:
            Tuple of (stored IdentityRecord, records now enrolled under the name).

        Raises:
            EmptyNameError: If the name is blank.
            InvalidEmbeddingError: If the descriptor is malformed.
            StoreUnavailableError: If the write fails.
        """
        name = validate_name(name)
        embedding = as_embedding(embedding, self.embedding_dim)

        record = IdentityRecord(
            record_id=generate_record_id(),
            name=name,
            embedding=embedding,
            enrolled_at=datetime.now().isoformat(),
        )

        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    if self.reenrollment == "replace":
                        cursor = conn.execute("DELETE FROM records WHERE name = ?", (name,))
                        if cursor.rowcount:
                            logger.info(f"Replaced {cursor.rowcount} record(s) for {name}")
                    conn.execute(
                        """
                        INSERT INTO records (record_id, name, embedding, enrolled_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (
                            record.record_id,
                            record.name,
                            sqlite3.Binary(embedding.tobytes()),
                            record.enrolled_at,
                        ),
                    )
                    records_for_name = conn.execute(
                        "SELECT COUNT(*) AS n FROM records WHERE name = ?", (name,)
                    ).fetchone()["n"]
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to enroll {name}: {e}") from e

        logger.info(f"Enrolled {record.name} (id={record.record_id}, "
                    f"records for name={records_for_name})")
        return record, records_for_name

    def add_record(self, name: str, embedding) -> IdentityRecord:
        """Enroll a descriptor under a name and return the stored record."""
        record, _ = self.enroll(name, embedding)
        return record

    def snapshot(self) -> List[IdentityRecord]:
        """
        Read every enrolled record for one matching pass.

        Records are returned in enrollment order. Records whose descriptor
        length differs from embedding_dim (e.g. enrolled before the
        dimension was reconfigured) are skipped and logged as errors.

        Raises:
            StoreUnavailableError: If the read fails.
        """
        with self._lock:
            try:
                rows = self._get_connection().execute(
                    "SELECT record_id, name, embedding, enrolled_at FROM records ORDER BY seq"
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to read enrollment store: {e}") from e

        records = []
        for row in rows:
            record = self._row_to_record(row)
            if record.embedding_dim != self.embedding_dim:
                logger.error(
                    f"Skipping record {record.record_id} ({record.name}): descriptor has "
                    f"{record.embedding_dim} values, expected {self.embedding_dim}"
                )
                continue
            records.append(record)
        logger.debug(f"Snapshot of {len(records)} records")
        return records

    def get_record(self, record_id: str) -> Optional[IdentityRecord]:
        """Load one record, or None if it doesn't exist."""
        with self._lock:
            try:
                row = self._get_connection().execute(
                    "SELECT record_id, name, embedding, enrolled_at FROM records WHERE record_id = ?",
                    (record_id,),
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to read record {record_id}: {e}") from e

        return self._row_to_record(row) if row is not None else None

    def list_users(self) -> List[Dict[str, Any]]:
        """
        List enrolled names with their record counts.

        Returns:
            List of dictionaries, each containing:
            - name: Display name
            - n_records: Number of descriptors enrolled under the name
            - last_enrolled_at: Timestamp of the most recent enrollment
            Sorted by name.
        """
        with self._lock:
            try:
                rows = self._get_connection().execute("""
                    SELECT name, COUNT(*) AS n_records, MAX(enrolled_at) AS last_enrolled_at
                    FROM records
                    GROUP BY name
                    ORDER BY name
                """).fetchall()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to list users: {e}") from e

        return [
            {
                "name": row["name"],
                "n_records": row["n_records"],
                "last_enrolled_at": row["last_enrolled_at"],
            }
            for row in rows
        ]

    def count_records(self, name: Optional[str] = None) -> int:
        """Number of records, optionally restricted to one name."""
        with self._lock:
            try:
                conn = self._get_connection()
                if name is None:
                    row = conn.execute("SELECT COUNT(*) AS n FROM records").fetchone()
                else:
                    row = conn.execute(
                        "SELECT COUNT(*) AS n FROM records WHERE name = ?", (name,)
                    ).fetchone()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to count records: {e}") from e

        return row["n"]

    def user_exists(self, name: str) -> bool:
        return self.count_records(name) > 0

    def delete_user(self, name: str) -> int:
        """
        Delete every record enrolled under a name.

        Returns:
            Number of records deleted (0 if the name was unknown).
        """
        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    cursor = conn.execute("DELETE FROM records WHERE name = ?", (name,))
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to delete {name}: {e}") from e

        if cursor.rowcount:
            logger.info(f"Deleted {cursor.rowcount} record(s) for {name}")
        else:
            logger.warning(f"Cannot delete: no records for {name}")
        return cursor.rowcount

    def delete_record(self, record_id: str) -> bool:
        """
        Delete a single record.

        Returns:
            True if the record existed.
        """
        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    cursor = conn.execute("DELETE FROM records WHERE record_id = ?", (record_id,))
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to delete record {record_id}: {e}") from e

        if cursor.rowcount:
            logger.info(f"Deleted record {record_id}")
            return True
        logger.warning(f"Cannot delete: record {record_id} not found")
        return False

    def log_recognition(
        self,
        name: Optional[str],
        record_id: Optional[str],
        distance: Optional[float],
        allowed: bool,
        processing_time_ms: int,
    ) -> int:
        """
        Log a recognition attempt for auditing.

        Args:
            name: Accepted name, or None for a miss.
            record_id: Nearest record, or None for an empty store.
            distance: Distance to the nearest record.
            allowed: Whether access was granted.
            processing_time_ms: Time spent matching in milliseconds.

        Returns:
            The log entry ID.
        """
        with self._lock:
            try:
                conn = self._get_connection()
                with conn:
                    cursor = conn.execute(
                        """
                        INSERT INTO recognition_logs
                        (name, record_id, distance, allowed, processing_time_ms)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (name, record_id, distance, allowed, processing_time_ms),
                    )
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to log recognition: {e}") from e

        log_id = cursor.lastrowid
        logger.debug(f"Logged recognition attempt: id={log_id}, name={name}, allowed={allowed}")
        return log_id

    def get_recognition_logs(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent recognition attempts, newest first."""
        with self._lock:
            try:
                rows = self._get_connection().execute(
                    "SELECT * FROM recognition_logs ORDER BY id DESC LIMIT ?", (limit,)
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to read recognition logs: {e}") from e

        return [
            {
                "id": row["id"],
                "timestamp": row["timestamp"],
                "name": row["name"],
                "record_id": row["record_id"],
                "distance": row["distance"],
                "allowed": bool(row["allowed"]),
                "processing_time_ms": row["processing_time_ms"],
            }
            for row in rows
        ]

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the store.

        Returns:
            Dictionary with:
            - total_users: Number of distinct enrolled names
            - total_records: Number of enrolled descriptors
            - total_recognitions: Number of recognition attempts
            - successful_recognitions: Number of granted attempts
        """
        with self._lock:
            try:
                conn = self._get_connection()
                record_stats = conn.execute(
                    "SELECT COUNT(DISTINCT name) AS users, COUNT(*) AS records FROM records"
                ).fetchone()
                log_stats = conn.execute(
                    "SELECT COUNT(*) AS total, SUM(allowed) AS successes FROM recognition_logs"
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"Failed to read store stats: {e}") from e

        return {
            "total_users": record_stats["users"] or 0,
            "total_records": record_stats["records"] or 0,
            "total_recognitions": log_stats["total"] or 0,
            "successful_recognitions": int(log_stats["successes"] or 0),
        }

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("Database connection closed")

    def __del__(self):
        """Clean up resources on deletion."""
        self.close()


# Singleton instance for the store
_store_instance: Optional[EnrollmentStore] = None


def get_enrollment_store(db_path: Optional[str] = None) -> EnrollmentStore:
    """
    Get or create the singleton EnrollmentStore instance.

    Args:
        db_path: Path to SQLite database. If None, uses value from config.

    Returns:
        The shared EnrollmentStore instance.
    """
    global _store_instance

    if _store_instance is None:
        from core.config import get_matching_config, get_storage_config, resolve_path

        storage_config = get_storage_config()
        matching_config = get_matching_config()

        if db_path is None:
            db_path = str(resolve_path(storage_config["db_path"]))

        _store_instance = EnrollmentStore(
            db_path,
            embedding_dim=matching_config.get("embedding_dim", 128),
            reenrollment=storage_config.get("reenrollment", "append"),
        )

    return _store_instance


def reset_enrollment_store() -> None:
    """Close and forget the singleton (used by tests and on shutdown)."""
    global _store_instance

    if _store_instance is not None:
        _store_instance.close()
        _store_instance = None
