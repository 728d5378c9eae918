"""SQLite storage for the per-user location log and activation history."""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

from db import wal_connect

from .models import ActivationOutcome, LocationRecord

logger = structlog.get_logger().bind(source="location_storage")


def _utc_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


class LocationStore:
    """Append-only location log, one row per accepted sample.

    There is no natural key on (user_id, recorded_at): a write retried after an
    ambiguous failure can leave a duplicate row.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS location_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    latitude REAL NOT NULL,
                    longitude REAL NOT NULL,
                    recorded_at TIMESTAMP NOT NULL,
                    place_name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    horizontal_accuracy_m REAL,
                    source_stage TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_location_user_recorded
                ON location_records(user_id, recorded_at)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS activation_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    activation_id TEXT NOT NULL,
                    started_at TIMESTAMP NOT NULL,
                    finished_at TIMESTAMP,
                    status TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    detail TEXT,
                    record_id INTEGER
                )
            """)

    def append(self, user_id: str, record: LocationRecord) -> Optional[int]:
        """Append one record.

        Returns:
            Row ID of the new record, or None if the write failed.
        """
        try:
            with wal_connect(self.db_path) as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO location_records
                    (user_id, latitude, longitude, recorded_at, place_name, category,
                     horizontal_accuracy_m, source_stage)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        user_id,
                        record.latitude,
                        record.longitude,
                        _utc_iso(record.recorded_at),
                        record.place_name,
                        record.category,
                        record.horizontal_accuracy_m,
                        str(record.source_stage) if record.source_stage else None,
                    ),
                )
                return cursor.lastrowid
        except sqlite3.Error as e:
            logger.error("record_append_failed", user_id=user_id, error=str(e))
            return None

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> dict:
        item = dict(row)
        item["recorded_at"] = datetime.fromisoformat(item["recorded_at"])
        return item

    def query_recent(self, user_id: str, limit: int = 50) -> list[dict]:
        """Most recent records for a user, newest first."""
        with wal_connect(self.db_path, row_factory=True) as conn:
            cursor = conn.execute(
                """
                SELECT * FROM location_records
                WHERE user_id = ?
                ORDER BY recorded_at DESC, id DESC
                LIMIT ?
            """,
                (user_id, limit),
            )
            return [self._row_to_dict(row) for row in cursor.fetchall()]

    def query_between(self, user_id: str, start: datetime, end: datetime) -> list[dict]:
        """Records with start <= recorded_at < end, oldest first."""
        with wal_connect(self.db_path, row_factory=True) as conn:
            cursor = conn.execute(
                """
                SELECT * FROM location_records
                WHERE user_id = ? AND recorded_at >= ? AND recorded_at < ?
                ORDER BY recorded_at ASC, id ASC
            """,
                (user_id, _utc_iso(start), _utc_iso(end)),
            )
            return [self._row_to_dict(row) for row in cursor.fetchall()]

    def count(self, user_id: str) -> int:
        with wal_connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM location_records WHERE user_id = ?", (user_id,)
            ).fetchone()
            return row[0]

    # --- activation history ---

    def record_activation(self, outcome: ActivationOutcome, started_at: datetime, finished_at: datetime) -> None:
        """Log one finished activation. Failures here never affect the activation."""
        try:
            with wal_connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO activation_runs
                    (activation_id, started_at, finished_at, status, success, detail, record_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        outcome.activation_id,
                        _utc_iso(started_at),
                        _utc_iso(finished_at),
                        str(outcome.status),
                        int(outcome.success),
                        outcome.detail[:500],
                        outcome.record_id,
                    ),
                )
        except sqlite3.Error as e:
            logger.warning("activation_log_failed", error=str(e))

    def recent_activations(self, limit: int = 10) -> list[dict]:
        with wal_connect(self.db_path, row_factory=True) as conn:
            cursor = conn.execute(
                "SELECT * FROM activation_runs ORDER BY id DESC LIMIT ?", (limit,)
            )
            return [dict(row) for row in cursor.fetchall()]
