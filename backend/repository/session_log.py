"""Append-only parking session log used as forecasting input."""

from __future__ import annotations

import random
import sqlite3
from pathlib import Path
from typing import Any, Mapping, Optional

from backend.domain.models import SessionRecord, TYPE_KEYS
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_SESSION_COLUMNS = (
    "slot_index",
    "slot_number",
    "slot_type",
    "time_in",
    "time_out",
    "created_at",
    "updated_at",
)

# Relative arrival weight per hour of day for synthetic history.
_SYNTHETIC_HOURLY_WEIGHTS = (
    0.05, 0.03, 0.02, 0.02, 0.03, 0.08, 0.25, 0.6, 0.9, 0.85, 0.6, 0.55,
    0.7, 0.65, 0.5, 0.45, 0.6, 0.8, 0.75, 0.5, 0.35, 0.25, 0.15, 0.08,
)


class SessionLogUnavailableError(Exception):
    """Raised when the session log cannot be read or written."""


class SessionLogRepository:
    """Stores one row per occupancy session keyed by its opaque session id."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        if not self._settings.session_log_path:
            raise SessionLogUnavailableError("Session log path is not configured")
        self._db_path = Path(self._settings.session_log_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        return connection

    def initialize_database(self) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ParkingSessions (
                        session_id TEXT PRIMARY KEY,
                        slot_index INTEGER,
                        slot_number INTEGER,
                        slot_type TEXT,
                        time_in REAL,
                        time_out REAL,
                        created_at REAL,
                        updated_at REAL
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_sessions_time_in
                    ON ParkingSessions(time_in);
                    """
                )
                conn.commit()
            logger.info("Session log initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise SessionLogUnavailableError(f"Session log initialization failed: {exc}") from exc

    def put(self, session_id: str, fields: Mapping[str, Any], *, merge: bool = True) -> None:
        """Write a session document.

        With `merge=True` only the given fields are updated on an existing row;
        otherwise the row is replaced and missing columns become NULL.
        """
        unknown = set(fields) - set(_SESSION_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        if not session_id:
            raise ValueError("session_id must be non-empty")

        columns = [column for column in _SESSION_COLUMNS if column in fields]
        values = [fields[column] for column in columns]
        column_list = "".join(f", {column}" for column in columns)
        placeholders = "".join(", ?" for _ in columns)
        try:
            with self._connect() as conn:
                if merge:
                    if columns:
                        updates = ", ".join(f"{column} = excluded.{column}" for column in columns)
                        conflict_clause = f"ON CONFLICT(session_id) DO UPDATE SET {updates}"
                    else:
                        conflict_clause = "ON CONFLICT(session_id) DO NOTHING"
                    conn.execute(
                        f"""
                        INSERT INTO ParkingSessions (session_id{column_list})
                        VALUES (?{placeholders})
                        {conflict_clause};
                        """,
                        (session_id, *values),
                    )
                else:
                    conn.execute(
                        "DELETE FROM ParkingSessions WHERE session_id = ?;",
                        (session_id,),
                    )
                    conn.execute(
                        f"""
                        INSERT INTO ParkingSessions (session_id{column_list})
                        VALUES (?{placeholders});
                        """,
                        (session_id, *values),
                    )
                conn.commit()
        except sqlite3.Error as exc:
            raise SessionLogUnavailableError(f"Session write failed: {exc}") from exc

    def query_since(self, cutoff_ms: float) -> list[SessionRecord]:
        """Return sessions with time_in >= cutoff_ms ordered by time_in."""
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    SELECT session_id, slot_index, slot_type, time_in, time_out
                    FROM ParkingSessions
                    WHERE time_in >= ?
                    ORDER BY time_in ASC;
                    """,
                    (cutoff_ms,),
                )
                return [
                    SessionRecord(
                        session_id=str(row["session_id"]),
                        slot_index=int(row["slot_index"] or 0),
                        slot_type=str(row["slot_type"] or "normal"),
                        time_in=row["time_in"],
                        time_out=row["time_out"],
                    )
                    for row in cursor.fetchall()
                ]
        except sqlite3.Error as exc:
            raise SessionLogUnavailableError(f"Session query failed: {exc}") from exc

    def get_session(self, session_id: str) -> Optional[dict[str, Any]]:
        with self._connect() as conn:
            cursor = conn.execute(
                "SELECT * FROM ParkingSessions WHERE session_id = ?;",
                (session_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return dict(row)

    def count_sessions(self) -> int:
        with self._connect() as conn:
            cursor = conn.execute("SELECT COUNT(*) AS count FROM ParkingSessions;")
            return int(cursor.fetchone()["count"])

    def seed_synthetic_sessions(self, total_slots: int, now_ms: int) -> int:
        """Seed deterministic demo history only when the log is empty."""
        if self.count_sessions() > 0:
            logger.info("Session history already present; skipping seed")
            return 0

        rng = random.Random(self._settings.synthetic_random_seed)
        hour_ms = 60 * 60 * 1000
        start_ms = now_ms - self._settings.synthetic_seed_days * 24 * hour_ms
        start_ms -= start_ms % hour_ms

        rows: list[tuple[Any, ...]] = []
        cursor_ms = start_ms
        sequence = 0
        while cursor_ms < now_ms:
            hour = (cursor_ms // hour_ms) % 24
            arrivals = int(round(_SYNTHETIC_HOURLY_WEIGHTS[hour] * total_slots * 0.4))
            for _ in range(arrivals):
                slot_index = rng.randrange(total_slots)
                time_in = cursor_ms + rng.randrange(hour_ms)
                time_out = time_in + rng.randrange(15, 180) * 60 * 1000
                if time_in >= now_ms:
                    continue
                sequence += 1
                rows.append(
                    (
                        f"seed-{start_ms}-{sequence:06d}",
                        slot_index,
                        slot_index + 1,
                        rng.choice(TYPE_KEYS),
                        time_in,
                        time_out if time_out < now_ms else None,
                        time_in,
                        time_out if time_out < now_ms else time_in,
                    )
                )
            cursor_ms += hour_ms

        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO ParkingSessions (
                    session_id, slot_index, slot_number, slot_type,
                    time_in, time_out, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                rows,
            )
            conn.commit()
        logger.info("Synthetic session seed completed with %s records", len(rows))
        return len(rows)
