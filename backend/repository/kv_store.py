"""Persistent key-value store for registry snapshots and UI preferences."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Optional

from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

ChangeListener = Callable[[str], None]


class KeyValueRepository:
    """SQLite-backed JSON blob store with in-process change notifications.

    Values are stored as JSON text. A value that fails to decode is reported
    as absent so callers can resynthesize defaults.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._listeners: list[ChangeListener] = []
        self._listeners_lock = RLock()

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
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS KeyValueStore (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )
                conn.commit()
            logger.info("Key-value store initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Key-value store initialization failed: {exc}") from exc

    def get_raw(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            cursor = conn.execute(
                "SELECT value FROM KeyValueStore WHERE key = ?;",
                (key,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return str(row["value"])

    def get(self, key: str) -> Any:
        raw = self.get_raw(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Malformed JSON treated as absent | key=%s", key)
            return None

    def set_raw(self, key: str, raw: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO KeyValueStore (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at;
                """,
                (key, raw),
            )
            conn.commit()
        self._notify(key)

    def set(self, key: str, value: Any) -> None:
        self.set_raw(key, json.dumps(value))

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(key)
            except Exception:
                logger.exception("Change listener failed | key=%s", key)
