"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    session_log_path: str
    registry_storage_key: str
    theme_storage_key: str
    default_total_slots: int
    max_slots: int
    forecast_lookback_days: int
    forecast_cache_ttl_seconds: int
    forecast_timeout_seconds: float
    # Empty means the host's local zone.
    time_zone: str
    background_workers: int
    synthetic_seed_enabled: bool
    synthetic_seed_days: int
    synthetic_random_seed: int

    @property
    def session_log_enabled(self) -> bool:
        return bool(self.session_log_path)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings once per process; tests derive variants via `replace`."""
    data_dir = Path(os.getenv("PARKING_DATA_DIR", "data"))
    return Settings(
        app_name=os.getenv("PARKING_APP_NAME", "Slotwise Parking Monitor"),
        app_version=os.getenv("PARKING_APP_VERSION", "1.0.0"),
        log_level=os.getenv("PARKING_LOG_LEVEL", "INFO"),
        database_path=Path(os.getenv("PARKING_DATABASE_PATH", str(data_dir / "parking.db"))),
        session_log_path=os.getenv(
            "PARKING_SESSION_LOG_PATH",
            str(data_dir / "parking_sessions.db"),
        ),
        registry_storage_key=os.getenv("PARKING_REGISTRY_KEY", "parkingSlots"),
        theme_storage_key=os.getenv("PARKING_THEME_KEY", "parkingTheme"),
        default_total_slots=_env_int("PARKING_DEFAULT_TOTAL_SLOTS", 20),
        max_slots=_env_int("PARKING_MAX_SLOTS", 100),
        forecast_lookback_days=_env_int("PARKING_FORECAST_LOOKBACK_DAYS", 7),
        forecast_cache_ttl_seconds=_env_int("PARKING_FORECAST_CACHE_TTL_SECONDS", 300),
        forecast_timeout_seconds=_env_float("PARKING_FORECAST_TIMEOUT_SECONDS", 10.0),
        time_zone=os.getenv("PARKING_TIME_ZONE", ""),
        background_workers=_env_int("PARKING_BACKGROUND_WORKERS", 2),
        synthetic_seed_enabled=_env_bool("PARKING_SYNTHETIC_SEED", False),
        synthetic_seed_days=_env_int("PARKING_SYNTHETIC_SEED_DAYS", 7),
        synthetic_random_seed=_env_int("PARKING_SYNTHETIC_RANDOM_SEED", 42),
    )
