"""Rush-hour forecasting from parking session history.

Session minutes are redistributed into 24 hour-of-day buckets, walking each
session in segments that never cross a clock-hour boundary. The bucket totals
are normalised by the capacity-minutes available over the tracked days, which
yields the fraction of the lot that is typically occupied during each hour.

The denominator uses the *current* capacity for the whole lookback window, so
history recorded under a different capacity is skewed. This is a known
approximation.
"""

from __future__ import annotations

import math
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, tzinfo
from threading import RLock
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

import numpy as np

from backend.domain.models import (
    ForecastOutcome,
    ForecastSummary,
    RushForecast,
    SessionRecord,
    WaitEstimate,
)
from backend.repository.session_log import SessionLogRepository, SessionLogUnavailableError
from backend.utils.clock import Clock, current_millis
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

HOURS_PER_DAY = 24
MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR

STATUS_READY = "ready"
STATUS_EMPTY = "empty"
STATUS_ERROR = "error"
STATUS_DISABLED = "disabled"

_WAIT_THRESHOLDS = (
    (0.85, WaitEstimate(label="Very high", eta="15-20 min")),
    (0.65, WaitEstimate(label="High", eta="10-15 min")),
    (0.40, WaitEstimate(label="Moderate", eta="5-8 min")),
    (0.20, WaitEstimate(label="Low", eta="2-4 min")),
)


class ForecastError(Exception):
    """Raised when a forecast cannot be computed from the session source."""


def to_millis(value: Any) -> Optional[float]:
    """Coerce a stored timestamp into epoch milliseconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return value.timestamp() * 1000
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def distribute_session_minutes(
    buckets: np.ndarray,
    start_ms: float,
    end_ms: float,
    day_keys: set[str],
    tz: Optional[tzinfo],
) -> None:
    """Spread [start_ms, end_ms) over hour-of-day buckets in place.

    A `tz` of None buckets by the host's local wall clock.
    """
    cursor = start_ms
    while cursor < end_ms:
        cursor_dt = datetime.fromtimestamp(cursor / 1000, tz)
        day_keys.add(cursor_dt.date().isoformat())
        hour_start = cursor_dt.replace(minute=0, second=0, microsecond=0)
        hour_end_ms = hour_start.timestamp() * 1000 + MS_PER_HOUR - 1
        segment_end = min(end_ms, hour_end_ms)
        minutes = max(0.0, (segment_end - cursor) / MS_PER_MINUTE)
        if math.isfinite(minutes):
            buckets[cursor_dt.hour] += minutes
        cursor = segment_end + 1


def calculate_rush_forecast(
    sessions: Iterable[SessionRecord],
    total_slots: int,
    now_ms: float,
    *,
    lookback_days: int = 7,
    tz: Optional[tzinfo] = None,
) -> Optional[ForecastSummary]:
    """Return the hourly occupancy summary, or None when data is insufficient."""
    session_list = list(sessions)
    if not session_list or not total_slots:
        return None

    buckets = np.zeros(HOURS_PER_DAY, dtype=float)
    day_keys: set[str] = set()

    for session in session_list:
        start_ms = to_millis(session.time_in)
        end_ms = to_millis(session.time_out) or now_ms
        if start_ms is None or not math.isfinite(start_ms) or not math.isfinite(end_ms):
            continue
        if end_ms <= start_ms:
            continue
        distribute_session_minutes(buckets, start_ms, end_ms, day_keys, tz)

    if not day_keys:
        return None

    tracked_days = min(lookback_days, max(1, len(day_keys)))
    denominator = 60 * total_slots * tracked_days
    if not denominator:
        return None

    probabilities = np.clip(buckets / denominator, 0.0, 1.0)
    current_hour = datetime.fromtimestamp(now_ms / 1000, tz).hour
    return ForecastSummary(
        busy_hour=int(np.argmax(probabilities)),
        empty_hour=int(np.argmin(probabilities)),
        rush_probability=float(probabilities[current_hour]),
        probabilities=tuple(float(value) for value in probabilities),
        day_count=tracked_days,
        sample_size=len(session_list),
    )


def resolve_time_zone(name: str) -> Optional[tzinfo]:
    """Return the named IANA zone, or None for the host's local zone."""
    return ZoneInfo(name) if name else None


def get_wait_estimate(probability: float) -> WaitEstimate:
    if probability is None or not math.isfinite(probability):
        return WaitEstimate(label="--", eta="")
    for threshold, estimate in _WAIT_THRESHOLDS:
        if probability >= threshold:
            return estimate
    return WaitEstimate(label="Very low", eta="< 2 min")


def format_hour_label(hour: Any) -> str:
    if isinstance(hour, bool) or not isinstance(hour, (int, float)) or not math.isfinite(hour):
        return "--"
    normalized = int(math.floor(hour)) % 24
    period = "PM" if normalized >= 12 else "AM"
    human_hour = normalized % 12 or 12
    return f"{human_hour}:00 {period}"


def build_rush_forecast(summary: ForecastSummary) -> RushForecast:
    return RushForecast(
        summary=summary,
        busy_label=format_hour_label(summary.busy_hour),
        empty_label=format_hour_label(summary.empty_hour),
        rush_percent=int(summary.rush_probability * 100 + 0.5),
        wait=get_wait_estimate(summary.rush_probability),
    )


@dataclass
class ForecastCache:
    """Process-scoped forecast cache keyed by total slot count."""

    forecast: Optional[RushForecast] = None
    total_slots: Optional[int] = None
    expires_at: float = 0.0
    requested_key: Optional[int] = None

    def lookup(self, total_slots: int, now_ms: float) -> Optional[RushForecast]:
        if (
            self.forecast is not None
            and self.total_slots == total_slots
            and self.expires_at > now_ms
        ):
            return self.forecast
        return None

    def store(self, total_slots: int, forecast: Optional[RushForecast], expires_at: float) -> None:
        self.forecast = forecast
        self.total_slots = total_slots
        self.expires_at = expires_at

    def clear(self) -> None:
        self.forecast = None
        self.total_slots = None
        self.expires_at = 0.0


class RushForecastService:
    """Serves cached rush forecasts and de-duplicates in-flight computations."""

    def __init__(
        self,
        session_log: Optional[SessionLogRepository] = None,
        settings: Optional[Settings] = None,
        clock: Clock = current_millis,
    ) -> None:
        self._settings = settings or get_settings()
        self._session_log = session_log
        self._clock = clock
        self._tz = resolve_time_zone(self._settings.time_zone)
        self._cache = ForecastCache()
        self._inflight: dict[int, Future] = {}
        self._lock = RLock()
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def enabled(self) -> bool:
        return self._session_log is not None

    @property
    def cache(self) -> ForecastCache:
        return self._cache

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=max(1, self._settings.background_workers),
                    thread_name_prefix="forecast",
                )
            return self._executor

    def compute_forecast(self, total_slots: int) -> Optional[RushForecast]:
        """Fetch the lookback window and compute a forecast without caching."""
        if self._session_log is None:
            raise ForecastError("Session log is not configured")
        now_ms = self._clock()
        cutoff = now_ms - self._settings.forecast_lookback_days * MS_PER_DAY
        try:
            sessions = self._session_log.query_since(cutoff)
        except SessionLogUnavailableError as exc:
            raise ForecastError(str(exc)) from exc
        if not sessions:
            return None
        summary = calculate_rush_forecast(
            sessions,
            total_slots,
            now_ms,
            lookback_days=self._settings.forecast_lookback_days,
            tz=self._tz,
        )
        if summary is None:
            return None
        logger.info(
            "Rush forecast computed | total_slots=%s | sessions=%s | days=%s | busy_hour=%s",
            total_slots,
            summary.sample_size,
            summary.day_count,
            summary.busy_hour,
        )
        return build_rush_forecast(summary)

    def get_forecast(
        self,
        total_slots: int,
        timeout: Optional[float] = None,
    ) -> ForecastOutcome:
        if self._session_log is None:
            return ForecastOutcome(status=STATUS_DISABLED, detail="Session log is not configured")
        if total_slots <= 0:
            return ForecastOutcome(status=STATUS_EMPTY)

        with self._lock:
            self._cache.requested_key = total_slots
            cached = self._cache.lookup(total_slots, self._clock())
            if cached is not None:
                return ForecastOutcome(status=STATUS_READY, forecast=cached)

            future = self._inflight.get(total_slots)
            if future is None:
                future = self._get_executor().submit(self._compute_and_settle, total_slots)
                self._inflight[total_slots] = future

        try:
            forecast = future.result(timeout=timeout)
        except FutureTimeoutError:
            logger.warning("Rush forecast timed out | total_slots=%s | timeout=%s", total_slots, timeout)
            return ForecastOutcome(status=STATUS_ERROR, detail="Forecast timed out")
        except Exception as exc:
            logger.warning("Rush forecast failed | total_slots=%s | error=%s", total_slots, exc)
            return ForecastOutcome(status=STATUS_ERROR, detail=str(exc))

        if forecast is None:
            return ForecastOutcome(status=STATUS_EMPTY)
        return ForecastOutcome(status=STATUS_READY, forecast=forecast)

    def _compute_and_settle(self, total_slots: int) -> Optional[RushForecast]:
        """Compute on the worker and settle the cache before waiters wake up.

        A result is cached only when `total_slots` is still the most recently
        requested key; a failure clears the cache.
        """
        try:
            forecast = self.compute_forecast(total_slots)
        except Exception:
            with self._lock:
                self._inflight.pop(total_slots, None)
                self._cache.clear()
            raise

        with self._lock:
            self._inflight.pop(total_slots, None)
            if self._cache.requested_key != total_slots:
                logger.debug(
                    "Discarding stale forecast | total_slots=%s | requested=%s",
                    total_slots,
                    self._cache.requested_key,
                )
                return forecast
            expires_at = self._clock() + self._settings.forecast_cache_ttl_seconds * 1000
            self._cache.store(total_slots, forecast, expires_at)
        return forecast

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    def shutdown(self) -> None:
        with self._lock:
            executor = self._executor
            self._executor = None
        if executor is not None:
            executor.shutdown(wait=True)
