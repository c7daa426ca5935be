"""Domain-level validation rules for registry capacity and forecasting."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from backend.domain.models import TYPE_KEYS


@dataclass(frozen=True)
class CapacityConfig:
    default_total_slots: int
    max_slots: int
    forecast_lookback_days: int
    forecast_cache_ttl_seconds: int


def validate_capacity_config(config: CapacityConfig) -> None:
    if config.max_slots < 1:
        raise ValueError("max_slots must be >= 1")
    if not 1 <= config.default_total_slots <= config.max_slots:
        raise ValueError("default_total_slots must be between 1 and max_slots")
    if config.forecast_lookback_days <= 0:
        raise ValueError("forecast_lookback_days must be > 0")
    if config.forecast_cache_ttl_seconds < 0:
        raise ValueError("forecast_cache_ttl_seconds must be >= 0")


def is_number(value: Any) -> bool:
    """True for finite ints/floats; bools are not numbers in persisted blobs."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def clamp_total_slots(value: Any, config: CapacityConfig) -> int:
    """Clamp a requested capacity into [1, max_slots].

    Non-numeric or zero input falls back to the default capacity.
    """
    try:
        requested = int(value)
    except (TypeError, ValueError, OverflowError):
        requested = 0
    if requested == 0:
        requested = config.default_total_slots
    return max(1, min(config.max_slots, requested))


def is_valid_slot_type(value: Any) -> bool:
    return isinstance(value, str) and value in TYPE_KEYS
