"""Slot registry: canonical slot list, capacity and repair of persisted state."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional

from backend.domain.constraints import (
    CapacityConfig,
    clamp_total_slots,
    is_number,
    is_valid_slot_type,
    validate_capacity_config,
)
from backend.domain.models import (
    Registry,
    Slot,
    SlotCounts,
    SlotStatus,
    SlotType,
    create_empty_slot,
)
from backend.repository.kv_store import KeyValueRepository
from backend.utils.clock import Clock, current_millis
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class RegistryValidationError(Exception):
    """Raised when a registry operation receives unusable input."""


class SlotNotFoundError(Exception):
    """Raised when a slot index lies outside the current registry."""


def normalize_slot(entry: Any, now_ms: int) -> Slot:
    """Coerce one persisted entry into a valid Slot."""
    if isinstance(entry, str):
        entry = {"status": entry}
    if not isinstance(entry, dict):
        return create_empty_slot(now_ms)

    status = (
        SlotStatus.OCCUPIED
        if entry.get("status") == SlotStatus.OCCUPIED.value
        else SlotStatus.EMPTY
    )
    raw_type = entry.get("type")
    slot_type = SlotType(raw_type) if is_valid_slot_type(raw_type) else SlotType.NORMAL
    last_changed = entry.get("lastChanged")
    last_free = entry.get("lastFreeDuration")
    last_occupied = entry.get("lastOccupiedDuration")
    session_id = entry.get("sessionId")
    if not isinstance(session_id, str) or not session_id or status is SlotStatus.EMPTY:
        session_id = None

    return Slot(
        status=status,
        type=slot_type,
        last_changed=int(last_changed) if is_number(last_changed) else now_ms,
        last_free_duration=int(last_free) if is_number(last_free) else 0,
        last_occupied_duration=int(last_occupied) if is_number(last_occupied) else 0,
        session_id=session_id,
    )


def build_default_registry(total: int, now_ms: int) -> Registry:
    return Registry(
        total=total,
        slots=tuple(create_empty_slot(now_ms) for _ in range(total)),
        updated_at=now_ms,
    )


def fit_slots(slots: tuple[Slot, ...], total: int, now_ms: int) -> tuple[Slot, ...]:
    """Truncate trailing slots or append fresh empty ones to reach `total`."""
    if len(slots) > total:
        return slots[:total]
    additions = tuple(create_empty_slot(now_ms) for _ in range(total - len(slots)))
    return slots + additions


def normalize_registry(
    raw: Any,
    now_ms: int,
    config: CapacityConfig,
) -> tuple[Registry, bool]:
    """Return a repaired registry and whether any repair took place."""
    if not isinstance(raw, dict) or not isinstance(raw.get("slots"), list):
        return build_default_registry(config.default_total_slots, now_ms), True

    raw_slots = raw["slots"]
    slots = tuple(normalize_slot(entry, now_ms) for entry in raw_slots)

    raw_total = raw.get("total")
    if is_number(raw_total):
        total = clamp_total_slots(raw_total, config)
    else:
        total = clamp_total_slots(len(slots), config)
    slots = fit_slots(slots, total, now_ms)

    raw_updated_at = raw.get("updatedAt")
    updated_at = int(raw_updated_at) if is_number(raw_updated_at) else now_ms
    registry = Registry(total=total, slots=slots, updated_at=updated_at)
    return registry, registry.to_payload() != raw


def compute_counts(registry: Registry) -> SlotCounts:
    occupied = sum(1 for slot in registry.slots if slot.status is SlotStatus.OCCUPIED)
    vip_slots = [slot for slot in registry.slots if slot.type is SlotType.VIP]
    vip_free = sum(1 for slot in vip_slots if slot.is_empty)
    empty = registry.total - occupied
    if registry.total:
        occupancy_percent = int(occupied * 100 / registry.total + 0.5)
        free_percent = int(empty * 100 / registry.total + 0.5)
    else:
        occupancy_percent = 0
        free_percent = 0
    return SlotCounts(
        total=registry.total,
        empty=empty,
        occupied=occupied,
        vip_free=vip_free,
        vip_total=len(vip_slots),
        occupancy_percent=occupancy_percent,
        free_percent=free_percent,
    )


def format_duration(duration_ms: float) -> str:
    """Format a millisecond duration as HH:MM:SS, clamping negatives to zero."""
    total_seconds = max(0, int(duration_ms // 1000))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def current_timer_text(slot: Slot, now_ms: int) -> str:
    label = "Occupied for" if slot.status is SlotStatus.OCCUPIED else "Free for"
    return f"{label} {format_duration(now_ms - slot.last_changed)}"


def previous_timer_text(slot: Slot) -> str:
    if slot.status is SlotStatus.OCCUPIED:
        label, previous = "Last free", slot.last_free_duration
    else:
        label, previous = "Last occupied", slot.last_occupied_duration
    if not previous:
        return f"{label}: --"
    return f"{label}: {format_duration(previous)}"


class SlotRegistryService:
    """Loads, repairs, resizes and persists the slot registry snapshot."""

    def __init__(
        self,
        repository: Optional[KeyValueRepository] = None,
        settings: Optional[Settings] = None,
        clock: Clock = current_millis,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or KeyValueRepository(self._settings)
        self._clock = clock
        self._config = CapacityConfig(
            default_total_slots=self._settings.default_total_slots,
            max_slots=self._settings.max_slots,
            forecast_lookback_days=self._settings.forecast_lookback_days,
            forecast_cache_ttl_seconds=self._settings.forecast_cache_ttl_seconds,
        )
        validate_capacity_config(self._config)

    @property
    def storage_key(self) -> str:
        return self._settings.registry_storage_key

    @property
    def capacity_config(self) -> CapacityConfig:
        return self._config

    def now(self) -> int:
        return self._clock()

    def load(self, now: Optional[int] = None) -> Registry:
        """Read the persisted snapshot, repairing and writing back if needed."""
        now_ms = self._clock() if now is None else now
        raw = self._repository.get(self.storage_key)
        registry, repaired = normalize_registry(raw, now_ms, self._config)
        if repaired:
            if raw is None:
                logger.info(
                    "Registry initialized with defaults | total=%s",
                    registry.total,
                )
            else:
                logger.warning(
                    "Registry snapshot repaired | total=%s",
                    registry.total,
                )
            self.save(registry)
        return registry

    def save(self, registry: Registry) -> None:
        if len(registry.slots) != registry.total:
            raise RegistryValidationError("slot count must equal total")
        self._repository.set(self.storage_key, registry.to_payload())

    def resize(self, new_total: Any, now: Optional[int] = None) -> Registry:
        """Clamp and apply a new capacity; truncated slots are discarded."""
        now_ms = self._clock() if now is None else now
        total = clamp_total_slots(new_total, self._config)
        current = self.load(now=now_ms)
        registry = Registry(
            total=total,
            slots=fit_slots(current.slots, total, now_ms),
            updated_at=now_ms,
        )
        self.save(registry)
        logger.info(
            "Registry resized | previous_total=%s | total=%s",
            current.total,
            total,
        )
        return registry

    def get(self, index: int, registry: Optional[Registry] = None) -> Slot:
        snapshot = registry or self.load()
        if not 0 <= index < snapshot.total:
            raise SlotNotFoundError(
                f"slot index {index} is outside [0, {snapshot.total})"
            )
        return snapshot.slots[index]

    def with_slot(
        self,
        registry: Registry,
        index: int,
        slot: Slot,
        now_ms: int,
    ) -> Registry:
        """Return a copy of `registry` with one slot replaced."""
        slots = list(registry.slots)
        slots[index] = slot
        return replace(registry, slots=tuple(slots), updated_at=now_ms)
