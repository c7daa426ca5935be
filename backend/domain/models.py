"""Domain models for slot occupancy, sessions, forecasts and queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class SlotStatus(str, Enum):
    EMPTY = "empty"
    OCCUPIED = "occupied"


class SlotType(str, Enum):
    NORMAL = "normal"
    VIP = "vip"
    HANDICAPPED = "handicapped"

    @property
    def label(self) -> str:
        return _TYPE_LABELS[self]


_TYPE_LABELS = {
    SlotType.NORMAL: "Normal",
    SlotType.VIP: "VIP",
    SlotType.HANDICAPPED: "Handicapped",
}

TYPE_KEYS: tuple[str, ...] = tuple(item.value for item in SlotType)


@dataclass(frozen=True)
class Slot:
    status: SlotStatus
    type: SlotType
    last_changed: int
    last_free_duration: int = 0
    last_occupied_duration: int = 0
    session_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.status is SlotStatus.EMPTY

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "type": self.type.value,
            "lastChanged": self.last_changed,
            "lastFreeDuration": self.last_free_duration,
            "lastOccupiedDuration": self.last_occupied_duration,
            "sessionId": self.session_id,
        }


def create_empty_slot(now_ms: int) -> Slot:
    return Slot(
        status=SlotStatus.EMPTY,
        type=SlotType.NORMAL,
        last_changed=now_ms,
    )


@dataclass(frozen=True)
class Registry:
    """Ordered slot snapshot; position is identity and len(slots) == total."""

    total: int
    slots: tuple[Slot, ...]
    updated_at: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "slots": [slot.to_payload() for slot in self.slots],
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class SlotCounts:
    total: int
    empty: int
    occupied: int
    vip_free: int
    vip_total: int
    occupancy_percent: int
    free_percent: int


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    slot_index: int
    slot_type: str
    time_in: Optional[float]
    time_out: Optional[float] = None

    @property
    def slot_number(self) -> int:
        return self.slot_index + 1


@dataclass(frozen=True)
class SessionEvent:
    """Session lifecycle record handed to the background publisher."""

    kind: str
    session_id: str
    timestamp: int
    slot_index: Optional[int] = None
    slot_type: Optional[str] = None


@dataclass(frozen=True)
class WaitEstimate:
    label: str
    eta: str


@dataclass(frozen=True)
class ForecastSummary:
    busy_hour: int
    empty_hour: int
    rush_probability: float
    probabilities: tuple[float, ...]
    day_count: int
    sample_size: int


@dataclass(frozen=True)
class RushForecast:
    summary: ForecastSummary
    busy_label: str
    empty_label: str
    rush_percent: int
    wait: WaitEstimate

    def to_dict(self) -> dict[str, Any]:
        return {
            "busy_hour": self.summary.busy_hour,
            "empty_hour": self.summary.empty_hour,
            "rush_probability": self.summary.rush_probability,
            "probabilities": list(self.summary.probabilities),
            "day_count": self.summary.day_count,
            "sample_size": self.summary.sample_size,
            "busy_label": self.busy_label,
            "empty_label": self.empty_label,
            "rush_percent": self.rush_percent,
            "wait_label": self.wait.label,
            "wait_eta": self.wait.eta,
        }


@dataclass(frozen=True)
class ForecastOutcome:
    """Forecast status for callers: ready, empty, error or disabled."""

    status: str
    forecast: Optional[RushForecast] = None
    detail: str = ""


@dataclass(frozen=True)
class QueryResult:
    indices: list[int] = field(default_factory=list)
    message: str = ""


@dataclass(frozen=True)
class AssistantReply:
    text: str
    intent: str
    followup_query: Optional[str] = None
