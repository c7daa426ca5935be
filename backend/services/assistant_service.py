"""Conversational parking assistant layered on the query resolver."""

from __future__ import annotations

import re
from typing import Callable, Optional

from backend.domain.models import AssistantReply, ForecastOutcome, Registry
from backend.services.forecast_service import STATUS_DISABLED, STATUS_EMPTY, STATUS_READY
from backend.services.query_service import QueryResolver
from backend.services.registry_service import compute_counts


CHAT_GREETING = (
    "Hi! I’m your parking assistant. Ask me to find empty slots, VIP spaces, "
    "counts, or the nearest spot."
)
EMPTY_INPUT_REPLY = "Please ask me about parking availability or slot status."
HELP_REPLY = (
    "I can answer things like “Show me empty slots”, “Which VIP slot is free?”, "
    "“How many cars are parked?”, or “Nearest empty slot?”. Try one of those!"
)
NO_SPOT_REPLY = (
    "I couldn’t find a free spot right now. I’ll keep highlighting new openings "
    "as they appear."
)

INTENT_EMPTY = "empty_input"
INTENT_COUNT = "count"
INTENT_NEAREST = "nearest"
INTENT_VIP = "vip_availability"
INTENT_SLOT_QUERY = "slot_query"
INTENT_RUSH = "rush"
INTENT_UNRECOGNIZED = "unrecognized"

_COUNT_PATTERN = re.compile(r"(how many|cars parked|vehicles parked|occupied)")
_NEAREST_PATTERN = re.compile(r"nearest|closest")
_PARK_FOR_ME_PATTERN = re.compile(r"where should i park|park my car|need a spot")
_VIP_PATTERN = re.compile(r"vip")
_AVAILABLE_PATTERN = re.compile(r"(free|empty|available)")
_SLOT_KEYWORD_PATTERN = re.compile(r"empty|free|occupied|slot")
_RUSH_PATTERN = re.compile(r"rush|busy|busiest|peak|wait|crowded")
_SLOT_NUMBER_PATTERN = re.compile(r"slot\s*\d+")

ForecastProvider = Callable[[int], ForecastOutcome]


def format_slot_list(indices: list[int]) -> str:
    if not indices:
        return ""
    if len(indices) <= 3:
        return ", ".join(f"Slot {index + 1}" for index in indices)
    return f"{len(indices)} slots"


class ParkingAssistant:
    """Classifies an utterance by ordered regex triggers and answers it.

    Priority: count > nearest / park-for-me > VIP availability > generic slot
    keywords without rush wording > rush forecast > help text. Slot selection is always delegated
    to the query resolver so highlights and replies agree.
    """

    def __init__(
        self,
        resolver: Optional[QueryResolver] = None,
        forecast_provider: Optional[ForecastProvider] = None,
    ) -> None:
        self._resolver = resolver or QueryResolver()
        self._forecast_provider = forecast_provider
        self._rules: tuple[
            tuple[Callable[[str], bool], Callable[[str, str, Registry], AssistantReply]], ...
        ] = (
            (self._is_count, self._reply_count),
            (self._is_nearest, self._reply_nearest),
            (self._is_vip_availability, self._reply_vip_availability),
            (self._is_slot_query, self._reply_slot_query),
            (self._is_rush, self._reply_rush),
        )

    def reply(self, query: Optional[str], registry: Registry) -> AssistantReply:
        trimmed = (query or "").strip()
        if not trimmed:
            return AssistantReply(text=EMPTY_INPUT_REPLY, intent=INTENT_EMPTY)
        normalized = trimmed.lower()
        for predicate, handler in self._rules:
            if predicate(normalized):
                return handler(trimmed, normalized, registry)
        return AssistantReply(text=HELP_REPLY, intent=INTENT_UNRECOGNIZED)

    @staticmethod
    def _is_count(normalized: str) -> bool:
        return _COUNT_PATTERN.search(normalized) is not None

    @staticmethod
    def _is_nearest(normalized: str) -> bool:
        return (
            _NEAREST_PATTERN.search(normalized) is not None
            or _PARK_FOR_ME_PATTERN.search(normalized) is not None
        )

    @staticmethod
    def _is_vip_availability(normalized: str) -> bool:
        return (
            _VIP_PATTERN.search(normalized) is not None
            and _AVAILABLE_PATTERN.search(normalized) is not None
        )

    @staticmethod
    def _is_slot_query(normalized: str) -> bool:
        if _SLOT_KEYWORD_PATTERN.search(normalized) is None:
            return False
        # Rush questions mention slots too; only a slot number keeps them here.
        return (
            _RUSH_PATTERN.search(normalized) is None
            or _SLOT_NUMBER_PATTERN.search(normalized) is not None
        )

    @staticmethod
    def _is_rush(normalized: str) -> bool:
        return _RUSH_PATTERN.search(normalized) is not None

    def _reply_count(self, trimmed: str, normalized: str, registry: Registry) -> AssistantReply:
        counts = compute_counts(registry)
        verb = "is" if counts.occupied == 1 else "are"
        car_word = "car" if counts.occupied == 1 else "cars"
        slot_word = "slot" if counts.empty == 1 else "slots"
        return AssistantReply(
            text=(
                f"There {verb} {counts.occupied} {car_word} parked and "
                f"{counts.empty} free {slot_word} out of {registry.total}."
            ),
            intent=INTENT_COUNT,
        )

    def _reply_nearest(self, trimmed: str, normalized: str, registry: Registry) -> AssistantReply:
        wants_vip = _VIP_PATTERN.search(normalized) is not None
        search_query = "nearest empty vip slot" if wants_vip else "nearest empty slot"
        result = self._resolver.resolve(search_query, registry)
        if result.indices:
            prefix = "VIP " if wants_vip else ""
            return AssistantReply(
                text=f"{prefix}Slot {result.indices[0] + 1} is the closest empty spot.",
                intent=INTENT_NEAREST,
                followup_query=search_query,
            )
        return AssistantReply(text=NO_SPOT_REPLY, intent=INTENT_NEAREST)

    def _reply_vip_availability(
        self,
        trimmed: str,
        normalized: str,
        registry: Registry,
    ) -> AssistantReply:
        result = self._resolver.resolve("vip empty slots", registry)
        if result.indices:
            return AssistantReply(
                text=f"VIP slots open: {format_slot_list(result.indices)}. I highlighted them for you.",
                intent=INTENT_VIP,
                followup_query="VIP empty slots",
            )
        return AssistantReply(text="All VIP slots are occupied at the moment.", intent=INTENT_VIP)

    def _reply_slot_query(
        self,
        trimmed: str,
        normalized: str,
        registry: Registry,
    ) -> AssistantReply:
        result = self._resolver.resolve(trimmed, registry)
        text = result.message
        if result.indices:
            text = f"{result.message} ({format_slot_list(result.indices)})"
        return AssistantReply(text=text, intent=INTENT_SLOT_QUERY, followup_query=trimmed)

    def _reply_rush(self, trimmed: str, normalized: str, registry: Registry) -> AssistantReply:
        if self._forecast_provider is None:
            return AssistantReply(
                text="Rush-hour forecasts are not available right now.",
                intent=INTENT_RUSH,
            )
        outcome = self._forecast_provider(registry.total)
        if outcome.status == STATUS_READY and outcome.forecast is not None:
            forecast = outcome.forecast
            return AssistantReply(
                text=(
                    f"Rush level this hour is {forecast.wait.label.lower()} "
                    f"({forecast.rush_percent}%), so expect {forecast.wait.eta} to find a spot. "
                    f"Busiest around {forecast.busy_label}, quietest around {forecast.empty_label}."
                ),
                intent=INTENT_RUSH,
            )
        if outcome.status == STATUS_EMPTY:
            text = "I need more parking history before I can forecast rush hours."
        elif outcome.status == STATUS_DISABLED:
            text = "Rush-hour forecasts are disabled because no session history is connected."
        else:
            text = "I couldn't load rush-hour predictions. Please try again soon."
        return AssistantReply(text=text, intent=INTENT_RUSH)
