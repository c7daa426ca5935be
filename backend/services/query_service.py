"""Rule-based resolver from free-text slot queries to highlighted slots."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from backend.domain.models import QueryResult, Registry, SlotStatus, SlotType, TYPE_KEYS


SEARCH_DEFAULT_MESSAGE = (
    "Showing all slots. Try “Slot 3”, “empty slots”, or “nearest empty slot”."
)
SEARCH_FALLBACK_MESSAGE = "No matches. Try “Slot 4” or “empty slots”."

_SLOT_NUMBER_PATTERN = re.compile(r"slot\s*(\d+)")
_EMPTY_PATTERN = re.compile(r"(empty|free|available)")


@dataclass(frozen=True)
class ParsedQuery:
    """Keyword features extracted once per query."""

    original: str
    text: str
    slot_number: Optional[int]
    wants_nearest: bool
    wants_empty: bool
    wants_occupied: bool
    slot_type: Optional[SlotType]

    @property
    def status_filter(self) -> Optional[SlotStatus]:
        if self.wants_empty:
            return SlotStatus.EMPTY
        if self.wants_occupied:
            return SlotStatus.OCCUPIED
        return None


def parse_query(query: str) -> ParsedQuery:
    text = query.strip().lower()
    slot_match = _SLOT_NUMBER_PATTERN.search(text)
    type_key = next((key for key in TYPE_KEYS if key in text), None)
    return ParsedQuery(
        original=query.strip(),
        text=text,
        slot_number=int(slot_match.group(1)) if slot_match else None,
        wants_nearest="nearest" in text or "closest" in text,
        wants_empty=_EMPTY_PATTERN.search(text) is not None,
        wants_occupied="occupied" in text,
        slot_type=SlotType(type_key) if type_key else None,
    )


QueryRule = tuple[Callable[[ParsedQuery], bool], Callable[[ParsedQuery, Registry], QueryResult]]


def _is_slot_number(parsed: ParsedQuery) -> bool:
    return parsed.slot_number is not None


def _resolve_slot_number(parsed: ParsedQuery, registry: Registry) -> QueryResult:
    requested = parsed.slot_number or 0
    if 1 <= requested <= len(registry.slots):
        return QueryResult(indices=[requested - 1], message=f"Highlighted Slot {requested}.")
    return QueryResult(message=f"Slot {requested} is outside the current range.")


def _is_nearest_empty(parsed: ParsedQuery) -> bool:
    # Nearest without any status keyword defaults to the empty intent.
    return parsed.wants_nearest and (parsed.wants_empty or parsed.status_filter is None)


def _resolve_nearest_empty(parsed: ParsedQuery, registry: Registry) -> QueryResult:
    for index, slot in enumerate(registry.slots):
        if slot.is_empty and (parsed.slot_type is None or slot.type is parsed.slot_type):
            label = f"{parsed.slot_type.label} " if parsed.slot_type else ""
            return QueryResult(
                indices=[index],
                message=f"Nearest empty {label}slot is Slot {index + 1}.",
            )
    label = f"{parsed.slot_type.label.lower()} " if parsed.slot_type else ""
    return QueryResult(message=f"No empty {label}slots available right now.")


def _is_filtered_list(parsed: ParsedQuery) -> bool:
    return parsed.status_filter is not None or parsed.slot_type is not None


def _resolve_filtered_list(parsed: ParsedQuery, registry: Registry) -> QueryResult:
    status_filter = parsed.status_filter
    indices = [
        index
        for index, slot in enumerate(registry.slots)
        if (parsed.slot_type is None or slot.type is parsed.slot_type)
        and (status_filter is None or slot.status is status_filter)
    ]
    if not indices:
        return QueryResult(message=f"No slots found for “{parsed.original}”.")

    descriptor_parts = []
    if status_filter is not None:
        descriptor_parts.append(status_filter.value)
    if parsed.slot_type is not None:
        descriptor_parts.append(parsed.slot_type.label)
    descriptor = " ".join(descriptor_parts) or "matching"
    plural = "slots" if len(indices) > 1 else "slot"
    return QueryResult(
        indices=indices,
        message=f"Highlighted {len(indices)} {descriptor} {plural}.",
    )


def _always(parsed: ParsedQuery) -> bool:
    return True


def _resolve_fallback(parsed: ParsedQuery, registry: Registry) -> QueryResult:
    return QueryResult(message=SEARCH_FALLBACK_MESSAGE)


class QueryResolver:
    """Evaluates query rules in fixed priority order; first match wins.

    Priority: slot number > nearest empty > filtered list > fallback.
    The resolver is stateless and never mutates the registry.
    """

    RULES: tuple[QueryRule, ...] = (
        (_is_slot_number, _resolve_slot_number),
        (_is_nearest_empty, _resolve_nearest_empty),
        (_is_filtered_list, _resolve_filtered_list),
        (_always, _resolve_fallback),
    )

    def resolve(self, query: Optional[str], registry: Registry) -> QueryResult:
        if not query or not query.strip():
            return QueryResult(message=SEARCH_DEFAULT_MESSAGE)
        parsed = parse_query(query)
        for predicate, handler in self.RULES:
            if predicate(parsed):
                return handler(parsed, registry)
        return _resolve_fallback(parsed, registry)
