from __future__ import annotations

from dataclasses import replace

import pytest

from backend.domain.models import Registry, SlotStatus, SlotType, create_empty_slot
from backend.services.query_service import (
    SEARCH_DEFAULT_MESSAGE,
    SEARCH_FALLBACK_MESSAGE,
    QueryResolver,
    parse_query,
)


NOW = 1_700_000_000_000


def _registry(layout: list[tuple[str, str]]) -> Registry:
    """Build a registry from (status, type) pairs in slot order."""
    slots = tuple(
        replace(create_empty_slot(NOW), status=SlotStatus(status), type=SlotType(slot_type))
        for status, slot_type in layout
    )
    return Registry(total=len(slots), slots=slots, updated_at=NOW)


@pytest.fixture
def registry() -> Registry:
    return _registry(
        [
            ("occupied", "normal"),
            ("empty", "normal"),
            ("occupied", "vip"),
            ("empty", "vip"),
            ("empty", "handicapped"),
        ]
    )


@pytest.fixture
def resolver() -> QueryResolver:
    return QueryResolver()


def test_blank_query_shows_default_hint(resolver, registry):
    for query in ("", "   ", None):
        result = resolver.resolve(query, registry)
        assert result.indices == []
        assert result.message == SEARCH_DEFAULT_MESSAGE


def test_slot_number_within_range(resolver):
    twenty = _registry([("empty", "normal")] * 20)

    result = resolver.resolve("Slot 3", twenty)

    assert result.indices == [2]
    assert result.message == "Highlighted Slot 3."


def test_slot_number_outside_range(resolver):
    twenty = _registry([("empty", "normal")] * 20)

    result = resolver.resolve("slot 25", twenty)

    assert result.indices == []
    assert result.message == "Slot 25 is outside the current range."


def test_slot_number_takes_priority_over_keywords(resolver, registry):
    result = resolver.resolve("is slot 1 empty", registry)

    assert result.indices == [0]


def test_empty_slots_are_listed_with_plural(resolver, registry):
    result = resolver.resolve("empty slots", registry)

    assert result.indices == [1, 3, 4]
    assert result.message == "Highlighted 3 empty slots."


def test_single_match_uses_singular(resolver, registry):
    result = resolver.resolve("occupied vip", registry)

    assert result.indices == [2]
    assert result.message == "Highlighted 1 occupied VIP slot."


def test_type_only_filter(resolver, registry):
    result = resolver.resolve("vip", registry)

    assert result.indices == [2, 3]
    assert result.message == "Highlighted 2 VIP slots."


def test_filtered_list_without_matches(resolver, registry):
    result = resolver.resolve("occupied handicapped", registry)

    assert result.indices == []
    assert result.message == "No slots found for “occupied handicapped”."


def test_nearest_empty_slot(resolver, registry):
    result = resolver.resolve("nearest empty slot", registry)

    assert result.indices == [1]
    assert result.message == "Nearest empty slot is Slot 2."


def test_nearest_without_status_defaults_to_empty(resolver, registry):
    result = resolver.resolve("closest vip", registry)

    assert result.indices == [3]
    assert result.message == "Nearest empty VIP slot is Slot 4."


def test_nearest_vip_with_none_free(resolver):
    full_vip = _registry([("empty", "normal"), ("occupied", "vip"), ("occupied", "vip")])

    result = resolver.resolve("nearest empty VIP slot", full_vip)

    assert result.indices == []
    assert result.message == "No empty vip slots available right now."


def test_nearest_occupied_falls_through_to_filtered_list(resolver, registry):
    result = resolver.resolve("nearest occupied", registry)

    assert result.indices == [0, 2]
    assert result.message == "Highlighted 2 occupied slots."


def test_unrecognized_query_falls_back(resolver, registry):
    result = resolver.resolve("where is my car", registry)

    assert result.indices == []
    assert result.message == SEARCH_FALLBACK_MESSAGE


def test_resolver_does_not_mutate_registry(resolver, registry):
    before = registry.to_payload()

    resolver.resolve("nearest empty slot", registry)
    resolver.resolve("empty slots", registry)

    assert registry.to_payload() == before


def test_parse_query_extracts_features():
    parsed = parse_query("  Nearest FREE Handicapped slot ")

    assert parsed.original == "Nearest FREE Handicapped slot"
    assert parsed.wants_nearest
    assert parsed.wants_empty
    assert parsed.slot_type is SlotType.HANDICAPPED
    assert parsed.status_filter is SlotStatus.EMPTY
    assert parsed.slot_number is None
