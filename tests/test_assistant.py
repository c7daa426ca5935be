from __future__ import annotations

from dataclasses import replace

import pytest

from backend.domain.models import (
    ForecastOutcome,
    ForecastSummary,
    Registry,
    SlotStatus,
    SlotType,
    create_empty_slot,
)
from backend.services.assistant_service import (
    EMPTY_INPUT_REPLY,
    HELP_REPLY,
    INTENT_COUNT,
    INTENT_NEAREST,
    INTENT_RUSH,
    INTENT_SLOT_QUERY,
    INTENT_UNRECOGNIZED,
    INTENT_VIP,
    NO_SPOT_REPLY,
    ParkingAssistant,
    format_slot_list,
)
from backend.services.forecast_service import build_rush_forecast


NOW = 1_700_000_000_000


def _registry(layout: list[tuple[str, str]]) -> Registry:
    slots = tuple(
        replace(create_empty_slot(NOW), status=SlotStatus(status), type=SlotType(slot_type))
        for status, slot_type in layout
    )
    return Registry(total=len(slots), slots=slots, updated_at=NOW)


def _mixed_registry() -> Registry:
    return _registry(
        [
            ("occupied", "normal"),
            ("empty", "normal"),
            ("occupied", "vip"),
            ("empty", "vip"),
            ("empty", "handicapped"),
        ]
    )


def _ready_outcome(total_slots: int) -> ForecastOutcome:
    probabilities = [0.1] * 24
    probabilities[17] = 0.9
    probabilities[3] = 0.0
    summary = ForecastSummary(
        busy_hour=17,
        empty_hour=3,
        rush_probability=0.7,
        probabilities=tuple(probabilities),
        day_count=7,
        sample_size=120,
    )
    return ForecastOutcome(status="ready", forecast=build_rush_forecast(summary))


def test_blank_message_asks_for_a_question():
    reply = ParkingAssistant().reply("   ", _mixed_registry())

    assert reply.text == EMPTY_INPUT_REPLY
    assert reply.followup_query is None


def test_count_reply_uses_plural_forms():
    reply = ParkingAssistant().reply("How many cars are parked?", _mixed_registry())

    assert reply.intent == INTENT_COUNT
    assert reply.text == "There are 2 cars parked and 3 free slots out of 5."
    assert reply.followup_query is None


def test_count_reply_uses_singular_forms():
    registry = _registry([("occupied", "normal"), ("empty", "normal")])

    reply = ParkingAssistant().reply("how many are occupied", registry)

    assert reply.text == "There is 1 car parked and 1 free slot out of 2."


def test_count_takes_priority_over_vip_keywords():
    reply = ParkingAssistant().reply("How many VIP slots are free?", _mixed_registry())

    assert reply.intent == INTENT_COUNT


def test_park_for_me_returns_nearest_slot():
    reply = ParkingAssistant().reply("Where should I park?", _mixed_registry())

    assert reply.intent == INTENT_NEAREST
    assert reply.text == "Slot 2 is the closest empty spot."
    assert reply.followup_query == "nearest empty slot"


def test_nearest_vip_is_prefixed():
    reply = ParkingAssistant().reply("closest VIP please", _mixed_registry())

    assert reply.text == "VIP Slot 4 is the closest empty spot."
    assert reply.followup_query == "nearest empty vip slot"


def test_nearest_with_full_lot():
    full = _registry([("occupied", "normal"), ("occupied", "vip")])

    reply = ParkingAssistant().reply("nearest spot?", full)

    assert reply.text == NO_SPOT_REPLY
    assert reply.followup_query is None


def test_vip_availability_lists_open_slots():
    reply = ParkingAssistant().reply("Which VIP slot is free?", _mixed_registry())

    assert reply.intent == INTENT_VIP
    assert reply.text == "VIP slots open: Slot 4. I highlighted them for you."
    assert reply.followup_query == "VIP empty slots"


def test_vip_availability_when_all_taken():
    registry = _registry([("empty", "normal"), ("occupied", "vip")])

    reply = ParkingAssistant().reply("any vip available", registry)

    assert reply.text == "All VIP slots are occupied at the moment."
    assert reply.followup_query is None


def test_generic_slot_question_delegates_to_resolver():
    reply = ParkingAssistant().reply("Show me empty slots", _mixed_registry())

    assert reply.intent == INTENT_SLOT_QUERY
    assert reply.text == "Highlighted 3 empty slots. (Slot 2, Slot 4, Slot 5)"
    assert reply.followup_query == "Show me empty slots"


def test_generic_slot_question_without_matches():
    reply = ParkingAssistant().reply("slot 40", _mixed_registry())

    assert reply.text == "Slot 40 is outside the current range."
    assert reply.followup_query == "slot 40"


def test_rush_question_uses_forecast_provider():
    assistant = ParkingAssistant(forecast_provider=_ready_outcome)

    reply = assistant.reply("When is it busiest?", _mixed_registry())

    assert reply.intent == INTENT_RUSH
    assert reply.text == (
        "Rush level this hour is high (70%), so expect 10-15 min to find a spot. "
        "Busiest around 5:00 PM, quietest around 3:00 AM."
    )


def test_rush_question_without_history():
    assistant = ParkingAssistant(forecast_provider=lambda total: ForecastOutcome(status="empty"))

    reply = assistant.reply("is it busy right now", _mixed_registry())

    assert "more parking history" in reply.text


def test_rush_question_without_provider():
    reply = ParkingAssistant().reply("peak hours?", _mixed_registry())

    assert reply.intent == INTENT_RUSH
    assert reply.text == "Rush-hour forecasts are not available right now."


def test_unrecognized_message_returns_help():
    reply = ParkingAssistant().reply("tell me a joke", _mixed_registry())

    assert reply.intent == INTENT_UNRECOGNIZED
    assert reply.text == HELP_REPLY


def test_format_slot_list():
    assert format_slot_list([]) == ""
    assert format_slot_list([0, 4]) == "Slot 1, Slot 5"
    assert format_slot_list([0, 1, 2, 3]) == "4 slots"


@pytest.mark.parametrize(
    "message",
    ["Is there a rush on slots now?", "When is the busiest time to find a free spot?"],
)
def test_rush_wording_beats_generic_slot_keywords(message):
    assistant = ParkingAssistant(forecast_provider=_ready_outcome)

    reply = assistant.reply(message, _mixed_registry())

    assert reply.intent == INTENT_RUSH
    assert reply.followup_query is None


def test_slot_number_keeps_rush_wording_a_slot_query():
    assistant = ParkingAssistant(forecast_provider=_ready_outcome)

    reply = assistant.reply("is slot 2 busy?", _mixed_registry())

    assert reply.intent == INTENT_SLOT_QUERY
    assert reply.text == "Highlighted Slot 2. (Slot 2)"
