from __future__ import annotations

from dataclasses import replace

import pytest

from backend.repository.kv_store import KeyValueRepository
from backend.services.dashboard_service import DashboardService, DashboardValidationError
from backend.services.occupancy_service import OccupancyStateMachine
from backend.services.query_service import SEARCH_DEFAULT_MESSAGE
from backend.services.registry_service import SlotRegistryService
from backend.utils.config import get_settings


T0 = 1_700_000_000_000


class _Clock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _build_test_settings(tmp_path, filename: str):
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        session_log_path="",
        default_total_slots=6,
    )


def _build_dashboard(tmp_path):
    settings = _build_test_settings(tmp_path, "dashboard_service.db")
    repository = KeyValueRepository(settings)
    repository.initialize_database()
    clock = _Clock(T0)
    registry_service = SlotRegistryService(repository=repository, settings=settings, clock=clock)
    occupancy = OccupancyStateMachine(registry_service=registry_service)
    dashboard = DashboardService(
        repository=repository,
        registry_service=registry_service,
        settings=settings,
    )
    return dashboard, occupancy, repository, clock


def test_registry_writes_bump_change_version_and_refresh_snapshot(tmp_path):
    dashboard, occupancy, _, clock = _build_dashboard(tmp_path)
    first = dashboard.snapshot("admin")
    version = dashboard.change_version

    clock.now = T0 + 2_000
    occupancy.toggle(0)

    assert dashboard.change_version > version
    clock.now = T0 + 65_000
    second = dashboard.snapshot("admin")
    assert first["counts"]["occupied"] == 0
    assert second["counts"]["occupied"] == 1
    assert second["slots"][0]["current_timer"] == "Occupied for 00:01:03"
    assert second["slots"][0]["previous_timer"] == "Last free: 00:00:02"


def test_theme_key_changes_do_not_bump_registry_version(tmp_path):
    dashboard, _, _, _ = _build_dashboard(tmp_path)
    dashboard.snapshot("admin")
    version = dashboard.change_version

    dashboard.set_theme("dark")

    assert dashboard.change_version == version
    assert dashboard.get_theme() == "dark"


def test_external_theme_write_is_picked_up(tmp_path):
    dashboard, _, repository, _ = _build_dashboard(tmp_path)
    assert dashboard.get_theme() == "light"

    repository.set("parkingTheme", "dark")

    assert dashboard.get_theme() == "dark"


def test_search_state_is_kept_per_page(tmp_path):
    dashboard, _, _, _ = _build_dashboard(tmp_path)

    dashboard.search("admin", "slot 2")

    assert dashboard.snapshot("admin")["highlights"] == [1]
    user = dashboard.snapshot("user")
    assert user["highlights"] == []
    assert user["search_hint"] == SEARCH_DEFAULT_MESSAGE


def test_chat_followup_updates_page_search(tmp_path):
    dashboard, _, _, _ = _build_dashboard(tmp_path)

    reply = dashboard.chat("user", "Show me empty slots")

    assert reply["followup_query"] == "Show me empty slots"
    assert reply["highlights"] == [0, 1, 2, 3, 4, 5]
    assert dashboard.search_state.get("user") == "Show me empty slots"


def test_chat_without_followup_keeps_search(tmp_path):
    dashboard, _, _, _ = _build_dashboard(tmp_path)
    dashboard.search("user", "slot 4")

    reply = dashboard.chat("user", "how many cars are parked")

    assert reply["followup_query"] is None
    assert dashboard.search_state.get("user") == "slot 4"


def test_forecast_without_service_is_disabled(tmp_path):
    dashboard, _, _, _ = _build_dashboard(tmp_path)

    assert dashboard.forecast().status == "disabled"


def test_unknown_page_raises(tmp_path):
    dashboard, _, _, _ = _build_dashboard(tmp_path)

    with pytest.raises(DashboardValidationError):
        dashboard.snapshot("kiosk")


def test_closed_dashboard_stops_listening(tmp_path):
    dashboard, occupancy, _, _ = _build_dashboard(tmp_path)
    dashboard.snapshot("admin")
    dashboard.close()
    version = dashboard.change_version

    occupancy.toggle(1)

    assert dashboard.change_version == version
