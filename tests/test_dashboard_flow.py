from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import replace

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.controllers.assistant_controller import router as assistant_router
from backend.controllers.slot_controller import router as slot_router
from backend.repository.kv_store import KeyValueRepository
from backend.repository.session_log import SessionLogRepository
from backend.services.dashboard_service import DashboardService
from backend.services.forecast_service import RushForecastService
from backend.services.occupancy_service import OccupancyStateMachine
from backend.services.registry_service import SlotRegistryService
from backend.services.session_publisher import SessionEventPublisher
from backend.utils.config import get_settings


class _SlowSessionLog:
    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()

    def put(self, session_id, fields, *, merge=True):
        return None

    def query_since(self, cutoff_ms):
        self.started.set()
        self.release.wait(timeout=10)
        return []


def _build_test_settings(tmp_path, filename: str, with_session_log: bool = True, **overrides):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        session_log_path=str(tmp_path / "sessions.db") if with_session_log else "",
        default_total_slots=10,
        max_slots=100,
        time_zone="UTC",
        **overrides,
    )


def _build_test_app(
    tmp_path,
    with_session_log: bool = True,
    session_log=None,
    **overrides,
) -> FastAPI:
    settings = _build_test_settings(tmp_path, "dashboard_flow.db", with_session_log, **overrides)
    repository = KeyValueRepository(settings)
    repository.initialize_database()
    if with_session_log and session_log is None:
        session_log = SessionLogRepository(settings)
        session_log.initialize_database()

    registry_service = SlotRegistryService(repository=repository, settings=settings)
    publisher = SessionEventPublisher(session_log=session_log)
    occupancy_service = OccupancyStateMachine(
        registry_service=registry_service,
        publisher=publisher,
    )
    forecast_service = RushForecastService(session_log=session_log, settings=settings)
    dashboard_service = DashboardService(
        repository=repository,
        registry_service=registry_service,
        forecast_service=forecast_service,
        settings=settings,
    )

    app = FastAPI()
    app.include_router(slot_router)
    app.include_router(assistant_router)
    app.state.settings = settings
    app.state.repository = repository
    app.state.session_log = session_log
    app.state.registry_service = registry_service
    app.state.session_publisher = publisher
    app.state.occupancy_service = occupancy_service
    app.state.forecast_service = forecast_service
    app.state.dashboard_service = dashboard_service
    return app


def test_parking_end_to_end_flow(tmp_path):
    app = _build_test_app(tmp_path)
    client = TestClient(app)

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    slots = client.get("/slots")
    assert slots.status_code == 200
    body = slots.json()
    assert body["total"] == 10
    assert body["counts"]["empty"] == 10
    assert body["slots"][0]["current_timer"].startswith("Free for")
    assert body["slots"][0]["previous_timer"] == "Last occupied: --"

    toggled = client.post("/slots/3/toggle")
    assert toggled.status_code == 200
    assert toggled.json()["status"] == "occupied"
    session_id = toggled.json()["session_id"]
    assert session_id

    typed = client.put("/slots/4/type", json={"type": "vip"})
    assert typed.status_code == 200
    assert typed.json()["type"] == "vip"

    stats = client.get("/stats")
    assert stats.status_code == 200
    assert stats.json()["occupied"] == 1
    assert stats.json()["vip_total"] == 1
    assert stats.json()["vip_free"] == 1
    assert stats.json()["occupancy_percent"] == 10

    search = client.post("/search", json={"page": "admin", "query": "empty VIP slots"})
    assert search.status_code == 200
    assert search.json()["slot_numbers"] == [4]
    assert search.json()["message"] == "Highlighted 1 empty VIP slot."

    page = client.get("/dashboard/admin")
    assert page.status_code == 200
    snapshot = page.json()
    assert snapshot["search_query"] == "empty VIP slots"
    assert snapshot["highlights"] == [3]
    assert snapshot["slots"][3]["highlighted"] is True
    assert snapshot["slots"][2]["status"] == "occupied"
    assert snapshot["slots"][2]["read_only"] is False

    chat = client.post("/chat", json={"page": "user", "message": "Where should I park?"})
    assert chat.status_code == 200
    assert chat.json()["text"] == "Slot 1 is the closest empty spot."
    assert chat.json()["highlights"] == [0]
    user_page = client.get("/dashboard/user").json()
    assert user_page["search_query"] == "nearest empty slot"
    assert user_page["slots"][0]["read_only"] is True

    released = client.post("/slots/3/toggle")
    assert released.status_code == 200
    assert released.json()["status"] == "empty"
    assert released.json()["session_id"] is None

    app.state.session_publisher.flush(timeout=5)
    record = app.state.session_log.get_session(session_id)
    assert record["slot_number"] == 3
    assert record["time_out"] is not None

    forecast = client.get("/forecast")
    assert forecast.status_code == 200
    assert forecast.json()["status"] in {"ready", "empty"}

    app.state.session_publisher.shutdown()
    app.state.forecast_service.shutdown()


def test_toggle_outside_range_returns_404(tmp_path):
    app = _build_test_app(tmp_path)
    client = TestClient(app)

    response = client.post("/slots/11/toggle")
    assert response.status_code == 404
    assert client.get("/stats").json()["occupied"] == 0

    assert client.put("/slots/0/type", json={"type": "vip"}).status_code == 404
    assert client.get("/slots/11").status_code == 404
    app.state.forecast_service.shutdown()


def test_invalid_type_is_ignored(tmp_path):
    app = _build_test_app(tmp_path)
    client = TestClient(app)

    response = client.put("/slots/2/type", json={"type": "compact"})

    assert response.status_code == 200
    assert response.json()["type"] == "normal"


def test_capacity_is_clamped_and_destructive(tmp_path):
    app = _build_test_app(tmp_path)
    client = TestClient(app)

    client.post("/slots/8/toggle")
    shrunk = client.put("/capacity", json={"total": 5})
    assert shrunk.status_code == 200
    assert shrunk.json()["total"] == 5
    assert len(shrunk.json()["slots"]) == 5

    grown = client.put("/capacity", json={"total": 10})
    assert grown.json()["slots"][7]["status"] == "empty"

    clamped = client.put("/capacity", json={"total": 500})
    assert clamped.json()["total"] == 100

    fallback = client.put("/capacity", json={"total": "lots"})
    assert fallback.json()["total"] == 10
    app.state.session_publisher.shutdown()


def test_forecast_disabled_without_session_log(tmp_path):
    app = _build_test_app(tmp_path, with_session_log=False)
    client = TestClient(app)

    forecast = client.get("/forecast")
    assert forecast.status_code == 200
    assert forecast.json()["status"] == "disabled"

    chat = client.post("/chat", json={"page": "user", "message": "when is the rush hour?"})
    assert chat.json()["intent"] == "rush"
    assert "disabled" in chat.json()["text"]


def test_unknown_page_is_rejected(tmp_path):
    app = _build_test_app(tmp_path)
    client = TestClient(app)

    assert client.get("/dashboard/operator").status_code == 404
    assert client.post("/search", json={"page": "operator", "query": "x"}).status_code == 422


def test_theme_round_trip(tmp_path):
    app = _build_test_app(tmp_path)
    client = TestClient(app)

    assert client.get("/theme").json()["theme"] == "light"
    assert client.put("/theme", json={"theme": "dark"}).json()["theme"] == "dark"
    assert client.get("/theme").json()["theme"] == "dark"
    assert client.put("/theme", json={"theme": "neon"}).json()["theme"] == "light"


def test_slow_forecast_does_not_stall_other_requests(tmp_path):
    session_log = _SlowSessionLog()
    app = _build_test_app(tmp_path, session_log=session_log, forecast_timeout_seconds=5.0)

    async def scenario():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            forecast = asyncio.create_task(client.get("/forecast"))
            while not session_log.started.is_set():
                await asyncio.sleep(0.01)

            started = time.monotonic()
            health = await asyncio.wait_for(client.get("/health"), timeout=2)
            toggled = await asyncio.wait_for(client.post("/slots/1/toggle"), timeout=2)
            elapsed = time.monotonic() - started

            session_log.release.set()
            return health, toggled, elapsed, await forecast

    health, toggled, elapsed, forecast = asyncio.run(scenario())

    assert health.status_code == 200
    assert toggled.json()["status"] == "occupied"
    assert elapsed < 1.0
    assert forecast.json()["status"] == "empty"
    app.state.session_publisher.shutdown()
    app.state.forecast_service.shutdown()


def test_forecast_request_is_bounded_by_timeout(tmp_path):
    session_log = _SlowSessionLog()
    app = _build_test_app(tmp_path, session_log=session_log, forecast_timeout_seconds=0.1)
    client = TestClient(app)

    forecast = client.get("/forecast")

    assert forecast.status_code == 200
    assert forecast.json()["status"] == "error"
    assert forecast.json()["detail"] == "Forecast timed out"
    session_log.release.set()
    app.state.forecast_service.shutdown()


def test_missing_occupancy_service_returns_503(tmp_path):
    app = _build_test_app(tmp_path)
    app.state.occupancy_service = None
    client = TestClient(app)

    response = client.post("/slots/1/toggle")

    assert response.status_code == 503
    assert client.get("/stats").json()["occupied"] == 0
    app.state.forecast_service.shutdown()
