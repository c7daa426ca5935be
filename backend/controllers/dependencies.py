"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from backend.services.dashboard_service import DashboardService
from backend.services.forecast_service import RushForecastService
from backend.services.occupancy_service import OccupancyStateMachine
from backend.services.registry_service import SlotRegistryService


def _require_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_registry_service(request: Request) -> SlotRegistryService:
    return _require_state(request, "registry_service", "Registry service")


def get_occupancy_service(request: Request) -> OccupancyStateMachine:
    return _require_state(request, "occupancy_service", "Occupancy service")


def get_forecast_service(request: Request) -> RushForecastService:
    return _require_state(request, "forecast_service", "Forecast service")


def get_dashboard_service(request: Request) -> DashboardService:
    return _require_state(request, "dashboard_service", "Dashboard service")
