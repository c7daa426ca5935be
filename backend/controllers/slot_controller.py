"""HTTP controller layer for slot registry and occupancy operations."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import (
    get_dashboard_service,
    get_occupancy_service,
    get_registry_service,
)
from backend.domain.models import Registry, Slot
from backend.services.dashboard_service import DashboardService
from backend.services.occupancy_service import OccupancyStateMachine
from backend.services.registry_service import (
    RegistryValidationError,
    SlotNotFoundError,
    SlotRegistryService,
    compute_counts,
    current_timer_text,
    previous_timer_text,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["slots"])


class SlotResponse(BaseModel):
    slot_number: int = Field(gt=0)
    status: Literal["empty", "occupied"]
    type: Literal["normal", "vip", "handicapped"]
    last_changed: int
    last_free_duration: int = Field(ge=0)
    last_occupied_duration: int = Field(ge=0)
    session_id: Optional[str] = None
    current_timer: str
    previous_timer: str


class CountsResponse(BaseModel):
    total: int = Field(ge=0)
    empty: int = Field(ge=0)
    occupied: int = Field(ge=0)
    vip_free: int = Field(ge=0)
    vip_total: int = Field(ge=0)
    occupancy_percent: int = Field(ge=0, le=100)
    free_percent: int = Field(ge=0, le=100)


class RegistryResponse(BaseModel):
    total: int = Field(gt=0)
    updated_at: int
    counts: CountsResponse
    slots: list[SlotResponse]


class SlotTypeRequest(BaseModel):
    type: str = Field(min_length=1)


class CapacityRequest(BaseModel):
    # Out-of-range and non-numeric values are clamped by the registry.
    total: int | float | str


class HealthResponse(BaseModel):
    status: str
    app_name: str
    version: str


def _slot_response(index: int, slot: Slot, now_ms: int) -> SlotResponse:
    return SlotResponse(
        slot_number=index + 1,
        status=slot.status.value,
        type=slot.type.value,
        last_changed=slot.last_changed,
        last_free_duration=max(0, slot.last_free_duration),
        last_occupied_duration=max(0, slot.last_occupied_duration),
        session_id=slot.session_id,
        current_timer=current_timer_text(slot, now_ms),
        previous_timer=previous_timer_text(slot),
    )


def _counts_response(registry: Registry) -> CountsResponse:
    counts = compute_counts(registry)
    return CountsResponse(
        total=counts.total,
        empty=counts.empty,
        occupied=counts.occupied,
        vip_free=counts.vip_free,
        vip_total=counts.vip_total,
        occupancy_percent=counts.occupancy_percent,
        free_percent=counts.free_percent,
    )


def _registry_response(registry: Registry, now_ms: int) -> RegistryResponse:
    return RegistryResponse(
        total=registry.total,
        updated_at=registry.updated_at,
        counts=_counts_response(registry),
        slots=[_slot_response(index, slot, now_ms) for index, slot in enumerate(registry.slots)],
    )


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health(request: Request) -> HealthResponse:
    settings = request.app.state.settings
    return HealthResponse(status="ok", app_name=settings.app_name, version=settings.app_version)


@router.get("/slots", response_model=RegistryResponse, status_code=status.HTTP_200_OK)
async def list_slots(
    registry_service: SlotRegistryService = Depends(get_registry_service),
) -> RegistryResponse:
    try:
        now_ms = registry_service.now()
        return _registry_response(registry_service.load(now=now_ms), now_ms)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected registry read failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load slots",
        ) from exc


@router.get("/slots/{slot_number}", response_model=SlotResponse, status_code=status.HTTP_200_OK)
async def get_slot(
    slot_number: int,
    registry_service: SlotRegistryService = Depends(get_registry_service),
) -> SlotResponse:
    try:
        now_ms = registry_service.now()
        slot = registry_service.get(slot_number - 1, registry_service.load(now=now_ms))
        return _slot_response(slot_number - 1, slot, now_ms)
    except SlotNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Slot {slot_number} does not exist",
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected slot read failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load slot",
        ) from exc


@router.post(
    "/slots/{slot_number}/toggle",
    response_model=SlotResponse,
    status_code=status.HTTP_200_OK,
)
async def toggle_slot(
    slot_number: int,
    occupancy_service: OccupancyStateMachine = Depends(get_occupancy_service),
    registry_service: SlotRegistryService = Depends(get_registry_service),
) -> SlotResponse:
    try:
        now_ms = registry_service.now()
        registry = occupancy_service.toggle(slot_number - 1, now=now_ms)
        return _slot_response(slot_number - 1, registry.slots[slot_number - 1], now_ms)
    except SlotNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Slot {slot_number} does not exist",
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected toggle failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to toggle slot",
        ) from exc


@router.put(
    "/slots/{slot_number}/type",
    response_model=SlotResponse,
    status_code=status.HTTP_200_OK,
)
async def set_slot_type(
    slot_number: int,
    payload: SlotTypeRequest,
    occupancy_service: OccupancyStateMachine = Depends(get_occupancy_service),
    registry_service: SlotRegistryService = Depends(get_registry_service),
) -> SlotResponse:
    try:
        now_ms = registry_service.now()
        registry = occupancy_service.set_type(slot_number - 1, payload.type, now=now_ms)
        slot = registry_service.get(slot_number - 1, registry)
        return _slot_response(slot_number - 1, slot, now_ms)
    except SlotNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Slot {slot_number} does not exist",
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected slot type failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to change slot type",
        ) from exc


@router.put("/capacity", response_model=RegistryResponse, status_code=status.HTTP_200_OK)
async def set_capacity(
    payload: CapacityRequest,
    registry_service: SlotRegistryService = Depends(get_registry_service),
) -> RegistryResponse:
    try:
        now_ms = registry_service.now()
        return _registry_response(registry_service.resize(payload.total, now=now_ms), now_ms)
    except RegistryValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected capacity change failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to change capacity",
        ) from exc


@router.get("/stats", response_model=CountsResponse, status_code=status.HTTP_200_OK)
async def get_stats(
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> CountsResponse:
    try:
        return _counts_response(dashboard_service.current_registry())
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected stats failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute stats",
        ) from exc
