"""Controller layer for dashboard pages, search, chat, forecast and theme."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_dashboard_service
from backend.services.dashboard_service import DashboardService, DashboardValidationError
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["dashboard"])

PageName = Literal["admin", "user"]


class SlotViewResponse(BaseModel):
    slot_number: int = Field(gt=0)
    status: str
    type: str
    type_label: str
    last_changed: int
    current_timer: str
    previous_timer: str
    highlighted: bool
    read_only: bool


class PageCountsResponse(BaseModel):
    total: int = Field(ge=0)
    empty: int = Field(ge=0)
    occupied: int = Field(ge=0)
    vip_free: int = Field(ge=0)
    vip_total: int = Field(ge=0)
    occupancy_percent: int = Field(ge=0, le=100)
    free_percent: int = Field(ge=0, le=100)


class PageSnapshotResponse(BaseModel):
    page: PageName
    total: int = Field(gt=0)
    updated_at: int
    version: int = Field(ge=0)
    counts: PageCountsResponse
    search_query: str
    search_hint: str
    highlights: list[int]
    slots: list[SlotViewResponse]


class SearchRequest(BaseModel):
    page: PageName = "admin"
    query: str = ""
    remember: bool = True


class SearchResponse(BaseModel):
    query: str
    message: str
    highlights: list[int]
    slot_numbers: list[int]


class ChatRequest(BaseModel):
    page: PageName = "user"
    message: str = ""


class ChatResponse(BaseModel):
    text: str
    intent: str
    followup_query: Optional[str] = None
    highlights: list[int]


class ForecastResponse(BaseModel):
    status: Literal["ready", "empty", "error", "disabled"]
    detail: str = ""
    busy_hour: Optional[int] = Field(default=None, ge=0, le=23)
    empty_hour: Optional[int] = Field(default=None, ge=0, le=23)
    busy_label: Optional[str] = None
    empty_label: Optional[str] = None
    rush_probability: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    rush_percent: Optional[int] = Field(default=None, ge=0, le=100)
    wait_label: Optional[str] = None
    wait_eta: Optional[str] = None
    probabilities: list[float] = Field(default_factory=list)
    day_count: Optional[int] = None
    sample_size: Optional[int] = None


class ThemeRequest(BaseModel):
    theme: str


class ThemeResponse(BaseModel):
    theme: Literal["light", "dark"]


@router.get(
    "/dashboard/{page}",
    response_model=PageSnapshotResponse,
    status_code=status.HTTP_200_OK,
)
async def page_snapshot(
    page: str,
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> PageSnapshotResponse:
    try:
        return PageSnapshotResponse(**dashboard_service.snapshot(page))
    except DashboardValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected dashboard snapshot failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load dashboard",
        ) from exc


@router.post("/search", response_model=SearchResponse, status_code=status.HTTP_200_OK)
async def search(
    payload: SearchRequest,
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> SearchResponse:
    try:
        result = dashboard_service.search(payload.page, payload.query, remember=payload.remember)
        return SearchResponse(
            query=payload.query,
            message=result.message,
            highlights=list(result.indices),
            slot_numbers=[index + 1 for index in result.indices],
        )
    except DashboardValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected search failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to resolve search",
        ) from exc


@router.post("/chat", response_model=ChatResponse, status_code=status.HTTP_200_OK)
def chat(
    payload: ChatRequest,
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> ChatResponse:
    try:
        return ChatResponse(**dashboard_service.chat(payload.page, payload.message))
    except DashboardValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected chat failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to answer chat message",
        ) from exc


@router.get("/forecast", response_model=ForecastResponse, status_code=status.HTTP_200_OK)
def forecast(
    total_slots: Optional[int] = Query(default=None, gt=0),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> ForecastResponse:
    try:
        outcome = dashboard_service.forecast(total_slots)
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected forecast failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load forecast",
        ) from exc
    if outcome.forecast is None:
        return ForecastResponse(status=outcome.status, detail=outcome.detail)
    return ForecastResponse(status=outcome.status, detail=outcome.detail, **outcome.forecast.to_dict())


@router.get("/theme", response_model=ThemeResponse, status_code=status.HTTP_200_OK)
async def get_theme(
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> ThemeResponse:
    return ThemeResponse(theme=dashboard_service.get_theme())


@router.put("/theme", response_model=ThemeResponse, status_code=status.HTTP_200_OK)
async def set_theme(
    payload: ThemeRequest,
    dashboard_service: DashboardService = Depends(get_dashboard_service),
) -> ThemeResponse:
    try:
        return ThemeResponse(theme=dashboard_service.set_theme(payload.theme))
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected theme update failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save theme",
        ) from exc
