"""Dashboard orchestration: live snapshots, per-page search, chat and theme."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from threading import RLock
from typing import Any, Optional

from backend.domain.models import AssistantReply, ForecastOutcome, QueryResult, Registry
from backend.repository.kv_store import KeyValueRepository
from backend.services.assistant_service import ParkingAssistant
from backend.services.forecast_service import RushForecastService
from backend.services.query_service import QueryResolver
from backend.services.registry_service import (
    SlotRegistryService,
    compute_counts,
    current_timer_text,
    previous_timer_text,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

PAGES = ("admin", "user")
THEME_LIGHT = "light"
THEME_DARK = "dark"


class DashboardValidationError(Exception):
    """Raised when dashboard workflow inputs are invalid."""


@dataclass
class SearchState:
    """Live search text per dashboard page."""

    queries: dict[str, str] = field(default_factory=lambda: {page: "" for page in PAGES})

    def get(self, page: str) -> str:
        return self.queries.get(page, "")

    def set(self, page: str, query: str) -> None:
        self.queries[page] = query


class DashboardService:
    """Coordinates registry reads, search highlights, assistant replies and theme.

    The service subscribes to key-value change notifications. A change to the
    registry key drops the cached snapshot so the next read fetches the full
    registry again; rapid changes simply collapse into the latest one.
    """

    def __init__(
        self,
        repository: KeyValueRepository,
        registry_service: SlotRegistryService,
        forecast_service: Optional[RushForecastService] = None,
        resolver: Optional[QueryResolver] = None,
        assistant: Optional[ParkingAssistant] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository
        self._registry_service = registry_service
        self._forecast_service = forecast_service
        self._resolver = resolver or QueryResolver()
        self._assistant = assistant or ParkingAssistant(
            resolver=self._resolver,
            forecast_provider=self.forecast if forecast_service is not None else None,
        )
        self._search_state = SearchState()
        self._lock = RLock()
        self._latest_registry: Optional[Registry] = None
        self._change_version = 0
        self._theme: Optional[str] = None
        self._unsubscribe = repository.subscribe(self.handle_storage_change)

    @property
    def search_state(self) -> SearchState:
        return self._search_state

    @property
    def change_version(self) -> int:
        with self._lock:
            return self._change_version

    def close(self) -> None:
        self._unsubscribe()

    def handle_storage_change(self, key: str) -> None:
        if key == self._settings.registry_storage_key:
            with self._lock:
                self._latest_registry = None
                self._change_version += 1
        elif key == self._settings.theme_storage_key:
            with self._lock:
                self._theme = None

    def _validate_page(self, page: str) -> None:
        if page not in PAGES:
            raise DashboardValidationError(f"page must be one of {', '.join(PAGES)}")

    def current_registry(self) -> Registry:
        with self._lock:
            registry = self._latest_registry
        if registry is None:
            registry = self._registry_service.load()
            with self._lock:
                self._latest_registry = registry
        return registry

    def search(self, page: str, query: str, *, remember: bool = True) -> QueryResult:
        self._validate_page(page)
        if remember:
            with self._lock:
                self._search_state.set(page, query)
        return self._resolver.resolve(query, self.current_registry())

    def snapshot(self, page: str, now: Optional[int] = None) -> dict[str, Any]:
        """Full page view: counts, per-slot timers and current highlights."""
        self._validate_page(page)
        now_ms = self._registry_service.now() if now is None else now
        registry = self.current_registry()
        with self._lock:
            query = self._search_state.get(page)
            version = self._change_version
        result = self._resolver.resolve(query, registry)
        highlights = set(result.indices)
        counts = compute_counts(registry)

        slots = [
            {
                "slot_number": index + 1,
                "status": slot.status.value,
                "type": slot.type.value,
                "type_label": slot.type.label,
                "last_changed": slot.last_changed,
                "current_timer": current_timer_text(slot, now_ms),
                "previous_timer": previous_timer_text(slot),
                "highlighted": index in highlights,
                "read_only": page == "user",
            }
            for index, slot in enumerate(registry.slots)
        ]
        return {
            "page": page,
            "total": registry.total,
            "updated_at": registry.updated_at,
            "version": version,
            "counts": asdict(counts),
            "search_query": query,
            "search_hint": result.message,
            "highlights": list(result.indices),
            "slots": slots,
        }

    def chat(self, page: str, message: str) -> dict[str, Any]:
        """Answer a chat message and mirror its follow-up into the page search."""
        self._validate_page(page)
        registry = self.current_registry()
        reply: AssistantReply = self._assistant.reply(message, registry)
        highlights: list[int] = []
        if reply.followup_query:
            highlights = self.search(page, reply.followup_query).indices
        logger.info(
            "Chat reply | page=%s | intent=%s | followup=%s",
            page,
            reply.intent,
            reply.followup_query,
        )
        return {
            "text": reply.text,
            "intent": reply.intent,
            "followup_query": reply.followup_query,
            "highlights": highlights,
        }

    def forecast(self, total_slots: Optional[int] = None) -> ForecastOutcome:
        if self._forecast_service is None:
            return ForecastOutcome(status="disabled", detail="Forecast service is not configured")
        if total_slots is None:
            total_slots = self.current_registry().total
        return self._forecast_service.get_forecast(
            total_slots,
            timeout=self._settings.forecast_timeout_seconds,
        )

    def _read_theme(self) -> str:
        stored = self._repository.get(self._settings.theme_storage_key)
        return THEME_DARK if stored == THEME_DARK else THEME_LIGHT

    def get_theme(self) -> str:
        with self._lock:
            if self._theme is None:
                self._theme = self._read_theme()
            return self._theme

    def set_theme(self, theme: str) -> str:
        normalized = THEME_DARK if theme == THEME_DARK else THEME_LIGHT
        self._repository.set(self._settings.theme_storage_key, normalized)
        with self._lock:
            self._theme = normalized
        return normalized
