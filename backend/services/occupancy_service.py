"""Occupancy state machine: empty <-> occupied transitions and sessions."""

from __future__ import annotations

import secrets
import uuid
from dataclasses import replace
from typing import Any, Optional

from backend.domain.constraints import is_valid_slot_type
from backend.domain.models import Registry, SessionEvent, SlotStatus, SlotType
from backend.services.registry_service import SlotRegistryService
from backend.services.session_publisher import (
    SESSION_END,
    SESSION_START,
    SessionEventPublisher,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def generate_session_id(now_ms: int) -> str:
    """Return a globally unique opaque session token."""
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        # uuid4 needs os.urandom; fall back to timestamp plus random suffix.
        return f"session-{now_ms}-{secrets.token_hex(4)}"


class OccupancyStateMachine:
    """Sole mutator of slot status, type and duration history."""

    def __init__(
        self,
        registry_service: SlotRegistryService,
        publisher: Optional[SessionEventPublisher] = None,
    ) -> None:
        self._registry_service = registry_service
        self._publisher = publisher or SessionEventPublisher()

    def toggle(self, index: int, now: Optional[int] = None) -> Registry:
        """Flip one slot, persist locally, then publish the session event.

        Raises SlotNotFoundError without touching state when `index` is out of
        range.
        """
        now_ms = self._registry_service.now() if now is None else now
        registry = self._registry_service.load(now=now_ms)
        slot = self._registry_service.get(index, registry)

        if slot.is_empty:
            session_id = slot.session_id or generate_session_id(now_ms)
            updated_slot = replace(
                slot,
                status=SlotStatus.OCCUPIED,
                last_free_duration=now_ms - slot.last_changed,
                last_changed=now_ms,
                session_id=session_id,
            )
            event: Optional[SessionEvent] = SessionEvent(
                kind=SESSION_START,
                session_id=session_id,
                timestamp=now_ms,
                slot_index=index,
                slot_type=slot.type.value,
            )
        else:
            updated_slot = replace(
                slot,
                status=SlotStatus.EMPTY,
                last_occupied_duration=now_ms - slot.last_changed,
                last_changed=now_ms,
                session_id=None,
            )
            event = (
                SessionEvent(kind=SESSION_END, session_id=slot.session_id, timestamp=now_ms)
                if slot.session_id
                else None
            )

        updated = self._registry_service.with_slot(registry, index, updated_slot, now_ms)
        self._registry_service.save(updated)
        logger.info(
            "Slot toggled | slot=%s | status=%s | session_id=%s",
            index + 1,
            updated_slot.status.value,
            event.session_id if event else None,
        )

        if event is not None:
            self._publish(event)
        return updated

    def _publish(self, event: SessionEvent) -> None:
        try:
            self._publisher.publish(event)
        except Exception:
            logger.exception(
                "Session %s could not be queued | session_id=%s",
                event.kind,
                event.session_id,
            )

    def set_type(self, index: int, slot_type: Any, now: Optional[int] = None) -> Registry:
        """Change a slot's type; invalid types leave the registry unchanged."""
        now_ms = self._registry_service.now() if now is None else now
        registry = self._registry_service.load(now=now_ms)
        if isinstance(slot_type, SlotType):
            slot_type = slot_type.value
        if not is_valid_slot_type(slot_type):
            logger.warning("Ignoring invalid slot type | slot=%s | type=%r", index + 1, slot_type)
            return registry
        slot = self._registry_service.get(index, registry)
        updated = self._registry_service.with_slot(
            registry,
            index,
            replace(slot, type=SlotType(slot_type)),
            now_ms,
        )
        self._registry_service.save(updated)
        logger.info("Slot type changed | slot=%s | type=%s", index + 1, slot_type)
        return updated
