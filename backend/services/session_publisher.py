"""Best-effort background publishing of session start/end records."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from threading import RLock
from typing import Optional

from backend.domain.models import SessionEvent
from backend.repository.session_log import SessionLogRepository, SessionLogUnavailableError
from backend.utils.logger import get_logger


logger = get_logger(__name__)

SESSION_START = "start"
SESSION_END = "end"


class SessionEventPublisher:
    """Writes session events on a detached worker.

    A single worker thread keeps writes in submission order, so an end record
    can never be overwritten by the start record of the same session. Write
    failures are logged and never reach the caller that mutated local state.
    """

    def __init__(self, session_log: Optional[SessionLogRepository] = None) -> None:
        self._session_log = session_log
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: set[Future] = set()
        self._lock = RLock()

    @property
    def enabled(self) -> bool:
        return self._session_log is not None

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1,
                    thread_name_prefix="session-log",
                )
            return self._executor

    def publish(self, event: SessionEvent) -> Optional[Future]:
        if self._session_log is None or not event.session_id:
            return None
        future = self._get_executor().submit(self._write, event)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(lambda done: self._on_done(event, done))
        return future

    def _write(self, event: SessionEvent) -> None:
        if self._session_log is None:
            raise SessionLogUnavailableError("Session log is not configured")
        if event.kind == SESSION_START:
            slot_index = event.slot_index if event.slot_index is not None else 0
            self._session_log.put(
                event.session_id,
                {
                    "slot_index": slot_index,
                    "slot_number": slot_index + 1,
                    "slot_type": event.slot_type,
                    "time_in": event.timestamp,
                    "time_out": None,
                    "created_at": event.timestamp,
                    "updated_at": event.timestamp,
                },
                merge=True,
            )
        elif event.kind == SESSION_END:
            self._session_log.put(
                event.session_id,
                {
                    "time_out": event.timestamp,
                    "updated_at": event.timestamp,
                },
                merge=True,
            )
        else:
            raise ValueError(f"Unknown session event kind: {event.kind}")

    def _on_done(self, event: SessionEvent, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        exc = future.exception()
        if exc is not None:
            logger.warning(
                "Session %s write failed | session_id=%s | error=%s",
                event.kind,
                event.session_id,
                exc,
            )
            return
        logger.debug(
            "Session %s recorded | session_id=%s | timestamp=%s",
            event.kind,
            event.session_id,
            event.timestamp,
        )

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until queued writes settle; used by shutdown and tests."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        with self._lock:
            executor = self._executor
            self._executor = None
        if executor is not None:
            executor.shutdown(wait=True)
