"""Per-session phase deadline timers."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Protocol

logger = logging.getLogger(__name__)

DeadlineCallback = Callable[[str], object]


class PhaseScheduler(Protocol):
    """Holds at most one pending deadline per session."""

    def schedule(self, session_id: str, delay_seconds: float, callback: DeadlineCallback) -> None:
        ...

    def cancel(self, session_id: str) -> None:
        ...

    def shutdown(self) -> None:
        ...


class ThreadingPhaseScheduler:
    """:class:`PhaseScheduler` backed by one :class:`threading.Timer` per session.

    Scheduling a session replaces (and cancels) its previous timer. A timer
    that already fired and is waiting on the session lock cannot be recalled;
    the engine's phase guard turns such a stale firing into a no-op.
    """

    def __init__(self) -> None:
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, session_id: str, delay_seconds: float, callback: DeadlineCallback) -> None:
        timer = threading.Timer(max(0.0, delay_seconds), self._fire, args=(session_id, callback))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(session_id, None)
            if previous is not None:
                previous.cancel()
            self._timers[session_id] = timer
        timer.start()
        logger.debug(f"Session {session_id}: deadline timer set for {delay_seconds:.1f}s")

    def cancel(self, session_id: str) -> None:
        with self._lock:
            timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()
            logger.debug(f"Session {session_id}: deadline timer cancelled")

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._timers)

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _fire(self, session_id: str, callback: DeadlineCallback) -> None:
        with self._lock:
            current = self._timers.get(session_id)
            if current is threading.current_thread():
                del self._timers[session_id]
        try:
            callback(session_id)
        except Exception:
            logger.exception(f"Session {session_id}: deadline handler failed")


__all__ = ["DeadlineCallback", "PhaseScheduler", "ThreadingPhaseScheduler"]
