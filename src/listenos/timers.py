"""Named one-shot timers cancelled as a group on every state change."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Tuple


logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], Any]


class TimerArena:
    """Hold at most one pending timer per name.

    Scheduling a name that is already pending cancels the old timer first. A
    timer that was cancelled or replaced after it started firing is dropped
    instead of running its callback.
    """

    def __init__(self, timer_factory: TimerFactory = threading.Timer) -> None:
        self._factory = timer_factory
        self._timers: Dict[str, Tuple[object, Any]] = {}
        self._lock = threading.Lock()

    def schedule(self, name: str, delay_s: float, callback: Callable[[], None]) -> None:
        token = object()

        def _run() -> None:
            self._fire(name, token, callback)

        timer = self._factory(max(0.0, delay_s), _run)
        if hasattr(timer, "daemon"):
            timer.daemon = True
        with self._lock:
            previous = self._timers.pop(name, None)
            self._timers[name] = (token, timer)
        if previous is not None:
            previous[1].cancel()
        timer.start()

    def cancel(self, name: str) -> bool:
        with self._lock:
            entry = self._timers.pop(name, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def cancel_all(self) -> int:
        with self._lock:
            entries = list(self._timers.values())
            self._timers.clear()
        for _, timer in entries:
            timer.cancel()
        return len(entries)

    def scheduled(self) -> List[str]:
        with self._lock:
            return sorted(self._timers)

    def is_scheduled(self, name: str) -> bool:
        with self._lock:
            return name in self._timers

    def _fire(self, name: str, token: object, callback: Callable[[], None]) -> None:
        with self._lock:
            entry = self._timers.get(name)
            if entry is None or entry[0] is not token:
                return
            del self._timers[name]
        try:
            callback()
        except Exception:
            logger.exception("Timer %s callback failed", name)
