"""
Per-client sliding-window rate limiter with independent text and image budgets.

Windows live in memory for the lifetime of the owning object (nothing is
persisted). Each (client, traffic class) key has its own lock, so one client
never waits on another and updates on a key are linearizable.

``admit`` only checks; ``record`` counts an event. ``reserve`` is the atomic
form used by the pipeline: it admits and holds a slot, which ``record``
converts into an event and ``release`` gives back.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from app.core.config import IMAGE_RATE_LIMIT, IMAGE_RATE_WINDOW, TEXT_RATE_LIMIT, TEXT_RATE_WINDOW

logger = logging.getLogger(__name__)


class TrafficClass(str, Enum):
    TEXT = "text"
    IMAGE = "image"


@dataclass(frozen=True)
class RateRule:
    limit: int
    window: float  # seconds


@dataclass
class _ClientWindow:
    events: deque = field(default_factory=deque)
    held: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class RateLimiter:
    """Sliding-window limiter keyed by (client_id, traffic class)."""

    def __init__(
        self,
        text_limit: int = TEXT_RATE_LIMIT,
        text_window: float = TEXT_RATE_WINDOW,
        image_limit: int = IMAGE_RATE_LIMIT,
        image_window: float = IMAGE_RATE_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rules = {
            TrafficClass.TEXT: RateRule(text_limit, text_window),
            TrafficClass.IMAGE: RateRule(image_limit, image_window),
        }
        self._clock = clock
        self._windows: dict[tuple[str, TrafficClass], _ClientWindow] = {}
        self._registry_lock = threading.Lock()

    def rule(self, traffic: TrafficClass) -> RateRule:
        return self._rules[TrafficClass(traffic)]

    def _window(self, client_id: str, traffic: TrafficClass) -> _ClientWindow:
        key = (client_id, TrafficClass(traffic))
        with self._registry_lock:
            window = self._windows.get(key)
            if window is None:
                window = _ClientWindow()
                self._windows[key] = window
        return window

    def _prune(self, window: _ClientWindow, rule: RateRule, now: float) -> None:
        # Caller holds window.lock
        cutoff = now - rule.window
        while window.events and window.events[0] <= cutoff:
            window.events.popleft()

    def admit(self, client_id: str, traffic: TrafficClass) -> bool:
        """True iff the client has budget left in the trailing window. Records nothing."""
        rule = self.rule(traffic)
        window = self._window(client_id, traffic)
        with window.lock:
            self._prune(window, rule, self._clock())
            return len(window.events) + window.held < rule.limit

    def record(self, client_id: str, traffic: TrafficClass) -> None:
        """Count one event now. Consumes a held slot if the client reserved one."""
        rule = self.rule(traffic)
        window = self._window(client_id, traffic)
        with window.lock:
            now = self._clock()
            self._prune(window, rule, now)
            window.events.append(now)
            if window.held:
                window.held -= 1
        logger.debug("[rate_limiter:record] client=%s class=%s", client_id, TrafficClass(traffic).value)

    def reserve(self, client_id: str, traffic: TrafficClass) -> bool:
        """Admit and hold a slot in one step. A held slot must later be recorded or released."""
        rule = self.rule(traffic)
        window = self._window(client_id, traffic)
        with window.lock:
            self._prune(window, rule, self._clock())
            if len(window.events) + window.held >= rule.limit:
                return False
            window.held += 1
            return True

    def release(self, client_id: str, traffic: TrafficClass) -> None:
        """Give back a slot taken by reserve() that was not recorded."""
        window = self._window(client_id, traffic)
        with window.lock:
            if window.held:
                window.held -= 1

    def usage(self, client_id: str, traffic: TrafficClass) -> int:
        """Events currently counted in the client's window."""
        rule = self.rule(traffic)
        window = self._window(client_id, traffic)
        with window.lock:
            self._prune(window, rule, self._clock())
            return len(window.events)
