"""
Per-provider circuit breaker tripped by provider overload signals (HTTP 429).

A tripped provider is skipped until the cooldown has elapsed; the first
``allow`` call after that clears the trip and lets traffic through again.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from app.core.config import BREAKER_COOLDOWN

logger = logging.getLogger(__name__)


@dataclass
class ProviderState:
    cooldown: float
    tripped: bool = False
    tripped_at: float | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class CircuitBreaker:
    def __init__(self, cooldown: float = BREAKER_COOLDOWN, clock: Callable[[], float] = time.monotonic) -> None:
        self._cooldown = cooldown
        self._clock = clock
        self._states: dict[str, ProviderState] = {}
        self._registry_lock = threading.Lock()

    def _state(self, provider: str) -> ProviderState:
        with self._registry_lock:
            state = self._states.get(provider)
            if state is None:
                state = ProviderState(cooldown=self._cooldown)
                self._states[provider] = state
        return state

    def allow(self, provider: str) -> bool:
        """False while the provider is inside its cooldown; resets the trip once it has passed."""
        state = self._state(provider)
        with state.lock:
            if not state.tripped:
                return True
            elapsed = self._clock() - (state.tripped_at or 0.0)
            if elapsed < state.cooldown:
                return False
            state.tripped = False
            state.tripped_at = None
        logger.info("[circuit_breaker] %s cooldown elapsed, allowing calls again", provider)
        return True

    def report_overload(self, provider: str) -> None:
        state = self._state(provider)
        with state.lock:
            state.tripped = True
            state.tripped_at = self._clock()
        logger.warning("[circuit_breaker] %s signalled overload, tripped for %.0fs", provider, state.cooldown)

    def report_success(self, provider: str) -> None:
        # Success never clears a trip early; cooldown alone does that.
        logger.debug("[circuit_breaker] %s success", provider)

    def is_tripped(self, provider: str) -> bool:
        state = self._state(provider)
        with state.lock:
            return state.tripped
