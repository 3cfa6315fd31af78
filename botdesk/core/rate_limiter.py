"""
Fixed-window rate limiting per client address and route class.

Each route class (api, chat, admin, upload) has its own independent window
and quota. Counters live in process memory and reset when the window rolls
over or when the limits are reconfigured.
"""

import math
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from .exceptions import RateLimitError
from .logging import logger


ROUTE_CLASSES = ("api", "chat", "admin", "upload")

EXEMPT_PATHS = ("/health", "/api/system/health", "/ws")

RATE_LIMIT_MESSAGES = {
    "api": "Too many requests from this IP, please try again after a minute",
    "chat": "Too many chat requests from this IP, please try again after a minute",
    "admin": "Too many admin requests from this IP, please try again after a minute",
    "upload": "Too many upload requests from this IP, please try again after a minute",
}


@dataclass
class RateLimitRule:
    """Quota for one route class."""

    window_ms: int
    max: int

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)

    def to_dict(self) -> Dict[str, int]:
        return {"window_ms": self.window_ms, "max": self.max}


@dataclass
class WindowState:
    window_start: float = 0.0
    count: int = 0


@dataclass
class FixedWindowLimiter:
    """Counts requests per key inside fixed windows of ``rule.window_ms``."""

    route_class: str
    rule: RateLimitRule
    clock: Callable[[], float] = time.monotonic
    _states: Dict[str, WindowState] = field(default_factory=dict)
    _last_sweep: Optional[float] = None

    def _expired(self, window_start: float, now: float) -> bool:
        return (now - window_start) * 1000 >= self.rule.window_ms

    def _sweep(self, now: float):
        # At most once per window, so memory tracks clients seen in the last two windows
        if self._last_sweep is not None and not self._expired(self._last_sweep, now):
            return
        self._last_sweep = now
        for key in [key for key, state in self._states.items() if self._expired(state.window_start, now)]:
            del self._states[key]

    def hit(self, key: str) -> Tuple[bool, int]:
        """Register a request for ``key``.

        Returns:
            (allowed, remaining). Rejected requests do not consume a slot.
        """
        now = self.clock()
        self._sweep(now)
        state = self._states.get(key)
        if state is None or self._expired(state.window_start, now):
            state = WindowState(window_start=now, count=0)
            self._states[key] = state

        if state.count >= self.rule.max:
            return False, 0

        state.count += 1
        return True, self.rule.max - state.count

    def reset(self):
        self._states.clear()
        self._last_sweep = None


def classify_route(method: str, path: str) -> Optional[str]:
    """Map a request to its route class; None for exempt or non-API paths."""
    if path in EXEMPT_PATHS:
        return None
    if path.startswith("/api/chat/"):
        return "chat"
    if path.startswith("/api/admin/"):
        return "admin"
    if method.upper() == "POST" and path.startswith("/api/knowledge-base"):
        return "upload"
    if path.startswith("/api/"):
        return "api"
    return None


class RateLimiter:
    """One fixed-window limiter per route class."""

    def __init__(self, rules: Dict[str, Dict[str, int]], clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.limiters: Dict[str, FixedWindowLimiter] = {}
        self.configure(rules)

    def configure(self, rules: Dict[str, Dict[str, int]]):
        """Replace the rules for the given classes; their counters restart."""
        for route_class, rule in rules.items():
            if route_class not in ROUTE_CLASSES:
                logger.warning(f"Ignoring rate limit for unknown route class '{route_class}'")
                continue
            self.limiters[route_class] = FixedWindowLimiter(
                route_class=route_class,
                rule=RateLimitRule(window_ms=int(rule["window_ms"]), max=int(rule["max"])),
                clock=self.clock
            )

        logger.info("Rate limits configured", extra_fields={
            "rate_limits": self.rules()
        })

    def rules(self) -> Dict[str, Dict[str, int]]:
        return {name: limiter.rule.to_dict() for name, limiter in self.limiters.items()}

    def check(self, route_class: str, client_key: str) -> int:
        """Count a request, raising RateLimitError when the quota is spent.

        Returns:
            Remaining requests in the current window.
        """
        limiter = self.limiters.get(route_class)
        if limiter is None:
            return -1

        allowed, remaining = limiter.hit(client_key)
        if not allowed:
            raise RateLimitError(
                RATE_LIMIT_MESSAGES[route_class],
                route_class=route_class,
                retry_after_seconds=limiter.rule.retry_after_seconds
            )
        return remaining
