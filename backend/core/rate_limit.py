# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Process-local sliding-window rate limiter for the public auth endpoints.

Only *failed* requests are counted: a guarded block that raises a 4xx
:class:`AuthServiceError` records a hit, a successful one does not.  A 423
from a locked account is left to the lockout and never counted.  State
lives in memory and is lost on restart, which is acceptable for a single
node.

Usage inside a handler::

    with login_limiter.guard(request, body.name):
        ...
"""

import time
from collections import deque
from contextlib import contextmanager
from threading import Lock
from typing import Optional

from fastapi import Request

from core.config import settings
from core.errors import AuthServiceError, LockedError, RateLimitedError
from core.logger import logger
from core.security import get_client_ip


class SlidingWindowLimiter:
    def __init__(self, name: str, max_attempts: int, window_seconds: int, message: str) -> None:
        self.name = name
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.message = message
        self._hits: dict[str, deque] = {}
        self._lock = Lock()

    def _prune(self, key: str, now: float) -> deque:
        hits = self._hits.setdefault(key, deque())
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def is_limited(self, key: str, now: Optional[float] = None) -> bool:
        now = time.monotonic() if now is None else now
        with self._lock:
            return len(self._prune(key, now)) >= self.max_attempts

    def hit(self, key: str, now: Optional[float] = None) -> int:
        now = time.monotonic() if now is None else now
        with self._lock:
            hits = self._prune(key, now)
            hits.append(now)
            return len(hits)

    def check(self, key: str) -> None:
        if settings.rate_limit_enabled and self.is_limited(key):
            logger.warning("Rate limit '%s' exceeded for key=%s", self.name, key)
            raise RateLimitedError(self.message)

    @contextmanager
    def guard(self, request: Request, identifier: Optional[str] = ""):
        key = f"{get_client_ip(request)}:{(identifier or '').strip().lower()}"
        self.check(key)
        try:
            yield
        except LockedError:
            # The account lockout already refuses these attempts
            raise
        except AuthServiceError as exc:
            if exc.status_code < 500:
                self.hit(key)
            raise

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


login_limiter = SlidingWindowLimiter(
    "login",
    settings.login_rate_limit,
    settings.login_rate_window_seconds,
    "Too many failed login attempts. Please try again in 5 minutes",
)
register_limiter = SlidingWindowLimiter(
    "register",
    settings.register_rate_limit,
    settings.register_rate_window_seconds,
    "Too many registration attempts. Please try again in 1 hour",
)
forgot_password_limiter = SlidingWindowLimiter(
    "forgot_password",
    settings.forgot_password_rate_limit,
    settings.forgot_password_rate_window_seconds,
    "Too many password reset requests. Please try again in 1 hour",
)
verify_email_limiter = SlidingWindowLimiter(
    "verify_email",
    settings.verify_email_rate_limit,
    settings.verify_email_rate_window_seconds,
    "Too many verification email requests. Please try again in 1 hour",
)

ALL_LIMITERS = (login_limiter, register_limiter, forgot_password_limiter, verify_email_limiter)
