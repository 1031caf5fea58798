"""Simple in-memory sliding-window rate limiters.

State is per process; behind several workers each one counts separately.
"""

import time
from collections import defaultdict

from fastapi import HTTPException, Request, status

from certgen.config import settings


class SlidingWindowLimiter:
    def __init__(self, max_attempts: int, window_seconds: int, detail: str):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.detail = detail
        self._attempts: dict[str, list[float]] = defaultdict(list)

    def check(self, key: str) -> None:
        """Raise 429 if ``key`` already used up its window."""
        now = time.monotonic()
        self._attempts[key] = [t for t in self._attempts[key] if now - t < self.window_seconds]
        if len(self._attempts[key]) >= self.max_attempts:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=self.detail,
            )

    def record(self, key: str) -> None:
        self._attempts[key].append(time.monotonic())

    def hit(self, key: str) -> None:
        self.check(key)
        self.record(key)

    def reset(self) -> None:
        self._attempts.clear()


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


login_limiter = SlidingWindowLimiter(
    settings.login_max_attempts,
    settings.login_window_seconds,
    "Too many login attempts. Please wait a few minutes.",
)
upload_limiter = SlidingWindowLimiter(
    settings.upload_rate_limit_per_hour,
    3600,
    "Too many uploads. Please try again later.",
)
generate_limiter = SlidingWindowLimiter(
    settings.generate_rate_limit_per_hour,
    3600,
    "Too many certificate generation requests. Please try again later.",
)
