"""
Per-client request limiting for the SMS ledger API.

Clients are keyed by a digest of their bearer token, falling back to the
peer address for anonymous calls (signup, login). Counters live in process
memory, so the limit applies per worker.
"""
import hashlib
import os
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from smsledger.services.errors import ErrorCode

RATE_LIMIT_ENABLED = os.getenv("SMSLEDGER_RATE_LIMIT_ENABLED", "true").lower() == "true"
RATE_LIMIT_REQUESTS = int(os.getenv("SMSLEDGER_RATE_LIMIT_REQUESTS", "100"))
RATE_LIMIT_WINDOW = int(os.getenv("SMSLEDGER_RATE_LIMIT_WINDOW", "60"))

EXEMPT_PATHS = {"/health", "/docs", "/openapi.json"}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int

    def headers(self) -> Dict[str, str]:
        values = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(time.time()) + self.reset_after),
        }
        if not self.allowed:
            values["Retry-After"] = str(self.reset_after)
        return values


class FixedWindowLimiter:
    """Counts hits per client in windows of ``window_seconds``."""

    def __init__(self, max_requests: int, window_seconds: int, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, client_id: str) -> Decision:
        now = self._clock()
        with self._lock:
            started, count = self._windows.get(client_id, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            reset_after = max(0, int(self.window_seconds - (now - started)))
            if count >= self.max_requests:
                return Decision(False, self.max_requests, 0, reset_after)
            count += 1
            self._windows[client_id] = (started, count)
        return Decision(True, self.max_requests, self.max_requests - count, reset_after)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def client_key(request: Request) -> str:
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return "token:" + hashlib.sha256(token.strip().encode()).hexdigest()[:16]
    return "ip:" + (request.client.host if request.client else "unknown")


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: Optional[FixedWindowLimiter] = None, enabled: Optional[bool] = None):
        super().__init__(app)
        self.limiter = limiter or FixedWindowLimiter(RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW)
        self.enabled = RATE_LIMIT_ENABLED if enabled is None else enabled

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        decision = self.limiter.hit(client_key(request))
        if not decision.allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": ErrorCode.RATE_LIMITED.value,
                    "message": f"Too many requests; retry in {decision.reset_after}s",
                },
                headers=decision.headers(),
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response
