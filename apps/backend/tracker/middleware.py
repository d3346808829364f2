from __future__ import annotations

import threading
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from structlog import contextvars as structlog_contextvars


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign a request ID to each incoming request and expose it in headers.

    - Sets `request.state.request_id`
    - Binds `request_id` into structlog contextvars for the request's lifetime
    - Adds `X-Request-ID` to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        structlog_contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog_contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-ID"] = request_id
        return response


class _TokenBucket:
    """Thread-safe token bucket that refills to capacity every fixed interval (seconds)."""

    def __init__(self, capacity: int, refill_interval_sec: float) -> None:
        self.capacity = max(1, capacity)
        self.tokens = self.capacity
        self.refill_interval = max(1.0, float(refill_interval_sec))
        self.last_refill = time.time()
        self._lock = threading.Lock()

    def allow(self) -> tuple[bool, int]:
        """Consume one token if available and return the remaining count."""
        now = time.time()
        with self._lock:
            elapsed = now - self.last_refill
            if elapsed >= self.refill_interval:
                self.tokens = self.capacity
                self.last_refill = now
            if self.tokens > 0:
                self.tokens -= 1
                return True, self.tokens
            return False, 0


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting per client IP using token buckets.

    `/api` 配下のみを対象とし、ヘルスチェックやメトリクス取得は制限しない。
    """

    def __init__(
        self,
        app,
        *,
        ip_capacity_per_minute: int,
        path_prefix: str = "/api",
    ) -> None:
        super().__init__(app)
        self._ip_capacity = max(1, int(ip_capacity_per_minute))
        self._ip_buckets: dict[str, _TokenBucket] = {}
        self._lock = threading.Lock()
        self._path_prefix = path_prefix

    def _get_ip_bucket(self, key: str) -> _TokenBucket:
        with self._lock:
            if key not in self._ip_buckets:
                self._ip_buckets[key] = _TokenBucket(
                    capacity=self._ip_capacity,
                    refill_interval_sec=60.0,
                )
            return self._ip_buckets[key]

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        if not request.url.path.startswith(self._path_prefix):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        ok_ip, remaining_ip = self._get_ip_bucket(client_ip).allow()
        if not ok_ip:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests from this IP, please try again later."},
                headers={
                    "Retry-After": "60",
                    "X-RateLimit-Limit-Ip": str(self._ip_capacity),
                    "X-RateLimit-Remaining-Ip": str(remaining_ip),
                },
            )

        response = await call_next(request)
        response.headers.setdefault("X-RateLimit-Limit-Ip", str(self._ip_capacity))
        response.headers.setdefault("X-RateLimit-Remaining-Ip", str(remaining_ip))
        return response
