from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from .config import settings
from .logging import configure_logging, logger
from .metrics import registry
from .middleware import RateLimitMiddleware, RequestIDMiddleware
from .routers import config as cfg
from .routers import contests, health, problems, review


class AccessLogAndMetricsMiddleware(BaseHTTPMiddleware):
    """Emit structured request logs and capture latency/metrics for each call.

    なぜ: すべてのリクエストに `request_id` を付与した構造化ログとメトリクスを
    残し、復習記録の失敗などを運用時にすぐ追えるようにする。
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:  # type: ignore[override]
        start = time.time()
        path = request.url.path
        method = request.method
        request_id = getattr(request.state, "request_id", None)
        if not request_id:
            request_id = uuid4().hex
            request.state.request_id = request_id
        client_ip = request.client.host if request.client else "unknown"
        ua = request.headers.get("user-agent", "-")
        is_error = False
        status_code: int | None = None
        error_type: str | None = None
        error_message: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as exc:
            is_error = True
            status_code = 500
            error_type = exc.__class__.__name__
            raw_error_message = str(exc)
            # 例外型と簡潔なメッセージを残しつつログ膨張を防ぐ。
            error_message = (
                raw_error_message
                if len(raw_error_message) <= 200
                else f"{raw_error_message[:197]}..."
            )
            raise
        finally:
            latency_ms = (time.time() - start) * 1000
            registry.record(path, latency_ms, status_code=status_code, is_error=is_error)
            log_method = logger.error if is_error else logger.info
            log_method(
                "request_complete",
                path=path,
                method=method,
                latency_ms=latency_ms,
                is_error=is_error,
                status_code=status_code,
                error_type=error_type,
                error_message=error_message,
                request_id=request_id,
                client_ip=client_ip,
                user_agent=ua,
            )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    configure_logging()
    logger.info(
        "review_scheduler_configured",
        review_intervals=list(settings.review_intervals),
        review_timezone=settings.review_timezone,
    )
    app = FastAPI(title="Problem Tracker API", version="1.0.0")

    configured_origins = list(settings.allowed_cors_origins)
    allow_credentials = bool(configured_origins)
    if not configured_origins:
        configured_origins = ["*"]

    # ワイルドカード許可時は資格情報を無効化し、明示されたオリジンのみ許可する。
    app.add_middleware(
        CORSMiddleware,
        allow_origins=configured_origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    # Middleware stack (inner → outer): CORS → AccessLog → RequestID → RateLimit
    # Starlette では後から追加したミドルウェアが外側で実行される。RequestID を
    # AccessLog の外側に置き、アクセスログにも同じ request_id が載るようにする。
    app.add_middleware(AccessLogAndMetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        ip_capacity_per_minute=settings.rate_limit_per_min_ip,
    )

    app.include_router(problems.router, prefix="/api/problems")
    app.include_router(review.router, prefix="/api/review")
    app.include_router(contests.router, prefix="/api/contests")
    app.include_router(health.router)
    app.include_router(cfg.router, prefix="/api")

    return app


app = create_app()
