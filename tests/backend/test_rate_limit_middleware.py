from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from starlette.requests import Request
from starlette.responses import Response

import tracker.middleware as middleware_module
from tracker.middleware import RateLimitMiddleware


async def _call_next(_: Request) -> Response:
    return Response("ok", media_type="text/plain")


def _dispatch(middleware: RateLimitMiddleware, request: Request) -> Response:
    return asyncio.run(middleware.dispatch(request, _call_next))


def _make_request(*, path: str = "/api/problems", client_ip: str = "198.51.100.10") -> Request:
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": "GET",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": b"",
        "headers": [],
        "client": (client_ip, 52314),
        "state": SimpleNamespace(),
    }
    return Request(scope)


def _middleware(capacity: int) -> RateLimitMiddleware:
    return RateLimitMiddleware(
        app=lambda scope, receive, send: None,
        ip_capacity_per_minute=capacity,
    )


def test_rate_limit_enforces_per_ip_bucket() -> None:
    middleware = _middleware(2)

    responses = [_dispatch(middleware, _make_request()) for _ in range(3)]

    assert [r.status_code for r in responses] == [200, 200, 429]
    assert responses[2].headers["Retry-After"] == "60"
    assert responses[0].headers["X-RateLimit-Limit-Ip"] == "2"
    assert responses[0].headers["X-RateLimit-Remaining-Ip"] == "1"


def test_rate_limit_buckets_are_independent_per_ip() -> None:
    middleware = _middleware(1)

    first = _dispatch(middleware, _make_request(client_ip="198.51.100.10"))
    other = _dispatch(middleware, _make_request(client_ip="203.0.113.7"))
    again = _dispatch(middleware, _make_request(client_ip="198.51.100.10"))

    assert first.status_code == 200
    assert other.status_code == 200
    assert again.status_code == 429


def test_rate_limit_skips_paths_outside_api() -> None:
    middleware = _middleware(1)

    for _ in range(5):
        assert _dispatch(middleware, _make_request(path="/healthz")).status_code == 200
    assert middleware._ip_buckets == {}


def test_rate_limit_refills_after_interval(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = {"now": 1000.0}
    monkeypatch.setattr(middleware_module.time, "time", lambda: clock["now"])
    middleware = _middleware(1)

    assert _dispatch(middleware, _make_request()).status_code == 200
    assert _dispatch(middleware, _make_request()).status_code == 429

    clock["now"] += 60.0
    assert _dispatch(middleware, _make_request()).status_code == 200
