from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass
class PathStats:
    latencies_ms: Deque[float]
    errors: int
    client_errors: int
    total: int


class MetricsRegistry:
    """In-memory request metrics keyed by path.

    - パス別の直近レイテンシ窓から p95 を算出
    - 5xx/例外（errors）と 4xx（client_errors）を分けて数える
      （重複 URL の 400 や未登録問題への復習完了 409 は client_errors 側）
    """

    def __init__(self, window_size: int = 200) -> None:
        self._window_size = window_size
        self._lock = threading.Lock()
        self._per_path: dict[str, PathStats] = defaultdict(
            lambda: PathStats(
                latencies_ms=deque(maxlen=self._window_size), errors=0, client_errors=0, total=0
            )
        )

    def record(
        self,
        path: str,
        latency_ms: float,
        *,
        status_code: int | None = None,
        is_error: bool = False,
    ) -> None:
        with self._lock:
            stats = self._per_path[path]
            stats.latencies_ms.append(latency_ms)
            stats.total += 1
            if is_error or (status_code is not None and status_code >= 500):
                stats.errors += 1
            elif status_code is not None and status_code >= 400:
                stats.client_errors += 1

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            result: dict[str, dict[str, float | int]] = {}
            for path, stats in self._per_path.items():
                p95 = calculate_p95(list(stats.latencies_ms))
                result[path] = {
                    "p95_ms": round(p95, 2),
                    "count": stats.total,
                    "errors": stats.errors,
                    "client_errors": stats.client_errors,
                }
            return result

    def reset(self) -> None:
        with self._lock:
            self._per_path.clear()


def calculate_p95(values: list[float]) -> float:
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    k = int(0.95 * (len(sorted_vals) - 1))
    return sorted_vals[k]


registry = MetricsRegistry()
