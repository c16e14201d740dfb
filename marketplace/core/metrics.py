from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import Lock


@dataclass
class RouteStats:
    requests: int = 0
    duration_ms: float = 0.0
    errors: int = 0

    def record(self, status_code: int, duration_ms: float) -> None:
        self.requests += 1
        self.duration_ms += duration_ms
        if status_code >= 400:
            self.errors += 1

    def as_dict(self) -> dict[str, float | int]:
        avg = self.duration_ms / self.requests if self.requests else 0.0
        return {
            "total_requests": self.requests,
            "total_duration_ms": round(self.duration_ms, 2),
            "avg_duration_ms": round(avg, 2),
            "error_count": self.errors,
        }


class InMemoryRequestMetrics:
    """Process-local request and domain-event counters, exposed on /internal/metrics."""

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], RouteStats] = {}
        self._roles: dict[str, RouteStats] = {}
        self._events: Counter[str] = Counter()
        self._lock = Lock()

    def observe(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
        user_role: str | None = None,
    ) -> None:
        with self._lock:
            self._routes.setdefault((endpoint, method), RouteStats()).record(status_code, duration_ms)
            self._roles.setdefault(user_role or "anonymous", RouteStats()).record(status_code, duration_ms)

    def count_event(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._events[name] += amount

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {f"{method} {endpoint}": stats.as_dict() for (endpoint, method), stats in self._routes.items()}

    def snapshot_per_role(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {role: stats.as_dict() for role, stats in self._roles.items()}

    def snapshot_events(self) -> dict[str, int]:
        with self._lock:
            return dict(self._events)

    def reset(self) -> None:
        with self._lock:
            self._routes.clear()
            self._roles.clear()
            self._events.clear()


request_metrics = InMemoryRequestMetrics()
