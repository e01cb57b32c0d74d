from __future__ import annotations

from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from app.stockroom.core.config import settings


@dataclass
class MetricsSnapshot:
    content: bytes
    content_type: str


class Metrics:
    def __init__(self) -> None:
        self.enabled = bool(settings.METRICS_ENABLED)
        self._registry = None
        if self.enabled:
            self._initialize_registry()

    def _initialize_registry(self) -> None:
        self._registry = CollectorRegistry()
        self._http_requests_total = Counter(
            "http_requests_total",
            "HTTP requests by route/method/status.",
            ["route", "method", "status"],
            registry=self._registry,
        )
        self._http_request_duration_ms = Histogram(
            "http_request_duration_ms",
            "HTTP request latency in milliseconds.",
            ["route", "method", "status"],
            buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
            registry=self._registry,
        )
        self._stock_movements_total = Counter(
            "stock_movements_total",
            "Applied stock movements by type.",
            ["type"],
            registry=self._registry,
        )
        self._stock_movement_rejections_total = Counter(
            "stock_movement_rejections_total",
            "Rejected stock movements by reason.",
            ["reason"],
            registry=self._registry,
        )
        self._stock_movement_conflicts_total = Counter(
            "stock_movement_conflicts_total",
            "Compare-and-set conflicts while applying stock movements.",
            registry=self._registry,
        )
        self._search_fallback_total = Counter(
            "search_fallback_total",
            "External search failures served by the database search.",
            registry=self._registry,
        )
        self._idempotency_replay_total = Counter(
            "idempotency_replay_total",
            "Idempotent replay responses.",
            registry=self._registry,
        )
        self._lock_wait_timeout_total = Counter(
            "lock_wait_timeout_total",
            "Lock wait timeout occurrences.",
            registry=self._registry,
        )

    def reset(self) -> None:
        if not self.enabled:
            return
        self._initialize_registry()

    def record_http_request(self, *, route: str, method: str, status_code: int, latency_ms: float) -> None:
        if not self.enabled:
            return
        labels = {"route": route, "method": method, "status": str(status_code)}
        self._http_requests_total.labels(**labels).inc()
        self._http_request_duration_ms.labels(**labels).observe(latency_ms)

    def increment_stock_movement(self, movement_type: str) -> None:
        if not self.enabled:
            return
        self._stock_movements_total.labels(type=movement_type).inc()

    def increment_stock_movement_rejection(self, reason: str) -> None:
        if not self.enabled:
            return
        self._stock_movement_rejections_total.labels(reason=reason).inc()

    def increment_stock_movement_conflict(self) -> None:
        if not self.enabled:
            return
        self._stock_movement_conflicts_total.inc()

    def increment_search_fallback(self) -> None:
        if not self.enabled:
            return
        self._search_fallback_total.inc()

    def increment_idempotency_replay(self) -> None:
        if not self.enabled:
            return
        self._idempotency_replay_total.inc()

    def increment_lock_wait_timeout(self) -> None:
        if not self.enabled:
            return
        self._lock_wait_timeout_total.inc()

    def render(self) -> MetricsSnapshot:
        if not self.enabled:
            return MetricsSnapshot(content=b"metrics_disabled\n", content_type="text/plain")
        return MetricsSnapshot(content=generate_latest(self._registry), content_type=CONTENT_TYPE_LATEST)


metrics = Metrics()
