from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.stockroom.core.logging import log_json
from app.stockroom.core.metrics import metrics
from app.stockroom.core.timing import query_timer

logger = logging.getLogger("stockroom.request")


def _route_template(request: Request) -> str:
    # templated path keeps metric label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _rounded(value: float | None) -> float | None:
    return None if value is None else round(value, 2)


def build_request_log_payload(
    *,
    request: Request,
    response: Response | None,
    latency_ms: float,
    db_time_ms: float | None,
) -> dict:
    state = request.state
    return {
        "event": "http_request",
        "trace_id": getattr(state, "trace_id", ""),
        "actor_id": getattr(state, "actor_id", None),
        "route": _route_template(request),
        "method": request.method,
        "status_code": response.status_code if response is not None else 500,
        "latency_ms": _rounded(latency_ms),
        "db_time_ms": _rounded(db_time_ms),
        "error_code": getattr(state, "error_code", None),
        "error_class": getattr(state, "error_class", None),
    }


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started_at = time.perf_counter()
        timer_token = query_timer.start()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            latency_ms = (time.perf_counter() - started_at) * 1000
            db_time_ms = query_timer.elapsed_ms()
            query_timer.stop(timer_token)
            self._emit(request, response, latency_ms, db_time_ms)

    @staticmethod
    def _emit(request: Request, response: Response | None, latency_ms: float, db_time_ms: float | None) -> None:
        payload = build_request_log_payload(
            request=request,
            response=response,
            latency_ms=latency_ms,
            db_time_ms=db_time_ms,
        )
        log_json(logger, payload)
        metrics.record_http_request(
            route=payload["route"],
            method=payload["method"],
            status_code=payload["status_code"],
            latency_ms=latency_ms,
        )
