from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.stockbox.core.db_timing import get_db_time_ms, track_db_time
from app.stockbox.core.logging import log_json
from app.stockbox.core.metrics import metrics

logger = logging.getLogger("stockbox.request")


def build_request_log_payload(
    *,
    request: Request,
    response: Response | None,
    latency_ms: float,
    db_time_ms: float | None,
) -> dict:
    scope_route = request.scope.get("route")
    route = getattr(scope_route, "path", None) or request.url.path
    return {
        "event": "http_request",
        "trace_id": getattr(request.state, "trace_id", ""),
        "route": route,
        "method": request.method,
        "status_code": getattr(response, "status_code", 500),
        "latency_ms": round(latency_ms, 2),
        "db_time_ms": round(db_time_ms, 2) if db_time_ms is not None else None,
        "idempotency_key": request.headers.get("Idempotency-Key"),
        "error_code": getattr(request.state, "error_code", None),
        "error_class": getattr(request.state, "error_class", None),
    }


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response: Response | None = None
        with track_db_time():
            try:
                response = await call_next(request)
                return response
            finally:
                latency_ms = (time.perf_counter() - start_time) * 1000
                payload = build_request_log_payload(
                    request=request,
                    response=response,
                    latency_ms=latency_ms,
                    db_time_ms=get_db_time_ms(),
                )
                log_json(logger, payload)
                metrics.record_http_request(
                    route=payload["route"],
                    method=payload["method"],
                    status_code=payload["status_code"],
                    latency_ms=latency_ms,
                )
