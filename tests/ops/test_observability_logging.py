import json
import logging
from types import SimpleNamespace

from starlette.requests import Request
from starlette.responses import Response

from app.stockbox.core.logging import log_event
from app.stockbox.middleware.observability import build_request_log_payload


def test_build_request_log_payload():
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/stockbox/outbound/commit",
        "headers": [(b"idempotency-key", b"key-1")],
        "route": SimpleNamespace(path="/stockbox/outbound/commit"),
    }
    request = Request(scope)
    request.state.trace_id = "trace-1"
    request.state.error_code = "NOTHING_TO_COMMIT"
    response = Response(status_code=409)

    payload = build_request_log_payload(
        request=request,
        response=response,
        latency_ms=12.3456,
        db_time_ms=4.5678,
    )

    assert payload["event"] == "http_request"
    assert payload["trace_id"] == "trace-1"
    assert payload["route"] == "/stockbox/outbound/commit"
    assert payload["method"] == "POST"
    assert payload["status_code"] == 409
    assert payload["latency_ms"] == 12.35
    assert payload["db_time_ms"] == 4.57
    assert payload["idempotency_key"] == "key-1"
    assert payload["error_code"] == "NOTHING_TO_COMMIT"


def test_build_request_log_payload_without_response():
    request = Request({"type": "http", "method": "GET", "path": "/health", "headers": []})
    payload = build_request_log_payload(request=request, response=None, latency_ms=1.0, db_time_ms=None)
    assert payload["status_code"] == 500
    assert payload["route"] == "/health"
    assert payload["db_time_ms"] is None


def test_log_event_writes_single_json_line(caplog):
    logger = logging.getLogger("stockbox.test")
    with caplog.at_level(logging.INFO, logger="stockbox.test"):
        log_event(logger, "inbound.confirmed", inserted=8, skipped_existing=2)
    record = json.loads(caplog.records[-1].getMessage())
    assert record == {"event": "inbound.confirmed", "inserted": 8, "skipped_existing": 2}
