import json
import logging
from types import SimpleNamespace

from starlette.requests import Request
from starlette.responses import Response

from app.stockroom.middleware.observability import build_request_log_payload
from tests.stock_helpers import auth_headers, create_product


def test_build_request_log_payload():
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/stock-movements",
        "headers": [],
        "route": SimpleNamespace(path="/stock-movements"),
    }
    request = Request(scope)
    request.state.trace_id = "trace-1"
    request.state.actor_id = "clerk-1"
    request.state.error_code = None
    response = Response(status_code=201)

    payload = build_request_log_payload(
        request=request,
        response=response,
        latency_ms=12.3456,
        db_time_ms=4.5678,
    )

    assert payload["event"] == "http_request"
    assert payload["trace_id"] == "trace-1"
    assert payload["actor_id"] == "clerk-1"
    assert payload["route"] == "/stock-movements"
    assert payload["method"] == "POST"
    assert payload["status_code"] == 201
    assert payload["latency_ms"] == 12.35
    assert payload["db_time_ms"] == 4.57


def test_request_and_movement_events_are_logged(client, caplog):
    product = create_product(client, stock=1)

    with caplog.at_level(logging.INFO):
        response = client.post(
            "/stock-movements",
            json={"product_id": product["id"], "type": "out", "quantity": 5},
            headers=auth_headers("clerk-9", **{"X-Trace-ID": "trace-log"}),
        )
        client.post(
            "/stock-movements",
            json={"product_id": product["id"], "type": "in", "quantity": 2},
            headers={"X-Trace-ID": "trace-ok"},
        )

    assert response.status_code == 422
    events = [json.loads(record.getMessage()) for record in caplog.records if record.getMessage().startswith("{")]
    request_events = [event for event in events if event["event"] == "http_request"]
    failed = next(event for event in request_events if event["trace_id"] == "trace-log")
    assert failed["actor_id"] == "clerk-9"
    assert failed["route"] == "/stock-movements"
    assert failed["status_code"] == 422
    assert failed["error_code"] == "INSUFFICIENT_STOCK"
    assert failed["db_time_ms"] is not None

    applied = next(event for event in events if event["event"] == "stock_movement_applied")
    assert applied["trace_id"] == "trace-ok"
    assert applied["previous_stock"] == 1
    assert applied["resulting_stock"] == 3
