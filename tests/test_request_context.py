import json
import logging

from starlette.requests import Request

from app.core.context import RequestContext, bind_request_context, reset_request_context
from app.core.limiter import rate_limit_key
from app.core.logging import JsonFormatter, RequestContextFilter, build_logging_config


def _request(headers: dict[str, str]) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/loans/1",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("10.0.0.8", 5123),
    }
    return Request(scope)


def test_request_id_is_echoed(client):
    resp = client.get("/api/loans/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["x-request-id"] == "req-123"


def test_request_id_is_generated(client):
    resp = client.get("/api/loans/health")
    assert resp.headers["x-request-id"]


def test_rate_limit_key_prefers_operator():
    assert rate_limit_key(_request({"X-User-Id": "77"})) == "actor:77"
    assert rate_limit_key(_request({})) == "ip:10.0.0.8"


def test_json_log_line_carries_request_context():
    record = logging.LogRecord("app.services.loans", logging.INFO, __file__, 1, "Loan closed", None, None)
    token = bind_request_context(RequestContext(request_id="abc", client_ip="1.2.3.4", actor_id="9"))
    try:
        RequestContextFilter().filter(record)
    finally:
        reset_request_context(token)

    line = json.loads(JsonFormatter(stream_label="audit").format(record))

    assert line["request_id"] == "abc"
    assert line["actor_id"] == "9"
    assert line["stream"] == "audit"
    assert line["message"] == "Loan closed"


def test_text_format_uses_plain_formatter():
    config = build_logging_config("DEBUG", "text")
    assert "format" in config["formatters"]["service"]
    assert config["loggers"]["app.audit"]["handlers"] == ["audit"]
