import logging

from ally.core.context import request_id_ctx_var, user_id_ctx_var
from ally.core.logging import RequestContextFilter


def test_health_endpoint_returns_ok(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers.get("X-Request-Id")


def test_request_id_echoed_from_header(client) -> None:
    req_id = "test-request-id-123"
    response = client.get("/health", headers={"X-Request-Id": req_id})

    assert response.headers.get("X-Request-Id") == req_id


def test_request_id_present_on_auth_failure(client) -> None:
    response = client.get("/mood-entries", headers={"X-Request-Id": "rejected-1"})

    assert response.status_code == 401
    assert response.headers.get("X-Request-Id") == "rejected-1"


def test_request_id_reaches_response_body(client, auth) -> None:
    headers, _ = auth
    response = client.get("/inbox", headers={**headers, "X-Request-Id": "inbox-list-1"})

    assert response.status_code == 200
    assert response.json()["request_id"] == "inbox-list-1"


def test_log_filter_stamps_request_context() -> None:
    record = logging.LogRecord("ally.test", logging.INFO, __file__, 1, "hello", None, None)
    request_token = request_id_ctx_var.set("req-42")
    user_token = user_id_ctx_var.set("user-7")
    try:
        assert RequestContextFilter().filter(record) is True
    finally:
        request_id_ctx_var.reset(request_token)
        user_id_ctx_var.reset(user_token)

    assert record.request_id == "req-42"
    assert record.user_id == "user-7"

    bare = logging.LogRecord("ally.test", logging.INFO, __file__, 1, "hello", None, None)
    RequestContextFilter().filter(bare)
    assert bare.request_id == "-"
    assert bare.user_id == "-"
