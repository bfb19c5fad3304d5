"""Tests de la clave de rate limiting para intentos de PIN"""
from types import SimpleNamespace
import json

import pytest
from limits import parse
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request

from shared.utils.rate_limiter import (
    get_operator_key,
    get_real_client_ip,
    rate_limit_exceeded_handler,
    retry_after_seconds,
)


def make_request(headers=None, session_id=None):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": ("10.0.0.5", 5000),
        "path_params": {"session_id": session_id} if session_id else {},
    }
    return Request(scope)


def test_forwarded_ip_wins():
    request = make_request({"X-Forwarded-For": "200.1.1.1, 10.0.0.1"})
    assert get_real_client_ip(request) == "200.1.1.1"


def test_falls_back_to_socket_ip():
    assert get_real_client_ip(make_request()) == "10.0.0.5"


def test_same_network_operators_do_not_share_quota():
    first = make_request({"Authorization": "Bearer token-a"}, session_id="s1")
    second = make_request({"Authorization": "Bearer token-b"}, session_id="s1")
    assert get_operator_key(first) != get_operator_key(second)


def test_key_is_scoped_to_session():
    in_s1 = make_request({"Authorization": "Bearer token-a"}, session_id="s1")
    in_s2 = make_request({"Authorization": "Bearer token-a"}, session_id="s2")
    assert get_operator_key(in_s1).endswith(":s1")
    assert get_operator_key(in_s1) != get_operator_key(in_s2)


def exceeded(limit_string):
    return RateLimitExceeded(SimpleNamespace(limit=parse(limit_string), error_message=None))


@pytest.mark.parametrize("limit_string,seconds", [("20/minute", 60), ("5/second", 1), ("100/hour", 3600)])
def test_retry_after_uses_limit_window(limit_string, seconds):
    assert retry_after_seconds(exceeded(limit_string)) == seconds


def test_handler_sends_numeric_retry_after():
    response = rate_limit_exceeded_handler(make_request(session_id="s1"), exceeded("20/minute"))
    body = json.loads(response.body)
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    assert body["retry_after_seconds"] == 60
    assert body["error"] == "rate_limit_exceeded"
