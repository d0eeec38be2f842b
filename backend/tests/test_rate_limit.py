"""Tests for the HTTP rate limiter."""
from fastapi.testclient import TestClient

from huddle.main import create_app
from huddle.ratelimit import TOO_MANY_REQUESTS, SlidingWindowLimiter


def test_window_allows_up_to_limit():
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=10)
    assert limiter.allow("1.2.3.4", now=0)
    assert limiter.allow("1.2.3.4", now=1)
    assert not limiter.allow("1.2.3.4", now=2)
    # Other clients are counted separately
    assert limiter.allow("5.6.7.8", now=2)


def test_window_slides():
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=10)
    limiter.allow("ip", now=0)
    limiter.allow("ip", now=5)
    assert not limiter.allow("ip", now=9)
    assert limiter.allow("ip", now=10)
    assert not limiter.allow("ip", now=11)
    assert limiter.allow("ip", now=15)


def test_idle_clients_are_forgotten():
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=10)
    for i in range(5):
        limiter.allow(f"10.0.0.{i}", now=1)
    assert limiter.tracked() == 5

    # The first request of the next window sweeps every idle client
    assert limiter.allow("10.0.0.9", now=12)
    assert limiter.tracked() == 1

    limiter.sweep(now=30)
    assert limiter.tracked() == 0


def test_middleware_returns_429(test_config):
    test_config.rate_limit.enabled = True
    test_config.rate_limit.max_requests = 3
    with TestClient(create_app(test_config)) as client:
        statuses = [client.get("/api/stats").status_code for _ in range(4)]
        response = client.get("/health")

    assert statuses == [200, 200, 200, 429]
    assert response.status_code == 429
    assert response.json() == {"success": False, "error": TOO_MANY_REQUESTS}


def test_websocket_is_not_limited(test_config):
    test_config.rate_limit.enabled = True
    test_config.rate_limit.max_requests = 1
    with TestClient(create_app(test_config)) as client:
        client.get("/health")
        for _ in range(3):
            with client.websocket_connect("/ws") as ws:
                assert ws.receive_json()["type"] == "connected"
