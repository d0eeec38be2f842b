"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from huddle.config import AppConfig
from huddle.main import create_app
from huddle.recordings.service import RecordingService


class FakeConnection:
    """In-memory stand-in for a WebSocket connection.

    Records every frame the server sends so tests can assert on ordering.
    """

    def __init__(self, handle: str):
        self.handle = handle
        self.sent = []
        self.closed = False
        self.close_code = None

    async def send_json(self, data: dict) -> None:
        if self.closed:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code

    def types(self):
        return [m["type"] for m in self.sent]

    def of_type(self, event_type: str):
        return [m for m in self.sent if m["type"] == event_type]

    def last(self, event_type: str):
        matches = self.of_type(event_type)
        return matches[-1] if matches else None

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def make_connection():
    """Factory for FakeConnection objects with readable handles."""
    return FakeConnection


@pytest.fixture
def test_config(tmp_path):
    """Settings isolated to a temp directory, rate limiting off, short timers."""
    return AppConfig(
        rate_limit={"enabled": False},
        session={"grace_period_seconds": 0.2, "ready_timeout_seconds": 0.2},
        recordings={
            "upload_dir": str(tmp_path / "recordings"),
            "db_path": ":memory:",
        },
    )


@pytest.fixture(autouse=True)
def reset_recording_service():
    """Every test starts without a cached RecordingService."""
    RecordingService.reset_instance()
    yield
    RecordingService.reset_instance()


@pytest.fixture
def app(test_config):
    return create_app(test_config)


@pytest.fixture
def api_client(app):
    """Provide a TestClient bound to a freshly built app."""
    with TestClient(app) as client:
        yield client
