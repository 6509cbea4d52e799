"""Tests for slowapi rate limiting."""
import pytest
from fastapi import FastAPI, Request, Response
from fastapi.testclient import TestClient
from slowapi.errors import RateLimitExceeded
from unittest.mock import Mock

from src.middleware.slowapi_limiter import (
    GUEST_CREATE_LIMIT,
    GUEST_MIGRATE_LIMIT,
    create_limiter,
    get_request_identifier,
    setup_rate_limiting,
)


def test_create_limiter_with_redis():
    """Test limiter creation with Redis backend."""
    limiter = create_limiter("redis://localhost:6379")
    assert limiter is not None
    assert limiter.enabled == True


def test_create_limiter_without_redis():
    """Test limiter creation without Redis (in-memory)."""
    limiter = create_limiter(None)
    assert limiter is not None
    assert limiter.enabled == True


def test_create_limiter_disabled():
    limiter = create_limiter(None, enabled=False)
    assert limiter.enabled == False


def test_limiter_has_default_limits():
    """Test that limiter has default limits configured."""
    limiter = create_limiter(None)
    assert hasattr(limiter, '_default_limits')
    assert len(limiter._default_limits) > 0


def test_setup_rate_limiting():
    """Test setup_rate_limiting configures app correctly."""
    app = FastAPI()
    own = create_limiter(None)
    limiter = setup_rate_limiting(app, own)

    assert limiter is own
    assert app.state.limiter is own
    assert RateLimitExceeded in app.exception_handlers


def test_endpoint_limits():
    assert GUEST_CREATE_LIMIT == "5/hour"
    assert GUEST_MIGRATE_LIMIT == "10 per 15 minutes"


class TestRequestIdentifier:

    def _request(self, headers):
        request = Mock()
        request.headers = headers
        request.client = Mock(host="10.0.0.7")
        return request

    def test_account_header_wins(self):
        request = self._request({"X-User-Id": "user-1", "X-Guest-User-Id": "guest_abc"})
        assert get_request_identifier(request) == "user:user-1"

    def test_guest_session_header(self):
        request = self._request({"X-Guest-User-Id": "guest_abc"})
        assert get_request_identifier(request) == "guest:guest_abc"

    def test_falls_back_to_ip(self):
        request = self._request({})
        assert get_request_identifier(request) == "10.0.0.7"


def test_limit_exceeded_returns_429():
    """A decorated endpoint answers 429 once its limit is used up."""
    app = FastAPI()
    limiter = setup_rate_limiting(app, create_limiter(None))

    @app.post("/guests")
    @limiter.limit("2/minute")
    async def create(request: Request, response: Response):
        return {"ok": True}

    client = TestClient(app)

    assert client.post("/guests").status_code == 200
    assert client.post("/guests").status_code == 200
    assert client.post("/guests").status_code == 429


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
