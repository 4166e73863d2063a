"""
Shared pytest fixtures for the proxy test suites.

Provides the Flask app and client, a valid bearer-token header, and a
``fake_upstream`` stub that replaces the outbound ``requests.request``
call so no test ever reaches the real idle-mmo API.
"""

from __future__ import annotations

import os

import pytest
from requests.structures import CaseInsensitiveDict

os.environ["FLASK_ENV"] = "testing"
os.environ.pop("TEST_PROXY_TIMEOUT", None)

from proxy_app import create_app

VALID_TOKEN = "idlemmo_4f2a9c81d7e6"


class _FakeRawHeaders:
    """Simulate ``urllib3`` raw headers with optional Set-Cookie support."""

    def __init__(self, set_cookies: list[str] | None = None):
        self._set_cookies = set_cookies or []

    def getlist(self, name: str) -> list[str]:
        if name.lower() == "set-cookie":
            return list(self._set_cookies)
        return []


class _FakeRaw:
    """Stand-in for the urllib3 response behind ``requests.Response.raw``."""

    def __init__(self, content: bytes, set_cookies: list[str] | None = None):
        self.headers = _FakeRawHeaders(set_cookies)
        self._content = content
        self.decode_content_args: list[bool] = []

    def stream(self, amt: int, decode_content: bool = True):
        self.decode_content_args.append(decode_content)
        for start in range(0, len(self._content), amt):
            yield self._content[start : start + amt]


class FakeUpstreamResponse:
    """Configurable stand-in for a streamed ``requests.Response``."""

    def __init__(
        self,
        *,
        status_code: int = 200,
        reason: str = "OK",
        content: bytes = b'{"ok": true}',
        headers: dict[str, str] | None = None,
        set_cookies: list[str] | None = None,
    ):
        self.status_code = status_code
        self.reason = reason
        self.headers = CaseInsensitiveDict(
            headers if headers is not None else {"Content-Type": "application/json"}
        )
        self.raw = _FakeRaw(content, set_cookies)
        self.closed = False

    def close(self) -> None:
        self.closed = True


class UpstreamStub:
    """Records every outbound call and answers with a configured response or error."""

    def __init__(self):
        self.calls: list[dict] = []
        self.responses: list[FakeUpstreamResponse] = []
        self.error: Exception | None = None
        self._response_kwargs: dict = {}

    def respond(self, **kwargs) -> None:
        self._response_kwargs = kwargs

    def fail(self, error: Exception) -> None:
        self.error = error

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        response = FakeUpstreamResponse(**self._response_kwargs)
        self.responses.append(response)
        return response


@pytest.fixture(scope="session")
def app():
    """
    Provide the Flask application instance for the entire test session.

    The proxy holds no per-request state, so one app can serve every test.
    """
    application = create_app("testing")
    yield application


@pytest.fixture(scope="function")
def client(app):
    """Provide a Flask test client scoped to a single test function."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Headers carrying a token that passes the ``idlemmo`` prefix check."""
    return {"Authorization": f"Bearer {VALID_TOKEN}"}


@pytest.fixture
def fake_upstream(monkeypatch) -> UpstreamStub:
    """Replace the outbound HTTP call with an ``UpstreamStub``."""
    stub = UpstreamStub()
    monkeypatch.setattr("proxy_app.proxy.requests.request", stub)
    return stub


@pytest.fixture
def make_upstream_response():
    """Factory for ``FakeUpstreamResponse`` objects used by unit tests."""
    return FakeUpstreamResponse
