"""
Pytest configuration and fixtures for apiflow tests.
"""

import json
import sys
from pathlib import Path
from typing import Any

import httpx
import pytest

# Add the repository root to path for imports
# This allows `from apiflow.pipeline import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from apiflow.pipeline import HttpRequester, RunContext  # noqa: E402


class MockApi:
    """
    Fake remote API backed by httpx.MockTransport.

    Responses are queued per path; the last queued response repeats once
    the queue is down to one. Every request is recorded.
    """

    def __init__(self):
        self.routes: dict[str, list[httpx.Response]] = {}
        self.requests: list[httpx.Request] = []
        self.on_request = None

    def add(self, path: str, body: Any = None, *, status: int = 200, raw: bytes | None = None):
        if raw is None:
            raw = json.dumps(body).encode()
        self.routes.setdefault(path, []).append(httpx.Response(status, content=raw))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)

        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, content=b'{"error":"not found"}')
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    @property
    def calls(self) -> int:
        return len(self.requests)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def mock_api():
    """Fake API with request recording."""
    return MockApi()


@pytest.fixture
def requester(mock_api):
    """HttpRequester wired to the fake API."""
    return HttpRequester(http_client=mock_api.client())


@pytest.fixture
def ctx():
    """Fresh run context."""
    return RunContext()


@pytest.fixture
def weather_spec_document():
    """Two-item templated spec: geocode a city, then fetch its forecast."""
    return [
        {
            "url": "https://geo.example.com/search",
            "request": [{"jq": "{query: {name: .query.city}}"}],
            "response": [{"jq": ".results[0] | {path: {lat: (.lat|tostring), lon: (.lon|tostring)}}"}],
        },
        {
            "url": "https://weather.example.com/forecast/$lat/$lon",
            "request": [{"jq": "."}],
            "response": [{"jq": ".current.temperature"}],
        },
    ]
