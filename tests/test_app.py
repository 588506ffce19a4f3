"""
Tests for the HTTP front end.
"""

import pytest
from fastapi.testclient import TestClient

from apiflow.app.dependencies import set_engine
from apiflow.app.main import app
from apiflow.runtime import Engine, MemorySpecLoader


@pytest.fixture
def client(mock_api, weather_spec_document):
    loader = MemorySpecLoader(
        {
            "weather": weather_spec_document,
            "mem://weather": weather_spec_document,
            "city-header": [
                {
                    "url": "https://api.example.com/h",
                    "request": [{"jq": "{headers: {\"X-City\": .query.city}}"}],
                }
            ],
            "search-form": {
                "url": "https://forms.example.com/submit",
                "request": [{"jq": "{q: $q, lang: .lang}"}],
                "response": [{"jq": ".answer", "rawOutput": True}],
            },
        }
    )
    set_engine(Engine(loader=loader, http_client=mock_api.client()))
    yield TestClient(app)
    set_engine(None)


@pytest.fixture
def weather_api(mock_api):
    mock_api.add("/search", {"results": [{"lat": "1", "lon": "2"}]})
    mock_api.add("/forecast/1/2", {"current": {"temperature": 12}})
    return mock_api


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestRunSpec:
    """Tests for GET /<spec location>."""

    def test_path_is_spec_location(self, client, weather_api):
        response = client.get("/weather", params={"city": "Oslo"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.content == b"12\n"
        assert weather_api.requests[0].url.params["name"] == "Oslo"

    def test_spec_query_param_wins(self, client, weather_api):
        response = client.get("/ignored", params={"spec": "mem://weather", "city": "Bergen"})

        assert response.status_code == 200
        assert response.content == b"12\n"
        assert "spec" not in weather_api.requests[0].url.params

    def test_first_value_of_repeated_param(self, client, weather_api):
        response = client.get("/weather?city=Oslo&city=Lima")

        assert response.status_code == 200
        assert weather_api.requests[0].url.params["name"] == "Oslo"

    def test_legacy_spec_gets_flat_params(self, client, mock_api):
        mock_api.add("/submit", {"answer": "forty-two"})

        response = client.get("/search-form", params={"q": "life", "lang": "en"})

        assert response.status_code == 200
        assert response.content == b"forty-two\n"
        request = mock_api.requests[0]
        assert request.method == "POST"
        assert request.content == b"q=life&lang=en"

    def test_error_is_plain_text_400(self, client):
        response = client.get("/unknown")

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "spec: fetch: no spec registered at unknown\n"

    def test_request_encoding_failure_is_400(self, client, mock_api):
        response = client.get("/city-header", params={"city": "Zürich"})

        assert response.status_code == 400
        assert response.text.startswith("exec: item 0: fetch: encode request: ")
        assert mock_api.calls == 0

    def test_missing_location(self, client):
        response = client.get("/")

        assert response.status_code == 400
        assert response.text == "missing spec location\n"
