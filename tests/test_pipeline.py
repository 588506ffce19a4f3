"""
Tests for apiflow pipeline execution.

Tests PipelineRunner payload threading and early return.
"""

import json

import pytest

from apiflow.errors import FilterRuntimeError
from apiflow.pipeline import PipelineRunner, RunContext
from apiflow.spec import Spec


class TestPipelineRunner:
    """Tests for PipelineRunner."""

    @pytest.mark.asyncio
    async def test_zero_items_returns_input(self, requester):
        runner = PipelineRunner(Spec.prepare([]), requester=requester)
        assert await runner.run(b'{"a":1}') == b'{"a":1}'

    @pytest.mark.asyncio
    async def test_payload_threads_between_items(self, mock_api, requester, weather_spec_document):
        mock_api.add("/search", {"results": [{"lat": "59.9", "lon": "10.7"}]})
        mock_api.add("/forecast/59.9/10.7", {"current": {"temperature": 4.5}})

        runner = PipelineRunner(Spec.prepare(weather_spec_document), requester=requester)
        output = await runner.run(b'{"query":{"city":"Oslo"}}')

        assert output == b"4.5"
        assert mock_api.requests[0].url.params["name"] == "Oslo"
        assert mock_api.requests[1].url.path == "/forecast/59.9/10.7"

    @pytest.mark.asyncio
    async def test_short_circuit_in_second_item(self, mock_api, requester):
        mock_api.add("/one", {"v": 1})
        mock_api.add("/two", {"v": 2})
        spec = Spec.prepare(
            [
                {
                    "url": "https://api.example.com/one",
                    "response": [{"jq": "{query: {v: (.v | tostring)}}"}],
                },
                {
                    "url": "https://api.example.com/two",
                    "response": [
                        {"returnIf": {"if": ".v == 2", "return": {"done": True}}},
                        {"jq": 'error("later response step ran")'},
                    ],
                    "retry": [{"jq": 'error("retry ran")'}],
                },
                {"url": "https://api.example.com/three"},
            ]
        )
        ctx = RunContext()

        output = await PipelineRunner(spec, requester=requester).run(b"{}", ctx)

        assert json.loads(output) == {"done": True}
        assert [r.url.path for r in mock_api.requests] == ["/one", "/two"]
        assert mock_api.requests[1].url.params["v"] == "1"
        assert ctx.short_circuited_at == 1

    @pytest.mark.asyncio
    async def test_short_circuit_in_first_item_request(self, mock_api, requester):
        spec = Spec.prepare(
            [
                {"url": "https://api.example.com/one", "request": [{"returnIf": {"if": "true", "return": 0}}]},
                {"url": "https://api.example.com/two"},
            ]
        )

        output = await PipelineRunner(spec, requester=requester).run(b"{}")

        assert output == b"0"
        assert mock_api.calls == 0

    @pytest.mark.asyncio
    async def test_error_names_item(self, mock_api, requester):
        mock_api.add("/one", {})
        mock_api.add("/two", {})
        spec = Spec.prepare(
            [
                {"url": "https://api.example.com/one", "response": [{"jq": "{}"}]},
                {"url": "https://api.example.com/two", "response": [{"jq": 'error("bad")'}]},
            ]
        )

        with pytest.raises(FilterRuntimeError) as exc_info:
            await PipelineRunner(spec, requester=requester).run(b"{}")

        assert str(exc_info.value).startswith("item 1: response: step 0: jq: ")

    @pytest.mark.asyncio
    async def test_concurrent_runs_share_spec(self, mock_api, requester):
        import asyncio

        mock_api.add("/echo", {"ok": True})
        spec = Spec.prepare(
            [
                {
                    "url": "https://api.example.com/echo",
                    "request": [{"jq": "{query: {id: .id}}"}],
                    "response": [{"jq": "true"}],
                }
            ]
        )
        runner = PipelineRunner(spec, requester=requester)
        contexts = [RunContext() for _ in range(5)]

        outputs = await asyncio.gather(
            *(runner.run(json.dumps({"id": str(i)}).encode(), c) for i, c in enumerate(contexts))
        )

        assert outputs == [b"true"] * 5
        assert sorted(r.url.params["id"] for r in mock_api.requests) == ["0", "1", "2", "3", "4"]
        assert all(len(c.http_calls) == 1 for c in contexts)

    @pytest.mark.asyncio
    async def test_timings_recorded(self, mock_api, requester):
        mock_api.add("/one", {})
        spec = Spec.prepare([{"url": "https://api.example.com/one"}])
        ctx = RunContext()

        await PipelineRunner(spec, requester=requester).run(b"{}", ctx)

        assert set(ctx.item_timings) == {0}
        assert ctx.to_audit_dict()["item_attempts"] == {0: 1}
