"""
Engine: the single entry point for running a spec.

Flow:
    1. Load the spec document from its location
    2. Build the initial payload from the caller's parameters, read in
       the shape the document's form calls for
    3. Prepare the document (decode + compile every filter, fail fast)
    4. Run the pipeline and return the final payload as JSON bytes

Parameter Shapes:
    Templated pipelines take RequestParams-shaped input:
        {"path": {...}, "query": {...}, "body": "", "headers": {...}, "method": ""}
    Legacy specs take a flat mapping of variable name -> string:
        {"city": "Oslo", "units": "metric"}

    The values bound as `$name` inside filters are the flat mapping itself
    (legacy) or the `query` map (templated). A legacy spec called with
    `{"query": {...}}` reads the query map as its flat mapping.

    A variable-binding filter that references a name the caller did not
    supply fails as a params error (UnboundVariableError) before any call.

Usage:
    engine = Engine(loader=HttpSpecLoader())
    output = await engine.execute(
        "https://specs.example.com/weather.json",
        {"query": {"city": "Oslo"}},
    )
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

import httpx

from apiflow.config.schemas import AppSettings
from apiflow.errors import ApiflowError, DecodeError, RunTimeout, UnboundVariableError
from apiflow.pipeline.context import RunContext
from apiflow.pipeline.executor import PipelineRunner
from apiflow.pipeline.requester import HttpRequester, RequestParams
from apiflow.pipeline.steps import encode_json
from apiflow.spec.models import Spec, is_legacy_document

from .loaders import CompositeSpecLoader, FileSpecLoader, HttpSpecLoader, SpecLoader

logger = logging.getLogger(__name__)

_REQUEST_PARAM_KEYS = frozenset(RequestParams.model_fields)


def is_request_params(params: Mapping[str, Any]) -> bool:
    """
    Tell the templated parameter shape from a flat legacy mapping.

    Any key outside RequestParams' fields, or any non-mapping value under
    path/query/headers, marks the mapping as flat.
    """
    if not params or not set(params) <= _REQUEST_PARAM_KEYS:
        return False
    return all(
        params.get(key) is None or isinstance(params[key], Mapping)
        for key in ("path", "query", "headers")
    )


def initial_payload(
    params: Mapping[str, Any],
    *,
    legacy: bool,
) -> tuple[dict[str, Any], bytes]:
    """
    Build the filter variables and the first payload of a run.

    Legacy specs read a flat mapping. Templated `{"query": {...}}` input, as
    the HTTP front end sends it, is flattened to its query map; any other
    mapping stays flat even when its keys collide with RequestParams fields.

    Templated specs validate RequestParams-shaped input and bind its query
    map. A flat mapping passes through as the payload and is bound as is.

    Raises:
        ValueError: If templated input does not validate as RequestParams
    """
    if legacy:
        query = params.get("query")
        if is_request_params(params) and isinstance(query, Mapping):
            flat = dict(query)
        else:
            flat = dict(params)
        return flat, encode_json(flat)

    if is_request_params(params):
        request_params = RequestParams.model_validate(params)
        return dict(request_params.query), encode_json(request_params.model_dump())

    flat = dict(params)
    return flat, encode_json(flat)


def build_loader(settings: AppSettings, http_client: httpx.AsyncClient | None = None) -> SpecLoader:
    """Create the default loader for the given settings."""
    return CompositeSpecLoader(
        http=HttpSpecLoader(timeout=settings.spec_fetch_timeout, http_client=http_client),
        file=FileSpecLoader() if settings.allow_local_specs else None,
    )


class Engine:
    """
    Loads, prepares and runs specs.

    The engine is stateless between calls: every execute() loads and
    prepares its spec afresh and gets its own RunContext.
    """

    def __init__(
        self,
        *,
        loader: SpecLoader | None = None,
        settings: AppSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or AppSettings()
        self._loader = loader or build_loader(self.settings, http_client)
        self._requester = HttpRequester(
            timeout=self.settings.http_timeout,
            http_client=http_client,
        )

    async def prepare(
        self,
        spec_location: str,
        variable_names: Iterable[str] = (),
    ) -> Spec:
        """
        Load and prepare a spec.

        Raises:
            FetchError: If the document cannot be fetched
            DecodeError: If it is not a valid spec document
            CompileError: If any filter fails to compile
        """
        document = await self._load(spec_location)
        return Spec.prepare(
            document,
            location=spec_location,
            variable_names=variable_names,
        )

    async def execute(
        self,
        spec_location: str,
        initial_params: Mapping[str, Any] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> bytes:
        """
        Run the spec at `spec_location` and return the final payload.

        The spec document is loaded first; its form (legacy object or
        templated array) decides how `initial_params` are read.

        Args:
            spec_location: Where to load the spec document from
            initial_params: Templated RequestParams shape or flat legacy mapping
            cancel_event: Optional signal that stops the run at the next check

        Returns:
            JSON-encoded final payload

        Raises:
            ApiflowError: On any failure, with a context-prefixed message
        """
        try:
            document = await self._load(spec_location)
        except ApiflowError as e:
            raise e.within("spec")

        try:
            variables, payload = initial_payload(
                initial_params or {},
                legacy=is_legacy_document(document),
            )
        except (ValueError, TypeError) as e:
            raise DecodeError(f"initial params: {e}").within("params") from e

        try:
            spec = Spec.prepare(
                document,
                location=spec_location,
                variable_names=variables.keys(),
            )
        except UnboundVariableError as e:
            raise e.within("params")
        except ApiflowError as e:
            raise e.within("spec")

        ctx = RunContext(
            variables=variables,
            cancel_event=cancel_event,
            max_item_attempts=self.settings.max_item_attempts,
        )
        return await self.run(spec, payload, ctx)

    async def _load(self, spec_location: str) -> Any:
        try:
            return await self._loader.load(spec_location)
        except ApiflowError as e:
            raise e.within("fetch")

    async def run(
        self,
        spec: Spec,
        payload: bytes,
        ctx: RunContext | None = None,
    ) -> bytes:
        """Run an already prepared spec, honoring the configured run timeout."""
        ctx = ctx or RunContext(max_item_attempts=self.settings.max_item_attempts)
        runner = PipelineRunner(spec, requester=self._requester)

        try:
            if self.settings.run_timeout is None:
                return await runner.run(payload, ctx)
            return await asyncio.wait_for(runner.run(payload, ctx), self.settings.run_timeout)
        except asyncio.TimeoutError as e:
            raise RunTimeout(
                f"run exceeded {self.settings.run_timeout}s"
            ).within("exec") from e
        except ApiflowError as e:
            raise e.within("exec")
        finally:
            logger.debug(f"[engine] audit: {ctx.to_audit_dict()}")
