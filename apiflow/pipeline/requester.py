"""
HTTP Requester for apiflow.

Turns an item's URL template plus the RequestParams produced by its
request phase into one outbound HTTP call, and returns the response body.

Request Construction:
    1. Substitute `$key` path placeholders (longest key first, so `$id`
       never clobbers part of `$idx`)
    2. Parse the result as a URL
    3. Append query values to any the template already has
    4. Method: explicit, else POST with a body, else GET
    5. Attach body and headers

The status code is never inspected: a 404 page flows into the response
steps exactly like a 200 body would.

HTTP Client Lifecycle:
    A caller-supplied httpx.AsyncClient is reused and never closed.
    Otherwise a fresh client is created for the call and closed afterward.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from apiflow.errors import DecodeError, InvalidURLError, NetworkError

from .steps import decode_json, encode_json

if TYPE_CHECKING:
    from .context import RunContext

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class RequestParams(BaseModel):
    """
    Shape of one outbound HTTP call, decoded from a request phase payload.

    Every field is optional; JSON null is treated as empty.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    path: dict[str, str] = Field(default_factory=dict)
    query: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    method: str = ""

    @field_validator("path", "query", "headers", mode="before")
    @classmethod
    def _null_map(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("body", "method", mode="before")
    @classmethod
    def _null_str(cls, value: Any) -> Any:
        return "" if value is None else value

    @classmethod
    def from_payload(cls, payload: bytes) -> RequestParams:
        """
        Decode a request phase payload.

        Raises:
            DecodeError: If the payload is empty or not a JSON object of this shape
        """
        if payload.strip() == b"null":
            return cls()
        try:
            return cls.model_validate_json(payload)
        except ValidationError as e:
            raise DecodeError(f"request params: {e}") from e

    @classmethod
    def form_post(cls, payload: bytes) -> RequestParams:
        """
        Build a form-encoded POST from a legacy request phase payload.

        A JSON object is urlencoded; a JSON string is sent as-is; anything
        that is not JSON is treated as an already-encoded body.
        """
        try:
            value = decode_json(payload)
        except DecodeError:
            body = payload.decode("utf-8", errors="replace")
        else:
            if isinstance(value, dict):
                body = urlencode({k: _form_value(v) for k, v in value.items()})
            elif isinstance(value, str):
                body = value
            elif value is None:
                body = ""
            else:
                raise DecodeError(
                    f"form body: expected object or string, got {type(value).__name__}"
                )

        return cls(
            body=body,
            method="POST",
            headers={"Content-Type": FORM_CONTENT_TYPE},
        )

    def resolved_method(self) -> str:
        if self.method:
            return self.method.upper()
        return "POST" if self.body else "GET"


def _form_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return encode_json(value).decode("utf-8")


def substitute_path(url_template: str, path: dict[str, str]) -> str:
    """Replace every `$key` in the template, longest keys first."""
    for key in sorted(path, key=len, reverse=True):
        url_template = url_template.replace(f"${key}", path[key])
    return url_template


def build_url(url_template: str, params: RequestParams) -> httpx.URL:
    """
    Resolve the final request URL.

    Raises:
        InvalidURLError: If the substituted template is not an absolute URL
    """
    raw = substitute_path(url_template, params.path)
    try:
        url = httpx.URL(raw)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidURLError(f"parse url: {e}", url=raw) from e

    if not url.scheme or not url.host:
        raise InvalidURLError(f"parse url: not an absolute URL: {raw!r}", url=raw)

    query = url.params
    for key, value in params.query.items():
        query = query.add(key, value)
    return url.copy_with(params=query)


class HttpRequester:
    """
    Issues the HTTP call of a pipeline item.

    Example:
        requester = HttpRequester(timeout=30.0)
        body = await requester.fetch(
            "https://api.example.com/users/$id",
            RequestParams(path={"id": "42"}),
            ctx,
        )
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._timeout = timeout
        self._shared_client = http_client

    async def fetch(
        self,
        url_template: str,
        params: RequestParams,
        ctx: RunContext,
    ) -> bytes:
        """
        Perform the call and return the full response body.

        Raises:
            InvalidURLError: If the URL cannot be built
            DecodeError: If headers or body cannot be encoded for the wire
            NetworkError: On any httpx failure (connect, timeout, protocol, content decoding)
        """
        url = build_url(url_template, params)
        method = params.resolved_method()
        try:
            headers = httpx.Headers(list(params.headers.items()))
            content = params.body.encode("utf-8") if params.body else None
        except UnicodeEncodeError as e:
            raise DecodeError(f"encode request: {e}") from e

        ctx.raise_if_cancelled()

        if self._shared_client is not None:
            client = self._shared_client
            close_after = False
        else:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_after = True

        logger.info(f"[requester] {method} {url}")
        if content:
            logger.debug(f"[requester] body: {content[:500]!r}")

        try:
            response = await client.request(
                method,
                url,
                content=content,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning(f"[requester] {method} {url} failed: {e!r}")
            raise NetworkError(f"{method} {url}: {e!r}", location=str(url)) from e
        finally:
            if close_after:
                await client.aclose()

        body = response.content
        logger.info(f"[requester] Response: {response.status_code} ({len(body)} bytes)")
        ctx.record_call(method, str(url), response.status_code, len(body))
        return body
