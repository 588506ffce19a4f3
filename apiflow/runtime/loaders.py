"""
Spec Loaders.

Implementations of the SpecLoader protocol for different sources.

Design Principle:
    The engine only consumes decoded documents; loaders abstract away WHERE
    a spec document comes from.
    - Production: HttpSpecLoader (plain GET)
    - Development: FileSpecLoader (local JSON files)
    - Testing: MemorySpecLoader (in-memory)

Usage:
    loader = CompositeSpecLoader(
        http=HttpSpecLoader(timeout=10.0),
        file=FileSpecLoader("specs/"),
    )
    document = await loader.load("https://specs.example.com/weather.json")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
from urllib.parse import unquote, urlparse

import httpx
import yaml

from apiflow.errors import DecodeError, FetchError

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")


def decode_document(raw: bytes, location: str) -> Any:
    """
    Decode a spec document.

    Locations ending in .yaml or .yml are read as YAML, everything else
    as JSON.

    Raises:
        DecodeError: If the bytes do not parse
    """
    if urlparse(location).path.lower().endswith(_YAML_SUFFIXES):
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise DecodeError(f"spec at {location} is not YAML: {e}") from e

    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"spec at {location} is not JSON: {e}") from e


@runtime_checkable
class SpecLoader(Protocol):
    """Anything that can turn a spec location into a decoded JSON document."""

    async def load(self, location: str) -> Any:
        ...


class HttpSpecLoader:
    """
    Fetches spec documents with a plain HTTP GET.

    Like the item requester, a caller-supplied client is reused and never
    closed; otherwise a fresh client is created per load.
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._timeout = timeout
        self._shared_client = http_client

    async def load(self, location: str) -> Any:
        """
        GET the document and decode it as JSON.

        Raises:
            FetchError: If the request cannot be made
            DecodeError: If the body is not JSON
        """
        if self._shared_client is not None:
            client = self._shared_client
            close_after = False
        else:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_after = True

        try:
            response = await client.get(location)
        except httpx.InvalidURL as e:
            raise FetchError(f"invalid spec url: {e}", location=location) from e
        except httpx.HTTPError as e:
            logger.warning(f"[spec_loader] GET {location} failed: {e!r}")
            raise FetchError(f"GET {location}: {e!r}", location=location) from e
        finally:
            if close_after:
                await client.aclose()

        logger.info(f"[spec_loader] GET {location}: {response.status_code}")

        return decode_document(response.content, location)


class FileSpecLoader:
    """
    Loads spec documents from local JSON or YAML files.

    Accepts `file://` URLs and plain paths. Relative paths resolve against
    `base_dir`.

    Usage:
        loader = FileSpecLoader("specs/")
        document = await loader.load("weather.json")
    """

    def __init__(self, base_dir: str | Path = "."):
        self._base_dir = Path(base_dir)

    def resolve(self, location: str) -> Path:
        if location.startswith("file://"):
            location = unquote(urlparse(location).path)
        path = Path(location)
        if not path.is_absolute():
            path = self._base_dir / path
        return path

    async def load(self, location: str) -> Any:
        path = self.resolve(location)
        try:
            with path.open("rb") as f:
                raw = f.read()
        except OSError as e:
            raise FetchError(f"read {path}: {e}", location=location) from e

        logger.info(f"[spec_loader] Loaded {path}")

        return decode_document(raw, str(path))


class MemorySpecLoader:
    """
    In-memory spec loader for testing.

    Usage:
        loader = MemorySpecLoader({"mem://weather": [{"url": "..."}]})
        loader.add("mem://other", {...})
    """

    def __init__(self, documents: dict[str, Any] | None = None):
        self._documents: dict[str, Any] = dict(documents or {})
        self.loads: list[str] = []

    def add(self, location: str, document: Any) -> None:
        self._documents[location] = document

    async def load(self, location: str) -> Any:
        self.loads.append(location)
        if location not in self._documents:
            raise FetchError(f"no spec registered at {location}", location=location)
        return self._documents[location]

    def clear(self) -> None:
        self._documents.clear()
        self.loads.clear()


class CompositeSpecLoader:
    """
    Dispatches to a loader by location scheme.

    - http:// and https:// go to the HTTP loader
    - file:// goes to the file loader, when one is configured
    """

    def __init__(
        self,
        *,
        http: SpecLoader | None = None,
        file: SpecLoader | None = None,
    ):
        self._http = http or HttpSpecLoader()
        self._file = file

    async def load(self, location: str) -> Any:
        scheme = urlparse(location).scheme.lower()
        if scheme in ("http", "https"):
            return await self._http.load(location)
        if scheme == "file":
            if self._file is None:
                raise FetchError("local spec files are disabled", location=location)
            return await self._file.load(location)
        raise FetchError(f"unsupported spec location scheme {scheme!r}", location=location)
