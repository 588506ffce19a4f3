"""
Dependency Injection for apiflow.

Provides singleton instances of settings, the shared HTTP client and the
engine used by the front end.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Optional

import httpx

from apiflow.config.schemas import AppSettings
from apiflow.runtime import Engine

logger = logging.getLogger(__name__)


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name, "")
    return float(value) if value else None


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name, "")
    return int(value) if value else None


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        # Service
        service_name=os.getenv("APIFLOW_SERVICE_NAME", "apiflow"),
        environment=os.getenv("APIFLOW_ENVIRONMENT", "development"),
        debug=os.getenv("APIFLOW_DEBUG", "false").lower() == "true",
        log_level=os.getenv("APIFLOW_LOG_LEVEL", "INFO").upper(),
        # Front end
        host=os.getenv("APIFLOW_HOST", "0.0.0.0"),
        port=int(os.getenv("APIFLOW_PORT", "8080")),
        # Outbound HTTP
        http_timeout=float(os.getenv("APIFLOW_HTTP_TIMEOUT", "30")),
        spec_fetch_timeout=float(os.getenv("APIFLOW_SPEC_FETCH_TIMEOUT", "10")),
        # Run limits
        run_timeout=_optional_float("APIFLOW_RUN_TIMEOUT"),
        max_item_attempts=_optional_int("APIFLOW_MAX_ITEM_ATTEMPTS"),
        # Spec sources
        allow_local_specs=os.getenv("APIFLOW_ALLOW_LOCAL_SPECS", "false").lower() == "true",
    )


# Global instances (initialized on startup)
_http_client: Optional[httpx.AsyncClient] = None
_engine: Optional[Engine] = None


async def initialize_services() -> None:
    """Create the shared HTTP client and engine."""
    global _http_client, _engine

    settings = get_settings()
    _http_client = httpx.AsyncClient(timeout=settings.http_timeout)
    _engine = Engine(settings=settings, http_client=_http_client)
    logger.info(
        f"Engine ready (http_timeout={settings.http_timeout}s, "
        f"run_timeout={settings.run_timeout}, max_item_attempts={settings.max_item_attempts})"
    )


async def shutdown_services() -> None:
    """Close the shared HTTP client."""
    global _http_client, _engine

    if _http_client is not None:
        await _http_client.aclose()
    _http_client = None
    _engine = None


def get_engine() -> Engine:
    """
    Get the engine singleton.

    Falls back to an engine with per-call HTTP clients when the app
    lifespan has not run (e.g. in scripts).
    """
    global _engine
    if _engine is None:
        _engine = Engine(settings=get_settings())
    return _engine


def set_engine(engine: Optional[Engine]) -> None:
    """Replace the engine singleton (tests)."""
    global _engine
    _engine = engine
