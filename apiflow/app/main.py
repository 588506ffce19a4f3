"""
apiflow - HTTP front end.

FastAPI application that runs a spec per request:

    GET /<spec-url>?city=Oslo&units=metric

The path (or a `spec` query parameter, which wins) is the spec location;
the remaining query parameters become the run's `query` params. The
response is the JSON output of the run, or the error text with status 400.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from apiflow import __version__
from apiflow.app.dependencies import (
    get_engine,
    get_settings,
    initialize_services,
    shutdown_services,
)
from apiflow.errors import ApiflowError

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting apiflow services...")
    await initialize_services()

    yield

    logger.info("Shutting down apiflow services...")
    try:
        await shutdown_services()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


app = FastAPI(
    title="apiflow",
    description="Run declarative HTTP API pipelines described by JSON specs",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {
        "service": settings.service_name,
        "version": __version__,
        "status": "healthy",
    }


@app.get("/{spec_location:path}", tags=["specs"])
async def run_spec(spec_location: str, request: Request) -> Response:
    """Run the spec at the given location with the query string as params."""
    query = {key: request.query_params.getlist(key)[0] for key in request.query_params}
    location = query.pop("spec", None) or spec_location

    if not location:
        return PlainTextResponse("missing spec location\n", status_code=400)

    logger.debug(f"[app] run spec={location} query={query}")

    try:
        output = await get_engine().execute(location, {"query": query})
    except ApiflowError as e:
        logger.error(f"[app] spec {location} failed: {e}", exc_info=True)
        return PlainTextResponse(f"{e}\n", status_code=400)

    return Response(
        content=output + b"\n",
        media_type="application/json; charset=utf-8",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "apiflow.app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
