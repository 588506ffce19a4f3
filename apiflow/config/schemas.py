"""
Configuration Schemas for apiflow.

Pydantic model for process-level settings. Values come from `APIFLOW_*`
environment variables; see `apiflow.app.dependencies.get_settings`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class AppSettings(BaseModel):
    """
    Application settings model.

    Used for type-safe settings access by the engine and the front end.
    """

    # Service identity
    service_name: str = "apiflow"
    environment: str = "development"
    debug: bool = False
    log_level: str = Field("INFO", description="Root logging level")

    # Front end
    host: str = "0.0.0.0"
    port: int = Field(8080, ge=1, le=65535)

    # Outbound HTTP
    http_timeout: float = Field(30.0, gt=0, description="Per-call timeout for item requests")
    spec_fetch_timeout: float = Field(10.0, gt=0, description="Timeout for fetching spec documents")

    # Run limits (None = unbounded)
    run_timeout: float | None = Field(None, gt=0, description="Deadline for a whole run in seconds")
    max_item_attempts: int | None = Field(
        None, ge=1, description="Safety cap on retry-loop attempts per item"
    )

    # Spec sources
    allow_local_specs: bool = Field(False, description="Allow file:// spec locations")
