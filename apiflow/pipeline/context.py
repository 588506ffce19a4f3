"""
Run Context for apiflow.

The context carries request-scoped state for one pipeline run: the
variables bound into filters, the cancellation signal, the retry safety
bound, and an audit trail of HTTP calls and item timings.

A context belongs to exactly one run. Specs are shared between runs;
contexts never are.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from apiflow.errors import RunCancelled


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunContext:
    """
    Request-scoped context passed through the pipeline.

    Attributes:
        variables: Flat name -> value bindings for filters with bindVars
        cancel_event: When set, the run stops at the next check point
        max_item_attempts: Cap on attempts per item (None = unbounded)
    """

    execution_id: UUID = field(default_factory=uuid4)
    started_at: datetime = field(default_factory=_utc_now)

    variables: dict[str, Any] = field(default_factory=dict)
    cancel_event: asyncio.Event | None = None
    max_item_attempts: int | None = None

    # Audit trail
    http_calls: list[dict[str, Any]] = field(default_factory=list)
    item_timings: dict[int, float] = field(default_factory=dict)
    item_attempts: dict[int, int] = field(default_factory=dict)
    short_circuited_at: int | None = None

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the run started."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise RunCancelled if the cancellation signal has been set."""
        if self.cancelled:
            raise RunCancelled("run cancelled")

    def record_call(self, method: str, url: str, status_code: int, size: int) -> None:
        """Record an outbound HTTP call."""
        self.http_calls.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "url": url,
            "status_code": status_code,
            "bytes": size,
            "elapsed_ms": self.elapsed_ms,
        })

    def record_timing(self, item_index: int, duration_ms: float) -> None:
        self.item_timings[item_index] = duration_ms

    def record_attempt(self, item_index: int) -> int:
        """Count an attempt of an item, returning the attempt number (1-based)."""
        attempts = self.item_attempts.get(item_index, 0) + 1
        self.item_attempts[item_index] = attempts
        return attempts

    def to_audit_dict(self) -> dict[str, Any]:
        """Generate audit record for logging."""
        return {
            "execution_id": str(self.execution_id),
            "started_at": self.started_at.isoformat(),
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "duration_ms": self.elapsed_ms,
            "http_calls": list(self.http_calls),
            "item_timings": dict(self.item_timings),
            "item_attempts": dict(self.item_attempts),
            "short_circuited_at": self.short_circuited_at,
        }
