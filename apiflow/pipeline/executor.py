"""
Pipeline Runner for apiflow.

Threads a payload through the items of a prepared spec: each item's
output is the next item's input. Any item that short-circuits ends the
run immediately with its payload; later items never run.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from apiflow.errors import ApiflowError

from .context import RunContext
from .item import ItemRunner
from .requester import HttpRequester

if TYPE_CHECKING:
    from apiflow.spec.models import Spec

logger = logging.getLogger(__name__)


class PipelineRunner:
    """
    Runs a prepared Spec.

    A runner holds no per-run state, so one instance may serve many
    concurrent runs of the same spec.

    Example:
        runner = PipelineRunner(spec)
        output = await runner.run(b'{"query": {"city": "Oslo"}}')
    """

    def __init__(
        self,
        spec: Spec,
        *,
        requester: HttpRequester | None = None,
    ):
        self.spec = spec
        self._items = ItemRunner(spec, requester=requester)

    async def run(
        self,
        payload: bytes,
        ctx: RunContext | None = None,
    ) -> bytes:
        """
        Execute every item in order.

        Args:
            payload: Initial payload (JSON bytes)
            ctx: Run context (created if not provided)

        Returns:
            The final payload. With zero items, the input unchanged.
        """
        if ctx is None:
            ctx = RunContext()

        logger.info(
            f"[pipeline] Starting: execution_id={str(ctx.execution_id)[:8]}..., "
            f"spec={self.spec.location or '<inline>'}, items={len(self.spec.items)}"
        )

        for i, item in enumerate(self.spec.items):
            start_time = time.perf_counter()
            try:
                result = await self._items.run(item, payload, ctx, index=i)
            except ApiflowError as e:
                raise e.within(f"item {i}")
            finally:
                ctx.record_timing(i, (time.perf_counter() - start_time) * 1000)

            payload = result.payload

            if result.return_now:
                ctx.short_circuited_at = i
                logger.info(f"[pipeline] Item {i} returned early, skipping remaining items")
                break

        logger.info(
            f"[pipeline] Complete: execution_id={str(ctx.execution_id)[:8]}..., "
            f"duration={ctx.elapsed_ms:.1f}ms, http_calls={len(ctx.http_calls)}"
        )
        return payload

    def __repr__(self) -> str:
        return f"PipelineRunner(spec={self.spec.location!r}, items={len(self.spec.items)})"
