"""
Item Runner for apiflow.

Runs one pipeline item through its phases:

    PREP ──> CALL ──> POST ──> RETRY-CHECK ──> DONE
     │                  │           │
     └── returnIf ──────┴───────────┴──> DONE (return_now)

    RETRY-CHECK true  -> back to PREP with the item's ORIGINAL input
    RETRY-CHECK false -> DONE with POST's output

The retry loop has no backoff and, by default, no attempt cap: a spec
whose retry condition never turns false loops until the run is cancelled.
Every iteration checks the run's cancellation signal before doing any
work, and `RunContext.max_item_attempts` bounds the loop when set.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from apiflow.errors import ApiflowError, RetryLimitExceeded

from .requester import HttpRequester, RequestParams
from .steps import StepExecutor, StepsResult, parse_bool

if TYPE_CHECKING:
    from apiflow.spec.models import Item, Spec

    from .context import RunContext

logger = logging.getLogger(__name__)


class ItemRunner:
    """
    Orchestrates request steps, the HTTP call, response steps and retries.

    Example:
        runner = ItemRunner(spec, requester=HttpRequester())
        result = await runner.run(spec.items[0], payload, ctx, index=0)
    """

    def __init__(
        self,
        spec: Spec,
        *,
        requester: HttpRequester | None = None,
        executor: StepExecutor | None = None,
    ):
        self._spec = spec
        self._requester = requester or HttpRequester()
        self._executor = executor or StepExecutor(spec)

    async def run(
        self,
        item: Item,
        payload: bytes,
        ctx: RunContext,
        *,
        index: int = 0,
    ) -> StepsResult:
        """
        Run an item to completion.

        Args:
            item: The item to run
            payload: Item input (previous item's output, or the run input)
            ctx: Run context
            index: Item position, used for audit and attempt counting

        Returns:
            StepsResult with the item output; return_now=True means the
            whole pipeline must stop with this payload
        """
        while True:
            # Yield to the loop so task cancellation lands between attempts
            await asyncio.sleep(0)
            ctx.raise_if_cancelled()

            attempt = ctx.record_attempt(index)
            if ctx.max_item_attempts is not None and attempt > ctx.max_item_attempts:
                raise RetryLimitExceeded(
                    f"retry: gave up after {ctx.max_item_attempts} attempts",
                    attempts=ctx.max_item_attempts,
                )

            logger.debug(f"[item] item {index} attempt {attempt} input: {payload[:500]!r}")

            output, retry = await self._attempt(item, payload, ctx)
            if not retry:
                return output

            logger.info(f"[item] item {index}: retry condition true, retrying")

    async def _attempt(
        self,
        item: Item,
        payload: bytes,
        ctx: RunContext,
    ) -> tuple[StepsResult, bool]:
        """Run one pass of the item; the flag says whether to go again."""
        request = await self._phase("request", item, payload, ctx)
        if request.return_now:
            return request, False

        try:
            if item.form_encoded:
                params = RequestParams.form_post(request.payload)
            else:
                params = RequestParams.from_payload(request.payload)
        except ApiflowError as e:
            raise e.within("request params")

        try:
            response = await self._requester.fetch(item.url_template, params, ctx)
        except ApiflowError as e:
            raise e.within("fetch")

        output = await self._phase("response", item, response, ctx)
        if output.return_now or not item.retry_steps:
            return output, False

        decision = await self._phase("retry", item, output.payload, ctx)
        if decision.return_now:
            return decision, False

        try:
            retry = parse_bool(decision.payload)
        except ApiflowError as e:
            raise e.within("output").within("retry")

        return output, retry

    async def _phase(
        self,
        name: str,
        item: Item,
        payload: bytes,
        ctx: RunContext,
    ) -> StepsResult:
        try:
            return await self._executor.execute(item.phase(name), payload, ctx)
        except ApiflowError as e:
            raise e.within(name)
