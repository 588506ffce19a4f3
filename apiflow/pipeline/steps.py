"""
Step Executor for apiflow.

Runs one ordered phase of steps over a payload. The payload is the raw
bytes threaded between steps:

- Split reads it as UTF-8 text
- Filter decodes it as JSON (empty bytes decode to null)
- ReturnIf evaluates a condition against it

Every step writes its result back as bytes, so the next step (or the HTTP
requester) sees exactly what the previous one produced.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from apiflow.errors import ApiflowError, DecodeError, StepError, StepTypeError
from apiflow.spec.models import Filter, ReturnIf, Split

if TYPE_CHECKING:
    from apiflow.spec.models import Spec, Step

    from .context import RunContext

logger = logging.getLogger(__name__)

_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def encode_json(value: Any) -> bytes:
    """Compact UTF-8 JSON encoding used for every payload."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_json(payload: bytes) -> Any:
    """Decode a JSON payload; empty payloads decode to None."""
    if not payload:
        return None
    try:
        return json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"unmarshal: {e}") from e


def parse_bool(payload: bytes) -> bool:
    """
    Parse a payload as a boolean literal.

    Accepts 1, t, T, TRUE, true, True and 0, f, F, FALSE, false, False.

    Raises:
        StepTypeError: For anything else
    """
    text = payload.decode("utf-8", errors="replace")
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise StepTypeError(f"parse: invalid boolean {text[:80]!r}")


@dataclass(frozen=True, slots=True)
class StepsResult:
    """Outcome of a phase: the payload and whether the run must stop here."""

    payload: bytes
    return_now: bool = False


class StepExecutor:
    """
    Executes step phases against a prepared spec's compiled filters.

    Example:
        executor = StepExecutor(spec)
        result = await executor.execute(item.response_steps, body, ctx)
        if result.return_now:
            ...
    """

    def __init__(self, spec: Spec):
        self._spec = spec

    async def execute(
        self,
        steps: Sequence[Step],
        payload: bytes,
        ctx: RunContext,
    ) -> StepsResult:
        """
        Run steps strictly in order.

        The first failing step aborts the phase; nothing is retried.

        Returns:
            StepsResult with the transformed payload, or the ReturnIf value
            and return_now=True when a condition fired
        """
        for i, step in enumerate(steps):
            ctx.raise_if_cancelled()
            try:
                if isinstance(step, Split):
                    payload = self._split(step, payload)
                elif isinstance(step, Filter):
                    payload = self._filter(step, payload, ctx)
                elif isinstance(step, ReturnIf):
                    if self._condition(step, payload, ctx):
                        logger.debug(f"[steps] returnIf fired at step {i}: {step.condition!r}")
                        return StepsResult(
                            payload=self._return_value(step),
                            return_now=True,
                        )
                else:
                    raise StepError(f"unknown step type {type(step).__name__}")
            except ApiflowError as e:
                raise e.within(f"step {i}")

        return StepsResult(payload=payload)

    def _split(self, step: Split, payload: bytes) -> bytes:
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StepError(f"payload is not text: {e}").within("split") from e
        return encode_json(text.split(step.delimiter))

    def _filter(self, step: Filter, payload: bytes, ctx: RunContext) -> bytes:
        try:
            result = self._run(step.expression, payload, ctx, step.bind_vars)
        except ApiflowError as e:
            raise e.within("jq")

        if step.raw_output and isinstance(result, str):
            output = result.encode("utf-8")
        else:
            output = encode_json(result)

        logger.debug(f"[steps] jq output: {output[:500]!r}")
        return output

    def _condition(self, step: ReturnIf, payload: bytes, ctx: RunContext) -> bool:
        try:
            result = self._run(step.condition, payload, ctx, step.bind_vars)
        except ApiflowError as e:
            raise e.within("exec").within("if").within("returnIf")
        try:
            return parse_bool(encode_json(result))
        except ApiflowError as e:
            raise e.within("if").within("returnIf")

    def _return_value(self, step: ReturnIf) -> bytes:
        try:
            return encode_json(step.return_value)
        except (TypeError, ValueError) as e:
            raise StepError(f"marshal: {e}").within("return").within("returnIf") from e

    def _run(self, expression: str, payload: bytes, ctx: RunContext, bind_vars: bool) -> Any:
        value = decode_json(payload)
        program = self._spec.program(expression, bind_vars)
        return program.first(value, ctx.variables if bind_vars else None)
