"""
Error taxonomy for apiflow.

Every failure raised by the engine is an ApiflowError. Errors are never
recovered locally: each layer that lets one pass through prepends its own
label (item index, phase, step index) so the final message reads like a
path to the failure:

    exec: item 1: response: step 0: filter: run: jq: error ...

Usage:
    try:
        payload = await executor.execute(steps, payload, ctx)
    except ApiflowError as e:
        raise e.within("request")
"""

from __future__ import annotations


class ApiflowError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, *, context: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.context: list[str] = list(context or [])

    def within(self, label: str) -> ApiflowError:
        """Prepend a context label and return self for re-raising."""
        self.context.insert(0, label)
        return self

    def __str__(self) -> str:
        return ": ".join([*self.context, self.message])


class FetchError(ApiflowError):
    """Raised when a spec document or remote API cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        location: str | None = None,
        status_code: int | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.location = location
        self.status_code = status_code


class NetworkError(FetchError):
    """Raised on transport failure while calling a pipeline item's API."""


class DecodeError(ApiflowError):
    """Raised when a spec document or payload does not have the expected shape."""


class CompileError(ApiflowError):
    """Raised when a filter expression fails to compile."""

    def __init__(self, message: str, *, expression: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.expression = expression


class UnboundVariableError(DecodeError):
    """Raised when a variable-binding filter references a name the caller did not supply."""

    def __init__(self, message: str, *, expression: str = "", variable: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.expression = expression
        self.variable = variable


class FilterRuntimeError(ApiflowError):
    """Raised when a compiled filter produces an error while running."""


class StepError(ApiflowError):
    """Raised when a step cannot interpret its input payload."""


class StepTypeError(ApiflowError, TypeError):
    """Raised when a value expected to be boolean or textual has another shape."""


class InvalidURLError(ApiflowError, ValueError):
    """Raised when a resolved URL template cannot be parsed."""

    def __init__(self, message: str, *, url: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.url = url


class RunCancelled(ApiflowError):
    """Raised when a run's cancellation signal is observed."""


class RetryLimitExceeded(ApiflowError):
    """Raised when an item's retry loop exceeds the configured attempt cap."""

    def __init__(self, message: str, *, attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class RunTimeout(ApiflowError):
    """Raised when a run exceeds its deadline."""
