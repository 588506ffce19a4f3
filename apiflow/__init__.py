"""
apiflow - Declarative pipelines of HTTP API calls glued together with jq.

A spec is a JSON document listing items. Each item is one HTTP call
wrapped by three phases of steps (split, jq filter, returnIf):

- **request**: shape the item input into method, path, query, headers, body
- **response**: reshape the response body
- **retry**: decide whether to run the item again

The output of one item is the input of the next. A `returnIf` step ends
the whole run early with a fixed value.

Quick Start:
    >>> from apiflow import Engine
    >>> engine = Engine()
    >>> output = await engine.execute(
    ...     "https://specs.example.com/weather.json",
    ...     {"query": {"city": "Oslo"}},
    ... )
"""

__version__ = "0.1.0"
__license__ = "MIT"

from apiflow.errors import (
    ApiflowError,
    CompileError,
    DecodeError,
    FetchError,
    FilterRuntimeError,
    InvalidURLError,
    NetworkError,
    RetryLimitExceeded,
    RunCancelled,
    RunTimeout,
    StepError,
    StepTypeError,
    UnboundVariableError,
)
from apiflow.filters import CompiledFilter, FilterCompiler
from apiflow.pipeline import PipelineRunner, RequestParams, RunContext
from apiflow.runtime import Engine
from apiflow.spec import Filter, Item, ReturnIf, Spec, Split

__all__ = [
    "__version__",
    "__license__",
    # Entry point
    "Engine",
    # Model
    "Spec",
    "Item",
    "Split",
    "Filter",
    "ReturnIf",
    "RequestParams",
    # Execution
    "PipelineRunner",
    "RunContext",
    "FilterCompiler",
    "CompiledFilter",
    # Errors
    "ApiflowError",
    "FetchError",
    "NetworkError",
    "DecodeError",
    "CompileError",
    "FilterRuntimeError",
    "StepError",
    "StepTypeError",
    "UnboundVariableError",
    "InvalidURLError",
    "RunCancelled",
    "RetryLimitExceeded",
    "RunTimeout",
]
