"""
apiflow Pipeline Execution

Core Components:
- StepExecutor: Runs one phase of Split / Filter / ReturnIf steps
- HttpRequester: Builds and issues an item's HTTP call
- ItemRunner: request -> call -> response -> retry for one item
- PipelineRunner: Threads the payload through all items
- RunContext: Per-run variables, cancellation and audit trail
"""

from .context import RunContext
from .executor import PipelineRunner
from .item import ItemRunner
from .requester import (
    FORM_CONTENT_TYPE,
    HttpRequester,
    RequestParams,
    build_url,
    substitute_path,
)
from .steps import StepExecutor, StepsResult, decode_json, encode_json, parse_bool

__all__ = [
    "RunContext",
    "PipelineRunner",
    "ItemRunner",
    "HttpRequester",
    "RequestParams",
    "FORM_CONTENT_TYPE",
    "build_url",
    "substitute_path",
    "StepExecutor",
    "StepsResult",
    "decode_json",
    "encode_json",
    "parse_bool",
]
