"""
apiflow Runtime

Loading specs from their locations and running them end to end.
"""

from .engine import Engine, build_loader, initial_payload, is_request_params
from .loaders import (
    CompositeSpecLoader,
    FileSpecLoader,
    HttpSpecLoader,
    MemorySpecLoader,
    SpecLoader,
)

__all__ = [
    "Engine",
    "build_loader",
    "is_request_params",
    "initial_payload",
    "SpecLoader",
    "HttpSpecLoader",
    "FileSpecLoader",
    "MemorySpecLoader",
    "CompositeSpecLoader",
]
