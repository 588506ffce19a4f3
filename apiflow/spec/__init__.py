"""
Spec definitions for apiflow.

- schemas: pydantic models of the JSON document (wire format)
- models: immutable prepared Spec, Item and Step variants
"""

from .models import (
    PHASES,
    Filter,
    Item,
    ReturnIf,
    Spec,
    Split,
    Step,
    is_legacy_document,
    steps_from_document,
)
from .schemas import LegacySpecDocument, ReturnIfDocument, SpecItemDocument, StepDocument

__all__ = [
    "PHASES",
    "Spec",
    "Item",
    "Step",
    "Split",
    "Filter",
    "ReturnIf",
    "steps_from_document",
    "is_legacy_document",
    "SpecItemDocument",
    "StepDocument",
    "ReturnIfDocument",
    "LegacySpecDocument",
]
