"""VSchema runtime module

Scope lifecycle wiring and node directive evaluation.
"""

from .directives import (
    ForExpression,
    LoopFrame,
    ModelBinding,
    expand_for,
    is_visible,
    parse_for_expression,
    parse_model,
    read_model,
    should_render,
    write_model,
)
from .scope import Scope

__all__ = [
    "ForExpression",
    "LoopFrame",
    "ModelBinding",
    "expand_for",
    "is_visible",
    "parse_for_expression",
    "parse_model",
    "read_model",
    "should_render",
    "write_model",
    "Scope",
]
