"""
Node Directives

Evaluation of the structural directives a node may declare:
- for: "item in items" / "(item, index) in items"
- if / show: conditional rendering and visibility
- key: per-item identity inside a loop (defaults to the index)
- model: two-way binding with .trim / .number / .lazy modifiers

Loops are expanded first; `if` is then evaluated per item, so the loop
variables are visible to the condition.
"""

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from ..exceptions.errors import ValidationError
from ..executor.types import ExecutionContext
from ..expression.builtins import parse_float

logger = logging.getLogger(__name__)

TUPLE_FOR_PATTERN = re.compile(r"^\s*\(\s*([\w$]+)\s*,\s*([\w$]+)\s*\)\s+(?:in|of)\s+(.+)$")
SIMPLE_FOR_PATTERN = re.compile(r"^\s*([\w$]+)\s+(?:in|of)\s+(.+)$")
MODEL_MODIFIERS = ("trim", "number", "lazy")


@dataclass(frozen=True)
class ForExpression:
    """Parsed `for` directive"""

    item_name: str
    index_name: Optional[str]
    list_expression: str


@dataclass
class LoopFrame:
    """
    One expanded loop iteration

    Attributes:
        item: Current element
        index: Position in the evaluated list
        key: Evaluated `key` directive, or the index
        context: Execution context with the loop variables bound
    """

    item: Any
    index: int
    key: Any
    context: ExecutionContext


@dataclass(frozen=True)
class ModelBinding:
    """Parsed `model` directive"""

    path: str
    trim: bool = False
    number: bool = False
    lazy: bool = False


def parse_for_expression(expression: str) -> ForExpression:
    """
    Parse a `for` directive

    Raises:
        ValidationError: Neither `item in list` nor `(item, index) in list`
    """
    match = TUPLE_FOR_PATTERN.match(expression)
    if match:
        return ForExpression(match.group(1), match.group(2), match.group(3).strip())

    match = SIMPLE_FOR_PATTERN.match(expression)
    if match:
        return ForExpression(match.group(1), None, match.group(2).strip())

    raise ValidationError(f"Invalid for expression: {expression!r}", {"for": expression})


def _strip_braces(text: str) -> str:
    text = text.strip()
    if text.startswith("{{") and text.endswith("}}"):
        return text[2:-2].strip()
    return text


def expand_for(
    expression: Union[str, ForExpression],
    context: ExecutionContext,
    key: Optional[str] = None,
    condition: Optional[Union[str, bool]] = None,
) -> List[LoopFrame]:
    """
    Expand a loop into frames, then filter them with `condition`

    Args:
        expression: `for` directive text or parsed form
        context: Scope execution context
        key: `key` directive (template-aware)
        condition: `if` directive evaluated per item

    Returns:
        Frames in list order; a list expression that is not an array
        yields no frames
    """
    parsed = expression if isinstance(expression, ForExpression) else parse_for_expression(expression)
    evaluator = context.evaluator

    result = evaluator.evaluate(_strip_braces(parsed.list_expression), context)
    if not result.success:
        logger.warning(f"for list {parsed.list_expression!r} failed: {result.error}")
        return []
    if not isinstance(result.value, (list, tuple)):
        logger.warning(f"for list {parsed.list_expression!r} did not evaluate to an array")
        return []

    frames = []
    for index, item in enumerate(result.value):
        bindings = {parsed.item_name: item, "$item": item, "$index": index}
        if parsed.index_name:
            bindings[parsed.index_name] = index
        frame_context = context.derive(bindings)

        frame_key = evaluator.evaluate_template(key, frame_context) if key else index
        if condition is not None and not should_render(condition, frame_context):
            continue
        frames.append(LoopFrame(item=item, index=index, key=frame_key, context=frame_context))

    return frames


def should_render(condition: Optional[Union[str, bool]], context: ExecutionContext) -> bool:
    """`if` directive; an absent condition renders"""
    if condition is None:
        return True
    return context.evaluator.evaluate_condition(condition, context)


def is_visible(show: Optional[Union[str, bool]], context: ExecutionContext) -> bool:
    """`show` directive; an absent condition is visible"""
    if show is None:
        return True
    return context.evaluator.evaluate_condition(show, context)


def parse_model(model: Union[str, Mapping, ModelBinding]) -> ModelBinding:
    """
    Parse a `model` directive

    Accepts "form.name", "form.name.trim.number" (trailing modifier
    segments) or {"path": "form.name", "modifiers": "trim number"}.

    Raises:
        ValidationError: Empty path
    """
    if isinstance(model, ModelBinding):
        return model

    if isinstance(model, Mapping):
        path = str(model.get("path") or model.get("value") or "").strip()
        modifiers = set(re.split(r"[\s,.]+", str(model.get("modifiers") or "")))
    else:
        parts = str(model).strip().split(".")
        modifiers = set()
        while len(parts) > 1 and parts[-1] in MODEL_MODIFIERS:
            modifiers.add(parts.pop())
        path = ".".join(parts)

    if not path:
        raise ValidationError("Model directive requires a path", {"model": model})

    return ModelBinding(
        path=_strip_braces(path),
        trim="trim" in modifiers,
        number="number" in modifiers,
        lazy="lazy" in modifiers,
    )


def read_model(binding: ModelBinding, context: ExecutionContext) -> Any:
    """Current bound value; unset values read as ''"""
    value = context.get_state_value(binding.path)
    return "" if value is None else value


def _event_value(event: Any) -> Any:
    if isinstance(event, Mapping) and isinstance(event.get("target"), Mapping):
        target = event["target"]
        if target.get("type") == "checkbox" or ("checked" in target and "value" not in target):
            return bool(target.get("checked"))
        return target.get("value")
    return event


def write_model(
    binding: ModelBinding, context: ExecutionContext, event: Any, trigger: str = "input"
) -> bool:
    """
    Write an input value back to the bound path

    Args:
        binding: Parsed model directive
        context: Scope execution context
        event: New value or a host event `{"target": {"value": ...}}`
        trigger: "input" or "change"; lazy bindings only write on change

    Returns:
        False when the write was skipped
    """
    if binding.lazy and trigger != "change":
        return False

    value = _event_value(event)
    if binding.trim and isinstance(value, str):
        value = value.strip()
    if binding.number and isinstance(value, str):
        number = parse_float(value)
        if not (isinstance(number, float) and math.isnan(number)):
            value = number

    context.set_state_value(binding.path, value)
    return True
