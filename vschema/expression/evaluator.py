"""
Expression Evaluator

Evaluates `{{ }}` template fragments and bare expressions against a scope:
- Security deny-list runs on raw text before anything is parsed
- Compiled expressions are cached (LRU) per (parameter names, source)
- Failures are returned as EvaluationResult values, never raised,
  except security violations reached through templates
"""

import logging
import re
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Optional, Set, Tuple

from ..exceptions.errors import (
    EvaluationError,
    ExpressionError,
    ExpressionSyntaxError,
    SecurityViolation,
)
from .ast import Node, collect_reads
from .builtins import create_builtins
from .parser import parse_expression
from .security import check_security, is_denied_identifier
from .values import is_truthy, to_js_string

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r"\{\{\s*([\s\S]*?)\s*\}\}")

DEFAULT_CACHE_SIZE = 1000
MAX_DEPTH_MESSAGE = "Maximum expression depth exceeded"


def is_template_expression(value: Any) -> bool:
    """Check whether a value is a string containing a `{{ }}` span"""
    return isinstance(value, str) and TEMPLATE_PATTERN.search(value) is not None


def parse_template(text: str) -> List[str]:
    """Extract the trimmed expression sources of every `{{ }}` span, in order"""
    if not isinstance(text, str):
        return []
    return [match.group(1).strip() for match in TEMPLATE_PATTERN.finditer(text)]


@dataclass
class EvaluationContext:
    """
    Evaluation context

    Attributes:
        state: Scope state (read-only from expressions)
        computed: Computed values by name, resolved lazily
        event: $event
        item: $item
        index: $index
        response: $response
        error: $error
        parent: $parent
        props: $props
        variables: Extra bindings ($newValue, loop aliases...), shadowing state
    """

    state: Any = None
    computed: Optional[Mapping] = None
    event: Any = None
    item: Any = None
    index: Any = None
    response: Any = None
    error: Any = None
    parent: Any = None
    props: Any = None
    variables: Dict[str, Any] = field(default_factory=dict)

    def reserved(self) -> Dict[str, Any]:
        """Reserved `$` variables that are set, followed by extra bindings"""
        bindings = {
            "$event": self.event,
            "$item": self.item,
            "$index": self.index,
            "$response": self.response,
            "$error": self.error,
            "$parent": self.parent,
            "$props": self.props,
        }
        result = {k: v for k, v in bindings.items() if v is not None}
        result.update(self.variables)
        return result


@dataclass
class EvaluationResult:
    """Evaluation result"""

    success: bool
    value: Any = None
    error: Optional[Exception] = None
    metadata: Optional[Dict[str, Any]] = None


class ValidationResult:
    """
    Validation result

    Attributes:
        valid: Whether validation passed
        errors: Error messages
    """

    def __init__(self, valid: bool = True, errors: Optional[List[str]] = None):
        self.valid = valid
        self.errors = errors or []

    def add_error(self, error: str) -> None:
        self.errors.append(error)
        self.valid = False

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self):
        return f"ValidationResult(valid={self.valid}, errors={self.errors})"


class LRUCache:
    """Bounded mapping evicting the least recently used entry"""

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE):
        self.max_size = max_size
        self._data: "OrderedDict[Hashable, Any]" = OrderedDict()

    def get(self, key: Hashable) -> Any:
        try:
            value = self._data[key]
        except KeyError:
            return None
        self._data.move_to_end(key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        elif len(self._data) >= self.max_size:
            self._data.popitem(last=False)
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class CompiledExpression:
    """Parsed expression bound to an ordered parameter list"""

    __slots__ = ("source", "ast", "param_names")

    def __init__(self, source: str, ast: Node, param_names: Tuple[str, ...]):
        self.source = source
        self.ast = ast
        self.param_names = param_names

    def __call__(self, *values: Any) -> Any:
        return self.ast.evaluate(dict(zip(self.param_names, values)))

    def __repr__(self):
        return f"CompiledExpression({self.source!r})"


class ExpressionEvaluator:
    """
    Expression evaluator

    Owns the compiled-expression cache; one instance per schema tree.
    """

    def __init__(self, cache_size: int = DEFAULT_CACHE_SIZE):
        self._cache = LRUCache(cache_size)
        self._stats = {
            "evaluations": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "compilations": 0,
            "errors": 0,
            "security_violations": 0,
        }

    # -- Compilation ------------------------------------------------------

    def _compile(self, source: str, param_names: Tuple[str, ...]) -> CompiledExpression:
        self._stats["compilations"] += 1
        return CompiledExpression(source, parse_expression(source), param_names)

    def get_compiled(self, source: str, param_names: Tuple[str, ...]) -> CompiledExpression:
        """
        Fetch or compile the callable for (parameter names, source)

        Raises:
            ExpressionSyntaxError: Source does not parse
        """
        key = (param_names, source)
        compiled = self._cache.get(key)
        if compiled is not None:
            self._stats["cache_hits"] += 1
            return compiled

        self._stats["cache_misses"] += 1
        compiled = self._compile(source, param_names)
        self._cache.set(key, compiled)
        return compiled

    # -- Context ----------------------------------------------------------

    @staticmethod
    def coerce_context(context: Any) -> EvaluationContext:
        if context is None:
            return EvaluationContext()
        if isinstance(context, EvaluationContext):
            return context
        if hasattr(context, "evaluation_context"):
            return context.evaluation_context()
        if isinstance(context, Mapping):
            return EvaluationContext(state=context)
        raise TypeError(f"Unsupported evaluation context: {type(context).__name__}")

    def build_record(self, context: EvaluationContext) -> Dict[str, Any]:
        """
        Flatten a context into the name -> value record seen by expressions

        Precedence (later wins): state keys, computed names, reserved
        variables, built-ins. Denied names are never exposed.
        """
        record: Dict[str, Any] = {}

        if isinstance(context.state, Mapping):
            for key, value in context.state.items():
                record[key] = value

        if context.computed:
            for key, value in context.computed.items():
                record[key] = value

        record.update(context.reserved())
        record.update(create_builtins())

        return {
            key: value
            for key, value in record.items()
            if isinstance(key, str) and not is_denied_identifier(key)
        }

    # -- Evaluation -------------------------------------------------------

    def evaluate(self, expression: Optional[str], context: Any = None) -> EvaluationResult:
        """
        Evaluate a single expression

        Args:
            expression: Expression source (without braces)
            context: EvaluationContext, execution context or plain state mapping

        Returns:
            EvaluationResult; empty input succeeds with None
        """
        self._stats["evaluations"] += 1

        if expression is None or not str(expression).strip():
            return EvaluationResult(success=True, value=None)

        source = str(expression).strip()

        violation = check_security(source)
        if violation is not None:
            self._stats["security_violations"] += 1
            logger.warning(f"Rejected expression {source!r}: {violation.message}")
            return EvaluationResult(success=False, error=violation)

        record = self.build_record(self.coerce_context(context))
        param_names = tuple(sorted(record))

        try:
            compiled = self.get_compiled(source, param_names)
            value = compiled(*[record[name] for name in param_names])
        except ExpressionError as e:
            self._stats["errors"] += 1
            logger.debug(f"Expression {source!r} failed: {e}")
            return EvaluationResult(success=False, error=e)
        except RecursionError:
            self._stats["errors"] += 1
            return EvaluationResult(
                success=False,
                error=EvaluationError(MAX_DEPTH_MESSAGE, {"expression": source}),
            )
        except Exception as e:
            # Host callables may raise anything
            self._stats["errors"] += 1
            logger.debug(f"Expression {source!r} raised {type(e).__name__}: {e}")
            return EvaluationResult(
                success=False,
                error=EvaluationError(str(e), {"expression": source, "cause": type(e).__name__}),
            )

        return EvaluationResult(success=True, value=value)

    def evaluate_template(self, template: Any, context: Any = None) -> Any:
        """
        Evaluate `{{ }}` fragments inside a string

        - Non-strings and strings without `{{` are returned unchanged
        - A pure template (exactly one fragment spanning the trimmed string)
          returns the typed value; failure gives None
        - Mixed templates substitute each fragment's string form; failures
          and None substitute ''

        Raises:
            SecurityViolation: A fragment matches the deny-list
        """
        if not isinstance(template, str) or "{{" not in template:
            return template

        trimmed = template.strip()
        match = TEMPLATE_PATTERN.fullmatch(trimmed)
        if match and trimmed.count("{{") == 1:
            return self._fragment_value(match.group(1), context)

        def substitute(fragment: "re.Match") -> str:
            value = self._fragment_value(fragment.group(1), context)
            return "" if value is None else to_js_string(value)

        return TEMPLATE_PATTERN.sub(substitute, template)

    def _fragment_value(self, source: str, context: Any) -> Any:
        result = self.evaluate(source, context)
        if result.success:
            return result.value
        if isinstance(result.error, SecurityViolation):
            raise result.error
        logger.debug(f"Template expression {source!r} failed: {result.error}")
        return None

    def evaluate_deep(self, value: Any, context: Any = None) -> Any:
        """Evaluate templates inside nested dict/list structures"""
        if isinstance(value, str):
            return self.evaluate_template(value, context)
        if isinstance(value, Mapping):
            return {key: self.evaluate_deep(item, context) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.evaluate_deep(item, context) for item in value]
        return value

    def evaluate_with_default(self, expression: str, context: Any, default: Any) -> Any:
        """Evaluate, falling back to `default` on failure or None"""
        result = self.evaluate(expression, context)
        if result.success and result.value is not None:
            return result.value
        return default

    def evaluate_condition(self, expression: Any, context: Any = None) -> bool:
        """Evaluate an expression or template to JavaScript truthiness"""
        if isinstance(expression, bool):
            return expression
        if isinstance(expression, str) and "{{" in expression:
            return is_truthy(self.evaluate_template(expression, context))
        result = self.evaluate(expression, context)
        if not result.success:
            if isinstance(result.error, SecurityViolation):
                raise result.error
            logger.warning(f"Condition {expression!r} failed: {result.error}")
            return False
        return is_truthy(result.value)

    # -- Static checks ----------------------------------------------------

    def validate(self, expression: str) -> ValidationResult:
        """
        Check security and syntax without evaluating or caching

        Returns:
            ValidationResult with "Security violation" / "Syntax error" messages
        """
        result = ValidationResult()
        if expression is None or not str(expression).strip():
            return result

        violation = check_security(expression)
        if violation is not None:
            result.add_error(violation.message)
            return result

        try:
            parse_expression(str(expression).strip())
        except ExpressionSyntaxError as e:
            result.add_error(f"Syntax error: {e.message}")
        except RecursionError:
            result.add_error(f"Syntax error: {MAX_DEPTH_MESSAGE}")
        return result

    def is_safe(self, expression: str) -> bool:
        return check_security(expression) is None

    def analyze_dependencies(self, expression: str) -> Set[str]:
        """
        Static read-set of an expression

        Raises:
            SecurityViolation: Expression matches the deny-list
            ExpressionSyntaxError: Expression does not parse
        """
        source = (expression or "").strip()
        if not source:
            return set()
        violation = check_security(source)
        if violation is not None:
            raise violation
        try:
            return collect_reads(parse_expression(source))
        except RecursionError:
            raise ExpressionSyntaxError(MAX_DEPTH_MESSAGE, {"expression": source}) from None

    # -- Cache ------------------------------------------------------------

    def clear_cache(self) -> None:
        """Clear compiled-expression cache"""
        self._cache.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics"""
        stats = self._stats.copy()
        stats["cache_size"] = len(self._cache)
        return stats
