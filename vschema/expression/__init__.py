"""VSchema expression module

Sandboxed expression evaluation: lexer, parser, closed AST, security
policy, built-ins, template evaluation and the script runner.
"""

from .evaluator import (
    CompiledExpression,
    EvaluationContext,
    EvaluationResult,
    ExpressionEvaluator,
    LRUCache,
    ValidationResult,
    is_template_expression,
    parse_template,
)
from .script import ScriptRunner
from .security import check_security, is_safe
from .values import is_truthy, to_js_string, to_number

__all__ = [
    "CompiledExpression",
    "EvaluationContext",
    "EvaluationResult",
    "ExpressionEvaluator",
    "LRUCache",
    "ValidationResult",
    "is_template_expression",
    "parse_template",
    "ScriptRunner",
    "check_security",
    "is_safe",
    "is_truthy",
    "to_js_string",
    "to_number",
]
