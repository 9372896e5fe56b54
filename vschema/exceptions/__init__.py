"""VSchema exception module

Provides all exception classes used by the execution core
"""

from .errors import (
    VSchemaError,
    ValidationError,
    MappingError,
    ExpressionError,
    SecurityViolation,
    ExpressionSyntaxError,
    EvaluationError,
    ExecutionError,
    MethodNotFound,
    RequestError,
    WebSocketError,
    ConnectionNotFound,
    ConnectionTimeout,
)

__all__ = [
    "VSchemaError",
    "ValidationError",
    "MappingError",
    "ExpressionError",
    "SecurityViolation",
    "ExpressionSyntaxError",
    "EvaluationError",
    "ExecutionError",
    "MethodNotFound",
    "RequestError",
    "WebSocketError",
    "ConnectionNotFound",
    "ConnectionTimeout",
]
