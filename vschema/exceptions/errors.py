"""
VSchema Exception Definitions

Error taxonomy of the execution core: path mapping errors, expression errors
(security, syntax, evaluation) and action execution errors (method lookup,
HTTP requests, WebSocket connections).
"""

from typing import Any, Dict, Optional


class VSchemaError(Exception):
    """VSchema base exception"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for error events surfaced to the UI layer"""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(VSchemaError):
    """
    Validation error

    Occurs when a node or action definition is malformed, such as an action
    object that matches no known action kind.
    """

    pass


class MappingError(VSchemaError):
    """
    State mapping error

    Occurs during path parsing or writing, such as malformed path text, an
    intermediate position that is not an object/array, or an array index
    beyond the allowed length.
    """

    pass


class ExpressionError(VSchemaError):
    """Base class for expression failures"""

    pass


class SecurityViolation(ExpressionError):
    """
    Security violation

    The expression contains a denied identifier or pattern. Always rejected
    before parsing; never degraded to an empty value.
    """

    pass


class ExpressionSyntaxError(ExpressionError):
    """
    Expression syntax error

    The expression text does not belong to the restricted grammar.
    """

    pass


class EvaluationError(ExpressionError):
    """
    Evaluation error

    Runtime failure while walking a parsed expression, such as an undefined
    identifier or calling a value that is not callable.
    """

    pass


class ExecutionError(VSchemaError):
    """
    Execution error

    Occurs during action execution, such as method lookup failure or a failed
    transport operation.
    """

    pass


class MethodNotFound(ExecutionError):
    """Neither the declared methods nor the state resolve the call path"""

    pass


class RequestError(ExecutionError):
    """
    Request error

    Transport failure, HTTP error status or business failure code.
    """

    @property
    def status(self) -> Optional[int]:
        return self.details.get("status")

    @property
    def code(self) -> Any:
        return self.details.get("code")

    @property
    def response(self) -> Any:
        return self.details.get("response")


class WebSocketError(ExecutionError):
    """WebSocket operation error"""

    pass


class ConnectionNotFound(WebSocketError):
    """No registry entry exists for the given connection id"""

    pass


class ConnectionTimeout(WebSocketError):
    """The connection did not open within the requested timeout"""

    pass
