"""
VSchema Execution Core

Runtime for declarative JSON UI schemas: sandboxed expression evaluation,
a reactive state store with computed values and watchers, and an action
interpreter with HTTP / WebSocket transports.
"""

__version__ = "0.1.0"

# Configuration
from .config import (
    ResponseFormat,
    RuntimeConfig,
    get_default_config,
    load_config_from_env,
    load_config_from_file,
    setup_logging,
)

# Path resolution, schema models and the reactive store
from .core import (
    NodeSchema,
    PathResolver,
    ReactiveStore,
    parse_action,
    parse_actions,
)

# Errors
from .exceptions import (
    ConnectionNotFound,
    ConnectionTimeout,
    EvaluationError,
    ExecutionError,
    ExpressionSyntaxError,
    MappingError,
    MethodNotFound,
    RequestError,
    SecurityViolation,
    ValidationError,
    VSchemaError,
    WebSocketError,
)

# Action execution
from .executor import (
    ActionInterpreter,
    DataFetcher,
    ExecutionContext,
    HttpxTransport,
    MemoryClipboard,
    WebSocketRegistry,
    WebsocketsConnector,
)

# Expressions
from .expression import (
    EvaluationContext,
    ExpressionEvaluator,
    ScriptRunner,
)

# Scope runtime
from .runtime import Scope

__all__ = [
    # Configuration
    "ResponseFormat",
    "RuntimeConfig",
    "get_default_config",
    "load_config_from_env",
    "load_config_from_file",
    "setup_logging",
    # Core
    "NodeSchema",
    "PathResolver",
    "ReactiveStore",
    "parse_action",
    "parse_actions",
    # Errors
    "ConnectionNotFound",
    "ConnectionTimeout",
    "EvaluationError",
    "ExecutionError",
    "ExpressionSyntaxError",
    "MappingError",
    "MethodNotFound",
    "RequestError",
    "SecurityViolation",
    "ValidationError",
    "VSchemaError",
    "WebSocketError",
    # Execution
    "ActionInterpreter",
    "DataFetcher",
    "ExecutionContext",
    "HttpxTransport",
    "MemoryClipboard",
    "WebSocketRegistry",
    "WebsocketsConnector",
    # Expressions
    "EvaluationContext",
    "ExpressionEvaluator",
    "ScriptRunner",
    # Runtime
    "Scope",
]
