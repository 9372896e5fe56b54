"""VSchema executor module

Action interpreter and its transport collaborators (HTTP, WebSocket, clipboard).
"""

from .clipboard import Clipboard, MemoryClipboard
from .fetcher import (
    DataFetcher,
    FetchResult,
    HttpxTransport,
    RequestConfig,
    Transport,
    TransportResponse,
)
from .interpreter import ActionInterpreter
from .types import ExecutionContext, Found, MethodLookup, NotFound, resolve_method
from .websocket import (
    ReadyState,
    WebSocketConnector,
    WebSocketEvent,
    WebSocketRegistry,
    WebsocketsConnector,
    encode_message,
    parse_message,
)

__all__ = [
    "Clipboard",
    "MemoryClipboard",
    "DataFetcher",
    "FetchResult",
    "HttpxTransport",
    "RequestConfig",
    "Transport",
    "TransportResponse",
    "ActionInterpreter",
    "ExecutionContext",
    "Found",
    "MethodLookup",
    "NotFound",
    "resolve_method",
    "ReadyState",
    "WebSocketConnector",
    "WebSocketEvent",
    "WebSocketRegistry",
    "WebsocketsConnector",
    "encode_message",
    "parse_message",
]
