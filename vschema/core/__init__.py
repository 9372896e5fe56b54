"""VSchema core module

Path resolution, action/node models, observable state and the reactive store.
"""

from .path import PathResolver, PathSegment
from .reactive import ReactiveDict, ReactiveList, unwrap
from .schema import (
    Action,
    CallAction,
    CopyAction,
    EmitAction,
    FetchAction,
    IfAction,
    NodeSchema,
    ScriptAction,
    SetAction,
    WatchConfig,
    WebSocketAction,
    parse_action,
    parse_actions,
)
from .state import ComputedRef, ComputedView, ReactiveStore, StoreStatus

__all__ = [
    "PathResolver",
    "PathSegment",
    "ReactiveDict",
    "ReactiveList",
    "unwrap",
    "Action",
    "CallAction",
    "CopyAction",
    "EmitAction",
    "FetchAction",
    "IfAction",
    "NodeSchema",
    "ScriptAction",
    "SetAction",
    "WatchConfig",
    "WebSocketAction",
    "parse_action",
    "parse_actions",
    "ComputedRef",
    "ComputedView",
    "ReactiveStore",
    "StoreStatus",
]
