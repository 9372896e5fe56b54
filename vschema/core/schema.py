"""
VSchema Action and Node Definitions

Typed models for the node fields consumed by the execution core:
- Actions: set / call / emit / fetch / copy / if / script / ws
- Watch configuration
- Node schema (data, computed, methods, events, watch, lifecycle hooks, directives)
"""

from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions.errors import ValidationError


class Action(BaseModel):
    """
    Action base class

    Actions are immutable schema fragments; every kind may declare
    then/catch/finally continuations.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    then: Optional[Tuple[Any, ...]] = None
    catch: Optional[Tuple[Any, ...]] = None
    finally_: Optional[Tuple[Any, ...]] = Field(default=None, alias="finally")

    @field_validator("then", "catch", "finally_", mode="before")
    @classmethod
    def _parse_continuations(cls, value: Any) -> Any:
        if value is None:
            return None
        return tuple(parse_actions(value))

    @property
    def kind(self) -> str:
        return self.__class__.__name__.replace("Action", "").lower()


class SetAction(Action):
    """Write `value` (template-aware) to the `set` path"""

    target: str = Field(alias="set")
    value: Any = None


class CallAction(Action):
    """Invoke a method resolved from methods, then state"""

    call: str
    args: Optional[List[Any]] = None


class EmitAction(Action):
    """Send a named event with a payload to the emit sink"""

    emit: str
    payload: Any = None


class FetchAction(Action):
    """HTTP request through the transport collaborator"""

    url: str = Field(alias="fetch")
    method: str = "GET"
    headers: Optional[Dict[str, Any]] = None
    params: Optional[Dict[str, Any]] = None
    body: Any = None
    response_type: Optional[Literal["json", "text", "blob", "arrayBuffer"]] = Field(
        default=None, alias="responseType"
    )
    ignore_base_url: bool = Field(default=False, alias="ignoreBaseURL")

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class CopyAction(Action):
    """Write text to the clipboard collaborator"""

    text: Any = Field(alias="copy")


class IfAction(Action):
    """Conditional branch: `then` when truthy, `else` otherwise"""

    condition: Any = Field(alias="if")
    else_: Optional[Tuple[Any, ...]] = Field(default=None, alias="else")

    @field_validator("else_", mode="before")
    @classmethod
    def _parse_else(cls, value: Any) -> Any:
        if value is None:
            return None
        return tuple(parse_actions(value))


class ScriptAction(Action):
    """Restricted multi-statement body"""

    script: str


class WebSocketAction(Action):
    """
    WebSocket operation

    `ws` is the URL for connect and the connection id for send/close
    (an explicit `id` takes precedence).
    """

    ws: str
    op: Literal["connect", "send", "close"] = "connect"
    id: Optional[str] = None
    protocols: Optional[Union[str, List[str]]] = None
    timeout: Optional[float] = None
    message: Any = None
    send_as: Optional[Literal["text", "json"]] = Field(default=None, alias="sendAs")
    response_type: Literal["auto", "json", "text"] = Field(
        default="auto", alias="responseType"
    )
    code: Optional[int] = None
    reason: Optional[str] = None
    on_open: Optional[Tuple[Any, ...]] = Field(default=None, alias="onOpen")
    on_message: Optional[Tuple[Any, ...]] = Field(default=None, alias="onMessage")
    on_error: Optional[Tuple[Any, ...]] = Field(default=None, alias="onError")
    on_close: Optional[Tuple[Any, ...]] = Field(default=None, alias="onClose")

    @field_validator("on_open", "on_message", "on_error", "on_close", mode="before")
    @classmethod
    def _parse_listeners(cls, value: Any) -> Any:
        if value is None:
            return None
        return tuple(parse_actions(value))

    @property
    def key(self) -> str:
        """Registry key: explicit id, otherwise the `ws` field"""
        return self.id or self.ws


# Discriminating key checked in order
ACTION_KINDS = [
    ("set", SetAction),
    ("call", CallAction),
    ("emit", EmitAction),
    ("fetch", FetchAction),
    ("ws", WebSocketAction),
    ("if", IfAction),
    ("script", ScriptAction),
    ("copy", CopyAction),
]


def parse_action(data: Any) -> Action:
    """
    Parse one action definition

    Raises:
        ValidationError: Not a mapping, no known action key, or invalid fields
    """
    if isinstance(data, Action):
        return data
    if not isinstance(data, dict):
        raise ValidationError(
            f"Action must be an object, got {type(data).__name__}", {"action": data}
        )

    for key, model in ACTION_KINDS:
        if key in data:
            if model is IfAction and "then" not in data and "else" not in data:
                continue
            try:
                return model.model_validate(data)
            except ValueError as e:
                raise ValidationError(f"Invalid {key} action: {e}", {"action": data})

    raise ValidationError("Unknown action type", {"action": data})


def parse_actions(data: Any) -> List[Action]:
    """Parse a single action or an ordered list of actions"""
    if data is None:
        return []
    if isinstance(data, (list, tuple)):
        return [parse_action(item) for item in data]
    return [parse_action(data)]


class WatchConfig(BaseModel):
    """
    Watcher definition

    `handler` is an action list or a Python callable `(new, old)`.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    handler: Any
    immediate: bool = False
    deep: bool = False

    @field_validator("handler", mode="before")
    @classmethod
    def _parse_handler(cls, value: Any) -> Any:
        if callable(value) and not isinstance(value, (dict, list, tuple)):
            return value
        return tuple(parse_actions(value))

    @classmethod
    def from_value(cls, value: Any) -> "WatchConfig":
        """
        Normalize a watch entry

        Accepts {handler, immediate, deep}, a bare action/action list, or a callable.
        """
        if isinstance(value, WatchConfig):
            return value
        if isinstance(value, dict) and "handler" in value:
            return cls.model_validate(value)
        return cls(handler=value)


class NodeSchema(BaseModel):
    """
    Node definition fields read by the execution core

    Renderer-only fields (component type, props, children, ...) are ignored.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        arbitrary_types_allowed=True,
        protected_namespaces=(),
    )

    data: Dict[str, Any] = Field(default_factory=dict)
    computed: Dict[str, str] = Field(default_factory=dict)
    methods: Dict[str, Tuple[Any, ...]] = Field(default_factory=dict)
    events: Dict[str, Tuple[Any, ...]] = Field(default_factory=dict)
    watch: Dict[str, WatchConfig] = Field(default_factory=dict)
    on_mounted: Optional[Tuple[Any, ...]] = Field(default=None, alias="onMounted")
    on_unmounted: Optional[Tuple[Any, ...]] = Field(default=None, alias="onUnmounted")
    on_updated: Optional[Tuple[Any, ...]] = Field(default=None, alias="onUpdated")
    if_: Optional[Union[str, bool]] = Field(default=None, alias="if")
    show: Optional[Union[str, bool]] = None
    for_: Optional[str] = Field(default=None, alias="for")
    key: Optional[str] = None
    model: Optional[Union[str, Dict[str, str]]] = None

    @field_validator("methods", "events", mode="before")
    @classmethod
    def _parse_action_map(cls, value: Any) -> Any:
        if value is None:
            return {}
        return {name: tuple(parse_actions(actions)) for name, actions in value.items()}

    @field_validator("on_mounted", "on_unmounted", "on_updated", mode="before")
    @classmethod
    def _parse_hook(cls, value: Any) -> Any:
        if value is None:
            return None
        return tuple(parse_actions(value))

    @field_validator("watch", mode="before")
    @classmethod
    def _parse_watch(cls, value: Any) -> Any:
        if value is None:
            return {}
        return {path: WatchConfig.from_value(entry) for path, entry in value.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeSchema":
        """
        Parse a node definition

        Raises:
            ValidationError: Invalid field or action definition
        """
        try:
            return cls.model_validate(data)
        except ValidationError:
            raise
        except ValueError as e:
            raise ValidationError(f"Invalid node definition: {e}", {"node": data})
