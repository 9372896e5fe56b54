"""
Scope Runtime

Binds one node definition to its own ReactiveStore and ActionInterpreter
and exposes the entry points a host renderer drives: lifecycle hooks,
event dispatch, method calls and directive evaluation.
"""

import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import RuntimeConfig, get_default_config
from ..core.schema import NodeSchema
from ..core.state import ReactiveStore
from ..exceptions.errors import ExecutionError, MethodNotFound
from ..executor.clipboard import Clipboard, MemoryClipboard
from ..executor.fetcher import DataFetcher
from ..executor.interpreter import ActionInterpreter
from ..executor.types import ExecutionContext
from ..executor.websocket import WebSocketConnector, WebSocketRegistry
from ..expression.evaluator import ExpressionEvaluator
from .directives import (
    LoopFrame,
    ModelBinding,
    expand_for,
    is_visible,
    parse_model,
    read_model,
    should_render,
    write_model,
)

logger = logging.getLogger(__name__)


class Scope:
    """
    Runtime scope of one node

    Args:
        node: NodeSchema or raw node dict
        config: Runtime configuration
        evaluator: Shared expression evaluator
        interpreter: Shared action interpreter
        fetcher: HTTP data fetcher
        connector: WebSocket connector for this scope's registry
        clipboard: Clipboard collaborator
        emit: Event sink `(name, payload)`
        on_error: UI-layer error sink
        parent: $parent (the enclosing scope's state)
        props: $props
        methods: Externally injected callables, reachable as `$methods.*`
    """

    def __init__(
        self,
        node: Union[NodeSchema, Dict[str, Any]],
        *,
        config: Optional[RuntimeConfig] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
        interpreter: Optional[ActionInterpreter] = None,
        fetcher: Optional[DataFetcher] = None,
        connector: Optional[WebSocketConnector] = None,
        clipboard: Optional[Clipboard] = None,
        emit: Optional[Callable[[str, Any], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
        parent: Any = None,
        props: Any = None,
        methods: Optional[Mapping] = None,
    ):
        self.node = node if isinstance(node, NodeSchema) else NodeSchema.from_dict(node)
        self.config = config or get_default_config()
        self.evaluator = evaluator or ExpressionEvaluator(self.config.expression_cache_size)
        self.interpreter = interpreter or ActionInterpreter(self.evaluator)
        self.fetcher = fetcher or DataFetcher(self.config)
        self.connector = connector
        self.clipboard = clipboard or MemoryClipboard()
        self.emit = emit
        self.on_error = on_error

        self.store = ReactiveStore(
            self.evaluator, on_error=on_error, max_array_length=self.config.max_array_length
        )
        self.websockets = WebSocketRegistry(connector, close_code=self.config.websocket_close_code)

        data = dict(self.node.data)
        if methods:
            data["$methods"] = dict(methods)
        self.state = self.store.create_state(data)

        self.methods: Dict[str, Callable[..., Any]] = {}
        self.context = ExecutionContext(
            state=self.state,
            evaluator=self.evaluator,
            store=self.store,
            interpreter=self.interpreter,
            computed=self.store.computed,
            methods=self.methods,
            emit=emit,
            fetcher=self.fetcher,
            websockets=self.websockets,
            clipboard=self.clipboard,
            on_error=on_error,
            parent=parent,
            props=props,
        )

        self.store.create_computed(self.node.computed, self.state)
        for name, actions in self.node.methods.items():
            self.methods[name] = self.interpreter.create_handler(actions, self.context)
        self.store.create_watchers(self.node.watch, self.state, self.context)

        self._mounted = False
        self._unmounted = False

    @property
    def is_disposed(self) -> bool:
        return self.store.is_disposed

    def get_computed(self, name: str) -> Any:
        return self.store.computed[name].value

    def snapshot(self) -> Dict[str, Any]:
        return self.store.snapshot()

    # -- Lifecycle --------------------------------------------------------

    async def mount(self) -> bool:
        """Run `onMounted` once"""
        if self._mounted or self.is_disposed:
            return False
        self._mounted = True
        if not self.node.on_mounted:
            return True
        return await self.interpreter.trigger(self.node.on_mounted, self.context, "onMounted")

    async def update(self) -> bool:
        """Run `onUpdated` after a render pass"""
        if not self.node.on_updated or self.is_disposed:
            return True
        return await self.interpreter.trigger(self.node.on_updated, self.context, "onUpdated")

    async def unmount(self) -> None:
        """Run `onUnmounted` once, then dispose the store and close sockets"""
        if self._unmounted:
            return
        self._unmounted = True
        if self.node.on_unmounted and not self.is_disposed:
            await self.interpreter.trigger(self.node.on_unmounted, self.context, "onUnmounted")
        self.store.dispose()
        await self.websockets.dispose()
        logger.debug("Scope unmounted")

    async def tick(self) -> None:
        """Wait for pending watcher and socket callback executions"""
        await self.store.tick()
        await self.interpreter.drain()

    # -- Events and methods -------------------------------------------------

    def find_event(self, event_name: str) -> Optional[Any]:
        """Actions bound to an event; keys may carry `.modifier` suffixes"""
        events = self.node.events
        if event_name in events:
            return events[event_name]
        for key, actions in events.items():
            if key.split(".")[0] == event_name:
                return actions
        return None

    async def dispatch(self, event_name: str, event: Any = None) -> bool:
        """
        Run the actions bound to a host event

        Returns:
            False when no handler exists or the action list failed
        """
        actions = self.find_event(event_name)
        if actions is None:
            logger.debug(f"No handler for event '{event_name}'")
            return False
        return await self.interpreter.trigger(
            actions, self.context.derive({"$event": event}), f"Event '{event_name}'"
        )

    async def call(self, name: str, *args: Any) -> None:
        """
        Invoke a declared method

        Raises:
            MethodNotFound: No method with that name
        """
        method = self.methods.get(name)
        if method is None:
            raise MethodNotFound(f"Method not found: {name}", {"path": name})
        await method(*args)

    # -- Directives --------------------------------------------------------

    def frames(self, context: Optional[ExecutionContext] = None) -> List[LoopFrame]:
        """
        Expand the node's `for` / `if` / `key` directives

        Args:
            context: Enclosing context the directives are evaluated in
                (defaults to this scope)
        """
        context = context or self.context
        if self.node.for_:
            return expand_for(self.node.for_, context, self.node.key, self.node.if_)
        if not should_render(self.node.if_, context):
            return []
        key = context.evaluator.evaluate_template(self.node.key, context) if self.node.key else 0
        return [LoopFrame(item=None, index=0, key=key, context=context)]

    def is_visible(self, context: Optional[ExecutionContext] = None) -> bool:
        return is_visible(self.node.show, context or self.context)

    @property
    def model(self) -> Optional[ModelBinding]:
        return parse_model(self.node.model) if self.node.model else None

    def read_model(self) -> Any:
        if self.model is None:
            raise ExecutionError("Node declares no model binding")
        return read_model(self.model, self.context)

    def write_model(self, event: Any, trigger: str = "input") -> bool:
        if self.model is None:
            raise ExecutionError("Node declares no model binding")
        return write_model(self.model, self.context, event, trigger)

    # -- Children ------------------------------------------------------------

    def create_child(
        self,
        node: Union[NodeSchema, Dict[str, Any]],
        props: Any = None,
        methods: Optional[Mapping] = None,
    ) -> "Scope":
        """Child scope sharing this scope's collaborators, with `$parent` bound to this state"""
        return Scope(
            node,
            config=self.config,
            evaluator=self.evaluator,
            interpreter=self.interpreter,
            fetcher=self.fetcher,
            connector=self.connector,
            clipboard=self.clipboard,
            emit=self.emit,
            on_error=self.on_error,
            parent=self.state,
            props=props,
            methods=methods,
        )
