"""
Execution Type Definitions

Data structures shared by the action interpreter and its collaborators.
"""

import dataclasses
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ..core.path import PathResolver
from ..expression.evaluator import EvaluationContext, ExpressionEvaluator

logger = logging.getLogger(__name__)

# Async function type used for type checking
AsyncCallable = Callable[..., Awaitable[Any]]


@dataclass
class ExecutionContext:
    """
    Per-invocation execution bundle

    Attributes:
        state: Observable state of the owning scope
        evaluator: Expression evaluator shared by the schema tree
        store: Owning ReactiveStore (provides is_disposed)
        interpreter: ActionInterpreter running handlers
        computed: name -> ComputedRef
        methods: Declared node methods and injected callables
        emit: Event sink `(name, payload)`
        fetcher: DataFetcher for `fetch` actions
        websockets: WebSocketRegistry for `ws` actions
        clipboard: Clipboard collaborator for `copy` actions
        on_error: Error sink for failures surfaced to the UI layer
        variables: Bound reserved variables ($event, $response, ...)
        parent: $parent
        props: $props
    """

    state: Any = None
    evaluator: Optional[ExpressionEvaluator] = None
    store: Any = None
    interpreter: Any = None
    computed: Dict[str, Any] = field(default_factory=dict)
    methods: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    emit: Optional[Callable[[str, Any], Any]] = None
    fetcher: Any = None
    websockets: Any = None
    clipboard: Any = None
    on_error: Optional[Callable[[Exception], Any]] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    parent: Any = None
    props: Any = None

    @property
    def is_disposed(self) -> bool:
        return self.store is not None and self.store.is_disposed

    def derive(self, bindings: Dict[str, Any]) -> "ExecutionContext":
        """Copy with extra variable bindings ($event, $response, $error, ...)"""
        return dataclasses.replace(self, variables={**self.variables, **bindings})

    def evaluation_context(self) -> EvaluationContext:
        return EvaluationContext(
            state=self.state,
            computed=self.computed,
            parent=self.parent,
            props=self.props,
            variables=dict(self.variables),
        )

    def get_state_value(self, path: str) -> Any:
        if self.store is not None:
            return self.store.get_state(path)
        return PathResolver.get(self.state, path)

    def set_state_value(self, path: str, value: Any) -> None:
        """Write through the store when present so dependents are notified"""
        if self.store is not None:
            self.store.set_state(path, value)
        else:
            PathResolver.set(self.state, path, value)

    async def report_error(self, error: Exception) -> None:
        """Forward a failure to the UI-layer error sink"""
        if self.on_error is None:
            return
        result = self.on_error(error)
        if inspect.isawaitable(result):
            await result


@dataclass(frozen=True)
class Found:
    """Method lookup hit"""

    method: Callable[..., Any]
    source: str


@dataclass(frozen=True)
class NotFound:
    """Method lookup miss"""

    path: str


MethodLookup = Union[Found, NotFound]


def resolve_method(path: str, methods: Optional[Mapping], state: Any) -> MethodLookup:
    """
    Two-stage method lookup

    Declared methods first, then state (injected namespaces such as
    `$methods.$nav.push`).

    Args:
        path: Call path
        methods: Declared methods
        state: Scope state

    Returns:
        Found(callable, source) or NotFound(path)
    """
    if methods:
        candidate = PathResolver.get(methods, path)
        if callable(candidate):
            return Found(candidate, "methods")

    candidate = PathResolver.get(state, path)
    if callable(candidate):
        return Found(candidate, "state")

    return NotFound(path)
