"""
Reactive State Store

Owns one scope's state tree:
- Observable state created from the node's `data` definition
- Lazy memoized computed values with a static dependency graph
- Path/deep watchers flushed once per mutation batch

Status: UNINITIALIZED -> ACTIVE -> DISPOSED (terminal)
"""

import asyncio
import inspect
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Set

from ..exceptions.errors import (
    EvaluationError,
    ExecutionError,
    SecurityViolation,
    ValidationError,
)
from ..expression.ast import Deferred
from ..expression.evaluator import EvaluationContext, ExpressionEvaluator
from .path import PathResolver
from .reactive import ReactiveDict, unwrap, wrap
from .schema import WatchConfig

logger = logging.getLogger(__name__)


class StoreStatus(str, Enum):
    """Store lifecycle status"""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DISPOSED = "disposed"


class ComputedRef(Deferred):
    """
    Lazy memoized derivation

    Recomputes on `.value` read only when a dependency changed since the
    last computation.

    Attributes:
        name: Computed name
        expression: Expression source
        dependencies: State paths read by the expression
        computed_dependencies: Other computed names read by the expression
        compute_count: Number of evaluations performed
    """

    def __init__(
        self,
        name: str,
        expression: str,
        store: "ReactiveStore",
        dependencies: Set[str],
        computed_dependencies: Set[str],
    ):
        self.name = name
        self.expression = expression
        self.dependencies = dependencies
        self.computed_dependencies = computed_dependencies
        self.compute_count = 0
        self._store = store
        self._value: Any = None
        self._dirty = True
        self._computing = False

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def value(self) -> Any:
        if self._dirty:
            self._recompute()
        return self._value

    def resolve(self) -> Any:
        return self.value

    def invalidate(self) -> None:
        self._dirty = True

    def _recompute(self) -> None:
        if self._computing:
            raise EvaluationError(
                f"Circular computed dependency: {self.name}", {"computed": self.name}
            )

        self._computing = True
        try:
            result = self._store.evaluator.evaluate(
                self.expression, self._store.evaluation_context()
            )
        finally:
            self._computing = False

        self.compute_count += 1
        self._dirty = False

        if result.success:
            self._value = result.value
            return

        self._value = None
        if isinstance(result.error, SecurityViolation):
            raise result.error
        logger.warning(f"Computed '{self.name}' failed: {result.error}")

    def __repr__(self):
        return f"ComputedRef({self.name!r}, dirty={self._dirty})"


class ComputedView(Mapping):
    """Read-only name -> current value view over computed refs"""

    def __init__(self, refs: Mapping):
        self._refs = refs

    def __getitem__(self, name: str) -> Any:
        return self._refs[name].value

    def __iter__(self) -> Iterator[str]:
        return iter(self._refs)

    def __len__(self) -> int:
        return len(self._refs)


@dataclass
class Watcher:
    """Registered watcher"""

    path: str
    handler: Any
    immediate: bool = False
    deep: bool = False
    last_value: Any = None
    pending: bool = False
    context: Any = None


def _same_value(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if isinstance(a, (dict, list)) or isinstance(b, (dict, list)):
        return False
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


class ReactiveStore:
    """
    Reactive state store for one scope

    Mutations mark computed values dirty synchronously; watcher
    notifications are batched and delivered once per flush.
    """

    def __init__(
        self,
        evaluator: Optional[ExpressionEvaluator] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
        max_array_length: int = 10000,
    ):
        self.evaluator = evaluator or ExpressionEvaluator()
        self.on_error = on_error
        self.max_array_length = max_array_length
        self.status = StoreStatus.UNINITIALIZED

        self._state: Optional[ReactiveDict] = None
        self._computed: Dict[str, ComputedRef] = {}
        self._watchers: List[Watcher] = []
        self._flush_scheduled = False
        self._tasks: Set[asyncio.Task] = set()

    # -- Lifecycle -------------------------------------------------------

    @property
    def is_disposed(self) -> bool:
        return self.status == StoreStatus.DISPOSED

    @property
    def state(self) -> Optional[ReactiveDict]:
        return self._state

    @property
    def computed(self) -> Dict[str, ComputedRef]:
        return self._computed

    def create_state(self, definition: Optional[Mapping] = None) -> ReactiveDict:
        """
        Deep-clone a data definition into an observable tree

        Args:
            definition: Node `data` mapping

        Returns:
            Observable root dict

        Raises:
            ExecutionError: Store already disposed
        """
        if self.is_disposed:
            raise ExecutionError("Cannot create state on a disposed store")

        self._state = wrap(dict(definition or {}), self)
        self.status = StoreStatus.ACTIVE
        for ref in self._computed.values():
            ref.invalidate()
        logger.debug(f"Store state created with keys: {list(self._state.keys())}")
        return self._state

    def dispose(self) -> None:
        """
        Tear down watchers and computed values

        Further mutations invoke no handler. In-flight handler tasks are left
        to finish; their continuations see `is_disposed`.
        """
        if self.is_disposed:
            return
        self.status = StoreStatus.DISPOSED
        self._watchers.clear()
        self._computed.clear()
        self._flush_scheduled = False
        logger.debug("Store disposed")

    # -- State access ----------------------------------------------------

    def get_state(self, path: Optional[str] = None) -> Any:
        if path is None:
            return self._state
        return PathResolver.get(self._state, path)

    def set_state(self, path: str, value: Any) -> None:
        """
        Write a value at a path, notifying dependents

        Raises:
            MappingError: Invalid path or type conflict
        """
        if self.is_disposed:
            logger.debug(f"Ignoring write to '{path}' on disposed store")
            return
        if self._state is None:
            self.create_state({})
        PathResolver.set(self._state, path, value, self.max_array_length)

    def snapshot(self) -> Dict[str, Any]:
        """Plain deep copy of the state tree"""
        return unwrap(self._state) if self._state is not None else {}

    def evaluation_context(self) -> EvaluationContext:
        return EvaluationContext(state=self._state, computed=self._computed)

    def _check_state(self, state: Any) -> None:
        if state is not None and state is not self._state:
            raise ValidationError(
                "Computed values and watchers must resolve against the owning store's state"
            )

    # -- Computed --------------------------------------------------------

    def create_computed(
        self, definitions: Mapping, state: Any = None
    ) -> Dict[str, ComputedRef]:
        """
        Register computed values

        Args:
            definitions: name -> expression (with or without `{{ }}`)
            state: Must be this store's state when given

        Returns:
            name -> ComputedRef

        Raises:
            SecurityViolation: An expression matches the deny-list
            ExpressionSyntaxError: An expression does not parse
        """
        self._check_state(state)

        pending = {}
        for name, expression in definitions.items():
            source = _strip_braces(expression)
            pending[name] = (source, self.evaluator.analyze_dependencies(source))

        names = set(pending) | set(self._computed)
        for name, (source, reads) in pending.items():
            state_paths = set()
            computed_names = set()
            for path in reads:
                root = PathResolver.parse(path)[0].key if path else path
                if root in names:
                    computed_names.add(root)
                else:
                    state_paths.add(path)
            self._computed[name] = ComputedRef(
                name, source, self, state_paths, computed_names
            )
            logger.debug(
                f"Computed '{name}' depends on {sorted(state_paths)} {sorted(computed_names)}"
            )

        return self._computed

    def _invalidate(self, path: str) -> None:
        dirty = [
            ref
            for ref in self._computed.values()
            if any(PathResolver.intersect(dep, path) for dep in ref.dependencies)
        ]
        seen = {ref.name for ref in dirty}
        while dirty:
            ref = dirty.pop()
            ref.invalidate()
            for other in self._computed.values():
                if other.name not in seen and ref.name in other.computed_dependencies:
                    seen.add(other.name)
                    dirty.append(other)

    # -- Watchers --------------------------------------------------------

    def create_watchers(
        self, definitions: Mapping, state: Any = None, context: Any = None
    ) -> None:
        """
        Register watchers

        Args:
            definitions: path -> WatchConfig / {handler, immediate, deep} / actions / callable
            state: Must be this store's state when given
            context: Execution context used to run action handlers
        """
        self._check_state(state)

        for path, definition in definitions.items():
            config = WatchConfig.from_value(definition)
            current = self.get_state(path)
            watcher = Watcher(
                path=path,
                handler=config.handler,
                immediate=config.immediate,
                deep=config.deep,
                last_value=unwrap(current) if config.deep else current,
                context=context,
            )
            self._watchers.append(watcher)
            logger.debug(f"Watcher registered on '{path}' (deep={config.deep})")

            if config.immediate:
                self._fire(watcher, current, current)

    def watch(
        self,
        path: str,
        handler: Callable[[Any, Any], Any],
        immediate: bool = False,
        deep: bool = False,
    ) -> None:
        """Register a Python callable watcher"""
        self.create_watchers({path: WatchConfig(handler=handler, immediate=immediate, deep=deep)})

    # -- Notification ----------------------------------------------------

    def on_mutation(self, path: str) -> None:
        """Called by observable containers for every write"""
        if self.is_disposed:
            return

        self._invalidate(path)

        affected = False
        for watcher in self._watchers:
            if PathResolver.is_prefix(path, watcher.path) or (
                watcher.deep and PathResolver.is_prefix(watcher.path, path)
            ):
                watcher.pending = True
                affected = True

        if affected:
            self._schedule_flush()

    def _schedule_flush(self) -> None:
        if self._flush_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: delivered on the next explicit flush()
            return
        self._flush_scheduled = True
        loop.call_soon(self.flush)

    def flush(self) -> None:
        """Deliver pending watcher notifications for the current batch"""
        self._flush_scheduled = False
        if self.is_disposed:
            return

        for watcher in [w for w in self._watchers if w.pending]:
            watcher.pending = False
            current = self.get_state(watcher.path)

            if watcher.deep:
                snapshot = unwrap(current)
                if snapshot == watcher.last_value:
                    continue
                old = watcher.last_value
                watcher.last_value = snapshot
            else:
                if _same_value(current, watcher.last_value):
                    continue
                old = watcher.last_value
                watcher.last_value = current

            self._fire(watcher, current, old)

    async def tick(self) -> None:
        """Let scheduled flushes run and wait for spawned handlers"""
        for _ in range(100):
            await asyncio.sleep(0)
            self.flush()
            if not self._tasks:
                break
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, watcher: Watcher, new_value: Any, old_value: Any) -> None:
        if self.is_disposed:
            return

        handler = watcher.handler
        try:
            if callable(handler):
                result = handler(new_value, old_value)
                if inspect.isawaitable(result):
                    self._spawn(self._guard(watcher, result))
                return

            context = watcher.context
            if context is None or getattr(context, "interpreter", None) is None:
                logger.warning(
                    f"Watcher on '{watcher.path}' has actions but no execution context"
                )
                return
            bound = context.derive({"$newValue": new_value, "$oldValue": old_value})
            self._spawn(self._guard(watcher, context.interpreter.run(handler, bound)))
        except Exception as e:
            logger.exception(f"Watcher on '{watcher.path}' failed")
            self._report(e)

    async def _guard(self, watcher: Watcher, awaitable: Awaitable) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.exception(f"Watcher on '{watcher.path}' failed")
            self._report(e)

    def _spawn(self, coro: Awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _report(self, error: Exception) -> None:
        if self.on_error is None:
            return
        try:
            result = self.on_error(error)
            if inspect.isawaitable(result):
                self._spawn(result)
        except Exception:
            logger.exception("Error sink failed")


def _strip_braces(expression: Any) -> str:
    text = str(expression).strip()
    if text.startswith("{{") and text.endswith("}}") and text.count("{{") == 1:
        return text[2:-2].strip()
    return text
