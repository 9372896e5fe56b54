"""
Action Interpreter

Executes declared actions against an ExecutionContext:
- set / call / emit / fetch / copy / if / script / ws
- Lists run strictly in declaration order, each action (with its
  then/catch/finally continuations) fully awaited before the next
- `run` propagates failures; `trigger` is the top-level entry point that
  logs them and forwards them to the context's error sink
"""

import asyncio
import inspect
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..core.schema import (
    Action,
    CallAction,
    CopyAction,
    EmitAction,
    FetchAction,
    IfAction,
    ScriptAction,
    SetAction,
    WebSocketAction,
    parse_actions,
)
from ..core.state import ComputedView
from ..exceptions.errors import (
    ExecutionError,
    MethodNotFound,
    RequestError,
    SecurityViolation,
    ValidationError,
)
from ..expression.evaluator import ExpressionEvaluator, is_template_expression
from ..expression.script import ScriptRunner
from ..expression.values import to_js_string
from .fetcher import RequestConfig
from .types import ExecutionContext, Found, resolve_method
from .websocket import WebSocketEvent, encode_message, parse_message

logger = logging.getLogger(__name__)

Operation = Callable[[Any, ExecutionContext], Awaitable[Optional[Dict[str, Any]]]]


class ActionInterpreter:
    """
    Action interpreter

    Args:
        evaluator: Fallback evaluator for contexts that carry none
        scripts: Script runner for `script` actions
    """

    def __init__(
        self,
        evaluator: Optional[ExpressionEvaluator] = None,
        scripts: Optional[ScriptRunner] = None,
    ):
        self.evaluator = evaluator or ExpressionEvaluator()
        self.scripts = scripts or ScriptRunner()
        self._operations: Dict[type, Operation] = {
            SetAction: self._execute_set,
            CallAction: self._execute_call,
            EmitAction: self._execute_emit,
            FetchAction: self._execute_fetch,
            CopyAction: self._execute_copy,
            IfAction: self._execute_if,
            ScriptAction: self._execute_script,
            WebSocketAction: self._execute_ws,
        }
        self._tasks: Set[asyncio.Task] = set()
        self._stats = {
            "actions_executed": 0,
            "actions_failed": 0,
            "triggers": 0,
            "trigger_failures": 0,
        }

    # -- Entry points -------------------------------------------------------

    async def run(self, actions: Any, context: ExecutionContext) -> None:
        """
        Execute one action or an ordered list of actions

        Actions left in the list are skipped once the owning store is
        disposed.

        Args:
            actions: Action, action dict, or list of either
            context: Execution context

        Raises:
            ValidationError: Malformed action definition
            Exception: The first failure not handled by an action's `catch`
        """
        await self._run_list(actions, context, check_disposed=True)

    async def _run_list(self, actions: Any, context: ExecutionContext, check_disposed: bool) -> None:
        for action in self._normalize(actions):
            if check_disposed and context.is_disposed:
                logger.debug("Scope disposed; skipping remaining actions")
                return
            await self.execute(action, context)

    async def execute(self, action: Action, context: ExecutionContext) -> None:
        """Execute a single parsed action including its continuations"""
        operation = self._operations.get(type(action))
        if operation is None:
            raise ValidationError(f"Unsupported action kind: {action.kind}", {"action": repr(action)})

        self._stats["actions_executed"] += 1
        logger.debug(f"Executing {action.kind} action")
        try:
            await self._with_continuations(
                action, context, operation, run_then=not isinstance(action, IfAction)
            )
        except Exception:
            self._stats["actions_failed"] += 1
            raise

    async def trigger(self, actions: Any, context: ExecutionContext, label: str = "Action list") -> bool:
        """
        Top-level execution for events, lifecycle hooks and socket callbacks

        Failures are logged and forwarded to the error sink, never raised.

        Returns:
            True when the list completed
        """
        self._stats["triggers"] += 1
        try:
            await self.run(actions, context)
            return True
        except Exception as e:
            self._stats["trigger_failures"] += 1
            logger.exception(f"{label} failed")
            try:
                await context.report_error(e)
            except Exception:
                logger.exception("Error sink failed")
            return False

    def create_handler(self, actions: Any, context: ExecutionContext) -> Callable[..., Awaitable[None]]:
        """
        Wrap an action list as an async callable

        The first positional argument is bound as `$event`, all of them
        as `$args`. Failures propagate to the caller.
        """
        parsed = self._normalize(actions)

        async def handler(*args: Any) -> None:
            bindings = {"$event": args[0] if args else None, "$args": list(args)}
            await self.run(parsed, context.derive(bindings))

        return handler

    def get_stats(self) -> Dict[str, Any]:
        return self._stats.copy()

    async def drain(self) -> None:
        """Wait for spawned socket callback executions"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- Continuations -------------------------------------------------------

    async def _with_continuations(
        self, action: Action, context: ExecutionContext, operation: Operation, run_then: bool
    ) -> None:
        try:
            bindings = await operation(action, context)
            if run_then and action.then:
                await self.run(action.then, context.derive(bindings or {}))
        except Exception as error:
            if isinstance(error, SecurityViolation) or not action.catch:
                raise
            logger.debug(f"{action.kind} action failed, running catch: {error}")
            await self.run(action.catch, context.derive({"$error": error}))
        finally:
            if action.finally_:
                # finally runs even when the scope was disposed mid-action
                await self._run_list(action.finally_, context, check_disposed=False)

    # -- Operations ---------------------------------------------------------

    def _evaluator(self, context: ExecutionContext) -> ExpressionEvaluator:
        return context.evaluator or self.evaluator

    def _value(self, value: Any, context: ExecutionContext) -> Any:
        return self._evaluator(context).evaluate_deep(value, context)

    def _text(self, value: Any, context: ExecutionContext) -> Optional[str]:
        result = self._evaluator(context).evaluate_template(value, context)
        return None if result is None else to_js_string(result)

    async def _execute_set(self, action: SetAction, context: ExecutionContext) -> None:
        target = action.target
        if is_template_expression(target):
            target = self._text(target, context)
        context.set_state_value(target, self._value(action.value, context))

    async def _execute_call(self, action: CallAction, context: ExecutionContext) -> Dict[str, Any]:
        lookup = resolve_method(action.call, context.methods, context.state)
        if not isinstance(lookup, Found):
            raise MethodNotFound(f"Method not found: {lookup.path}", {"path": lookup.path})

        args = self._value(list(action.args or []), context)
        logger.debug(f"Calling '{action.call}' from {lookup.source}")
        result = lookup.method(*args)
        if inspect.isawaitable(result):
            result = await result
        return {"$response": result}

    async def _execute_emit(self, action: EmitAction, context: ExecutionContext) -> None:
        payload = self._value(action.payload, context)
        if context.emit is None:
            logger.warning(f"Emit '{action.emit}' dropped: no emit sink")
            return
        result = context.emit(action.emit, payload)
        if inspect.isawaitable(result):
            await result

    async def _execute_fetch(self, action: FetchAction, context: ExecutionContext) -> Dict[str, Any]:
        if context.fetcher is None:
            raise ExecutionError("Fetch action requires a data fetcher")

        request = RequestConfig(
            url=self._text(action.url, context) or "",
            method=action.method,
            headers=self._value(dict(action.headers or {}), context),
            params=self._value(dict(action.params), context) if action.params else None,
            body=self._value(action.body, context),
            response_type=action.response_type,
            ignore_base_url=action.ignore_base_url,
        )
        result = await context.fetcher.fetch(request)
        if not result.success:
            raise result.error or RequestError("Request failed", {"status": result.status})

        response = result.response if result.response is not None else result.data
        return {"$response": response}

    async def _execute_copy(self, action: CopyAction, context: ExecutionContext) -> None:
        if context.clipboard is None:
            raise ExecutionError("Copy action requires a clipboard")
        text = self._text(action.text, context)
        await context.clipboard.write_text(text or "")

    async def _execute_if(self, action: IfAction, context: ExecutionContext) -> None:
        if self._evaluator(context).evaluate_condition(action.condition, context):
            await self.run(action.then, context)
        elif action.else_:
            await self.run(action.else_, context)

    async def _execute_script(self, action: ScriptAction, context: ExecutionContext) -> Optional[Dict[str, Any]]:
        if not action.script.strip():
            logger.warning("Script action with an empty body skipped")
            return

        methods: Dict[str, Any] = dict(context.methods)
        injected = context.state.get("$methods") if isinstance(context.state, Mapping) else None
        if isinstance(injected, Mapping):
            methods.update(injected)

        variables = context.variables
        bindings = {
            "state": context.state,
            "computed": ComputedView(context.computed),
            "$event": variables.get("$event"),
            "$response": variables.get("$response"),
            "$error": variables.get("$error"),
            "$methods": methods,
        }
        result = await self.scripts.run(action.script, bindings)
        return {"$response": result}

    async def _execute_ws(self, action: WebSocketAction, context: ExecutionContext) -> None:
        registry = context.websockets
        if registry is None:
            raise ExecutionError("WebSocket action requires a connection registry")

        target = self._text(action.ws, context) or ""
        key = self._text(action.id, context) if action.id is not None else None
        key = key or target

        if action.op == "connect":
            protocols = action.protocols
            if protocols is not None:
                protocols = [self._text(p, context) for p in ([protocols] if isinstance(protocols, str) else protocols)]
            await registry.connect(
                target,
                key=key,
                protocols=protocols,
                timeout=action.timeout,
                listener=self._socket_listener(action, key, context),
            )
        elif action.op == "send":
            message = self._value(action.message, context)
            await registry.send(key, encode_message(message, action.send_as), action.timeout)
        else:
            await registry.close(key, action.code, action.reason)

    # -- Socket callbacks ---------------------------------------------------

    def _socket_listener(
        self, action: WebSocketAction, key: str, context: ExecutionContext
    ) -> Callable[[WebSocketEvent], None]:
        handlers = {
            "open": action.on_open,
            "message": action.on_message,
            "error": action.on_error,
            "close": action.on_close,
        }

        def listener(event: WebSocketEvent) -> None:
            actions = handlers.get(event.type)
            if not actions or context.is_disposed:
                return

            bindings: Dict[str, Any] = {"$event": event}
            if event.type == "message":
                try:
                    bindings["$response"] = parse_message(event.data, action.response_type)
                except ValueError as e:
                    logger.warning(f"WebSocket '{key}' message is not valid JSON: {e}")
                    bindings["$response"] = event.data
            elif event.type == "error":
                bindings["$error"] = event.error or event

            self._spawn(
                self.trigger(actions, context.derive(bindings), f"WebSocket '{key}' {event.type} handler")
            )

        return listener

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    def _normalize(actions: Any) -> List[Action]:
        if actions is None:
            return []
        if isinstance(actions, Action):
            return [actions]
        return parse_actions(actions)
