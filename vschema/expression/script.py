"""
Script Runner

Restricted multi-statement bodies for `script` actions:
- let / const / var declarations
- Assignment (= += -= *= /= %=) to locals or to members of reachable objects
- Expression statements
- if (...) { ... } else if (...) { ... } else { ... }
- return
- Statement-level `await`

Statements end at `;`, a newline or `}`. The body passes the same
security check as single expressions before it is parsed.
"""

import inspect
import logging
from collections.abc import Mapping, MutableMapping
from typing import Any, Dict, List, Optional

from ..exceptions.errors import EvaluationError
from . import values as js
from .ast import Identifier, Index, Member, Node, apply_binary
from .builtins import BuiltinNamespace, create_builtins
from .evaluator import LRUCache
from .lexer import TokenType
from .parser import RESERVED_WORDS, Parser
from .security import ensure_safe

logger = logging.getLogger(__name__)

ASSIGNMENT_OPS = ("=", "+=", "-=", "*=", "/=", "%=", "**=")
DECLARATION_KINDS = ("let", "const", "var")


class _Return:
    """Signals a `return` unwinding the statement list"""

    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value


class ScriptRuntime:
    """Mutable environment of one script execution"""

    def __init__(self, bindings: Dict[str, Any]):
        self.env: Dict[str, Any] = create_builtins()
        self.env.update(bindings)
        self.kinds: Dict[str, str] = {name: "binding" for name in bindings}


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Statement:
    """Statement base class"""

    async def execute(self, runtime: ScriptRuntime) -> Optional[_Return]:
        raise NotImplementedError


class VarDecl(Statement):
    def __init__(self, kind: str, name: str, value: Optional[Node]):
        self.kind = kind
        self.name = name
        self.value = value

    async def execute(self, runtime: ScriptRuntime) -> Optional[_Return]:
        if runtime.kinds.get(self.name) in ("let", "const"):
            raise EvaluationError(f"Identifier '{self.name}' has already been declared")
        value = None
        if self.value is not None:
            value = await _resolve(self.value.evaluate(runtime.env))
        runtime.env[self.name] = value
        runtime.kinds[self.name] = self.kind
        return None


class Assign(Statement):
    def __init__(self, target: Node, op: str, value: Node):
        self.target = target
        self.op = op
        self.value = value

    async def execute(self, runtime: ScriptRuntime) -> Optional[_Return]:
        value = await _resolve(self.value.evaluate(runtime.env))
        if self.op != "=":
            current = self.target.evaluate(runtime.env)
            value = apply_binary(self.op[:-1], current, value)

        if isinstance(self.target, Identifier):
            self._assign_local(runtime, self.target.name, value)
        elif isinstance(self.target, Member):
            set_member(self.target.obj.evaluate(runtime.env), self.target.name, value)
        elif isinstance(self.target, Index):
            obj = self.target.obj.evaluate(runtime.env)
            set_member(obj, self.target.index.evaluate(runtime.env), value)
        return None

    @staticmethod
    def _assign_local(runtime: ScriptRuntime, name: str, value: Any) -> None:
        kind = runtime.kinds.get(name)
        if kind is None:
            raise EvaluationError(f"{name} is not defined")
        if kind in ("const", "binding"):
            raise EvaluationError(f"Assignment to constant variable '{name}'")
        runtime.env[name] = value


class ExpressionStatement(Statement):
    def __init__(self, expression: Node):
        self.expression = expression

    async def execute(self, runtime: ScriptRuntime) -> Optional[_Return]:
        await _resolve(self.expression.evaluate(runtime.env))
        return None


class IfStatement(Statement):
    def __init__(
        self,
        test: Node,
        consequent: List[Statement],
        alternate: Optional[List[Statement]] = None,
    ):
        self.test = test
        self.consequent = consequent
        self.alternate = alternate

    async def execute(self, runtime: ScriptRuntime) -> Optional[_Return]:
        if js.is_truthy(await _resolve(self.test.evaluate(runtime.env))):
            return await run_statements(self.consequent, runtime)
        if self.alternate is not None:
            return await run_statements(self.alternate, runtime)
        return None


class ReturnStatement(Statement):
    def __init__(self, value: Optional[Node]):
        self.value = value

    async def execute(self, runtime: ScriptRuntime) -> Optional[_Return]:
        if self.value is None:
            return _Return(None)
        return _Return(await _resolve(self.value.evaluate(runtime.env)))


async def run_statements(statements: List[Statement], runtime: ScriptRuntime) -> Optional[_Return]:
    for statement in statements:
        signal = await statement.execute(runtime)
        if signal is not None:
            return signal
    return None


def set_member(obj: Any, key: Any, value: Any) -> None:
    """Restricted property write used by script assignments"""
    if obj is None:
        raise EvaluationError(
            f"Cannot set properties of undefined (setting '{js.to_js_string(key)}')"
        )
    if isinstance(obj, BuiltinNamespace):
        raise EvaluationError(f"Cannot assign to read-only built-in {obj.name}")
    if isinstance(obj, MutableMapping):
        obj[key if isinstance(key, str) else js.to_js_string(key)] = value
        return
    if isinstance(obj, list):
        index = js.to_number(key)
        if not js.is_number(index) or not float(index).is_integer() or index < 0:
            raise EvaluationError(f"Invalid array index: {js.to_js_string(key)}")
        index = int(index)
        if index < len(obj):
            obj[index] = value
        else:
            obj.extend([None] * (index - len(obj)))
            obj.append(value)
        return
    raise EvaluationError(
        f"Cannot assign property '{js.to_js_string(key)}' on {js.js_typeof(obj)}"
    )


class ScriptParser(Parser):
    """Statement-level extension of the expression parser"""

    def parse_program(self) -> List[Statement]:
        statements = []
        while self.current_token.type != TokenType.EOF:
            if self.current_token.type == TokenType.SEMICOLON:
                self.advance()
                continue
            statements.append(self.parse_statement())
        return statements

    def parse_statement(self) -> Statement:
        token = self.current_token

        if token.type == TokenType.IDENTIFIER and token.value in DECLARATION_KINDS:
            return self.parse_declaration()

        if self.check_word("if"):
            return self.parse_if()

        if self.check_word("return"):
            self.advance()
            if self._at_statement_end():
                self._end_statement()
                return ReturnStatement(None)
            value = self._awaitable_expression()
            self._end_statement()
            return ReturnStatement(value)

        expression = self._awaitable_expression()
        if self.check_operator(*ASSIGNMENT_OPS):
            if not isinstance(expression, (Identifier, Member, Index)):
                raise self.error("Invalid assignment target")
            op = self.advance().value
            value = self._awaitable_expression()
            self._end_statement()
            return Assign(expression, op, value)

        self._end_statement()
        return ExpressionStatement(expression)

    def parse_declaration(self) -> Statement:
        kind = self.advance().value
        name_token = self.expect(TokenType.IDENTIFIER)
        if name_token.value in RESERVED_WORDS:
            raise self.error(f"Unexpected keyword '{name_token.value}' in declaration")
        value = None
        if self.check_operator("="):
            self.advance()
            value = self._awaitable_expression()
        elif kind == "const":
            raise self.error("Missing initializer in const declaration")
        self._end_statement()
        return VarDecl(kind, name_token.value, value)

    def parse_if(self) -> Statement:
        self.advance()
        self.expect(TokenType.LPAREN)
        test = self.parse_expression()
        self.expect(TokenType.RPAREN)
        consequent = self._block_or_statement()
        alternate = None
        if self.check_word("else"):
            self.advance()
            if self.check_word("if"):
                alternate = [self.parse_if()]
            else:
                alternate = self._block_or_statement()
        return IfStatement(test, consequent, alternate)

    def _block_or_statement(self) -> List[Statement]:
        if self.current_token.type != TokenType.LBRACE:
            return [self.parse_statement()]
        self.advance()
        statements = []
        while self.current_token.type != TokenType.RBRACE:
            if self.current_token.type == TokenType.EOF:
                raise self.error("Unterminated block")
            if self.current_token.type == TokenType.SEMICOLON:
                self.advance()
                continue
            statements.append(self.parse_statement())
        self.expect(TokenType.RBRACE)
        return statements

    def _awaitable_expression(self) -> Node:
        # `await` is implicit: awaitable statement results are always awaited
        if self.check_word("await"):
            self.advance()
        return self.parse_expression()

    def _at_statement_end(self) -> bool:
        token = self.current_token
        return token.type in (TokenType.SEMICOLON, TokenType.RBRACE, TokenType.EOF) or (
            token.newline_before
        )

    def _end_statement(self) -> None:
        token = self.current_token
        if token.type == TokenType.SEMICOLON:
            self.advance()
            return
        if token.type in (TokenType.RBRACE, TokenType.EOF) or token.newline_before:
            return
        raise self.error()


class Script:
    """Parsed script body"""

    def __init__(self, source: str, statements: List[Statement]):
        self.source = source
        self.statements = statements

    async def execute(self, bindings: Dict[str, Any]) -> Any:
        runtime = ScriptRuntime(bindings)
        signal = await run_statements(self.statements, runtime)
        return signal.value if signal is not None else None


class ScriptRunner:
    """
    Compiles and runs script bodies

    Parsed bodies are cached by source text.
    """

    def __init__(self, cache_size: int = 256):
        self._cache = LRUCache(cache_size)

    def compile(self, source: str) -> Script:
        """
        Security-check and parse a script body

        Raises:
            SecurityViolation: Body matches the deny-list
            ExpressionSyntaxError: Body does not parse
        """
        ensure_safe(source)
        script = self._cache.get(source)
        if script is None:
            script = Script(source, ScriptParser(source).parse_program())
            self._cache.set(source, script)
            logger.debug(f"Compiled script ({len(script.statements)} statements)")
        return script

    async def run(self, source: str, bindings: Mapping) -> Any:
        """
        Run a script body

        Args:
            source: Script text
            bindings: Names visible to the script (state, computed, $event...)

        Returns:
            Value of the executed `return` statement, or None
        """
        script = self.compile(source)
        return await script.execute(dict(bindings))
