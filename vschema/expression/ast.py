"""
Expression AST

Closed set of node types produced by the parser. Every node evaluates
against an environment mapping of names to values; nothing is delegated
to the host interpreter. Member access is restricted:
- Mapping keys, list indices and `length`
- Allow-listed string/array/number methods
- Public, non-callable attributes of host objects
"""

from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Set, Tuple

from ..exceptions.errors import EvaluationError
from . import values as js


class Deferred:
    """Environment value resolved on first identifier read (computed values)"""

    def resolve(self) -> Any:
        raise NotImplementedError


# Marks a short-circuited optional chain
_SHORT_CIRCUIT = object()


def describe(value: Any) -> str:
    if value is None:
        return "undefined"
    return js.js_typeof(value)


def get_member(obj: Any, name: Any) -> Any:
    """
    Restricted property read

    Args:
        obj: Receiver value (never None)
        name: Property name or index

    Returns:
        Property value, or None when the property does not exist
    """
    if isinstance(obj, Mapping):
        if name in obj:
            return obj[name]
        if not isinstance(name, str):
            return obj.get(js.to_js_string(name))
        return None

    if isinstance(obj, (list, tuple)):
        if js.is_number(name):
            if isinstance(name, float):
                if not name.is_integer():
                    return None
                name = int(name)
            return obj[name] if 0 <= name < len(obj) else None
        if name == "length":
            return len(obj)
        if isinstance(name, str) and name.isdigit():
            return get_member(obj, int(name))
        method = js.ARRAY_METHODS.get(name)
        return BoundMethod(obj, name, method) if method else None

    if isinstance(obj, str):
        if js.is_number(name):
            index = int(name) if float(name).is_integer() else -1
            return obj[index] if 0 <= index < len(obj) else None
        if name == "length":
            return len(obj)
        method = js.STRING_METHODS.get(name)
        return BoundMethod(obj, name, method) if method else None

    if isinstance(obj, bool):
        method = js.BOOLEAN_METHODS.get(name)
        return BoundMethod(obj, name, method) if method else None

    if js.is_number(obj):
        method = js.NUMBER_METHODS.get(name)
        return BoundMethod(obj, name, method) if method else None

    if isinstance(obj, BaseException):
        if name == "name":
            return type(obj).__name__
        if name == "message":
            return getattr(obj, "message", None) or str(obj)

    # Host objects: public data attributes only
    if not isinstance(name, str) or name.startswith("_"):
        return None
    attr = getattr(obj, name, None)
    if callable(attr):
        return None
    return attr


class BoundMethod:
    """Allow-listed value method bound to its receiver"""

    __slots__ = ("receiver", "name", "function")

    def __init__(self, receiver: Any, name: str, function):
        self.receiver = receiver
        self.name = name
        self.function = function

    def __call__(self, *args: Any) -> Any:
        return self.function(self.receiver, *args)

    def __repr__(self):
        return f"<method {self.name}>"


class Node:
    """AST node base class"""

    def evaluate(self, env: Dict[str, Any]) -> Any:
        """Evaluate"""
        raise NotImplementedError

    def children(self) -> Tuple["Node", ...]:
        return ()

    def static_path(self) -> Optional[str]:
        """State path this node reads, when it is a plain identifier/member chain"""
        return None

    def collect_reads(self, reads: Set[str]) -> None:
        """Collect every state path this node may read"""
        for child in self.children():
            child.collect_reads(reads)


class Literal(Node):
    """Literal value node"""

    def __init__(self, value: Any):
        self.value = value

    def evaluate(self, env: Dict[str, Any]) -> Any:
        return self.value


class ArrayLiteral(Node):
    def __init__(self, elements: List[Node], spreads: Optional[Set[int]] = None):
        self.elements = elements
        self.spreads = spreads or set()

    def children(self):
        return tuple(self.elements)

    def evaluate(self, env: Dict[str, Any]) -> Any:
        result = []
        for i, element in enumerate(self.elements):
            value = element.evaluate(env)
            if i in self.spreads:
                if not isinstance(value, (list, tuple, str)):
                    raise EvaluationError(f"{describe(value)} is not iterable")
                result.extend(value)
            else:
                result.append(value)
        return result


class ObjectLiteral(Node):
    def __init__(self, entries: List[Tuple[Optional[Node], Node]]):
        # A None key marks a spread entry
        self.entries = entries

    def children(self):
        nodes = []
        for key, value in self.entries:
            if key is not None:
                nodes.append(key)
            nodes.append(value)
        return tuple(nodes)

    def evaluate(self, env: Dict[str, Any]) -> Any:
        result = {}
        for key, value_node in self.entries:
            value = value_node.evaluate(env)
            if key is None:
                if isinstance(value, Mapping):
                    result.update(value)
                elif value is not None:
                    raise EvaluationError(f"Cannot spread {describe(value)} into object")
                continue
            result[js.to_js_string(key.evaluate(env))] = value
        return result


class Identifier(Node):
    """Identifier node - references a name in the environment"""

    def __init__(self, name: str):
        self.name = name

    def static_path(self) -> Optional[str]:
        return self.name

    def collect_reads(self, reads: Set[str]) -> None:
        reads.add(self.name)

    def evaluate(self, env: Dict[str, Any]) -> Any:
        try:
            value = env[self.name]
        except KeyError:
            raise EvaluationError(f"{self.name} is not defined", {"identifier": self.name})
        if isinstance(value, Deferred):
            return value.resolve()
        return value


class _Chain(Node):
    """Shared optional-chain handling for member, index and call nodes"""

    optional = False

    def evaluate(self, env: Dict[str, Any]) -> Any:
        value = self.evaluate_chain(env)
        return None if value is _SHORT_CIRCUIT else value

    def evaluate_chain(self, env: Dict[str, Any]) -> Any:
        raise NotImplementedError

    @staticmethod
    def _base(node: Node, env: Dict[str, Any]) -> Any:
        if isinstance(node, _Chain):
            return node.evaluate_chain(env)
        return node.evaluate(env)


class Member(_Chain):
    """obj.name / obj?.name"""

    def __init__(self, obj: Node, name: str, optional: bool = False):
        self.obj = obj
        self.name = name
        self.optional = optional

    def children(self):
        return (self.obj,)

    def static_path(self) -> Optional[str]:
        base = self.obj.static_path()
        return f"{base}.{self.name}" if base is not None else None

    def collect_reads(self, reads: Set[str]) -> None:
        path = self.static_path()
        if path is not None:
            reads.add(path)
        else:
            self.obj.collect_reads(reads)

    def evaluate_chain(self, env: Dict[str, Any]) -> Any:
        base = self._base(self.obj, env)
        if base is _SHORT_CIRCUIT:
            return base
        if base is None:
            if self.optional:
                return _SHORT_CIRCUIT
            raise EvaluationError(
                f"Cannot read properties of undefined (reading '{self.name}')"
            )
        return get_member(base, self.name)


class Index(_Chain):
    """obj[expr] / obj?.[expr]"""

    def __init__(self, obj: Node, index: Node, optional: bool = False):
        self.obj = obj
        self.index = index
        self.optional = optional

    def children(self):
        return (self.obj, self.index)

    def static_path(self) -> Optional[str]:
        base = self.obj.static_path()
        if base is None or not isinstance(self.index, Literal):
            return None
        key = self.index.value
        if js.is_number(key) and float(key).is_integer() and key >= 0:
            return f"{base}[{int(key)}]"
        if isinstance(key, str) and key and not any(c in key for c in ".[] "):
            return f"{base}.{key}"
        return None

    def collect_reads(self, reads: Set[str]) -> None:
        path = self.static_path()
        if path is not None:
            reads.add(path)
            return
        # Dynamic key: depend on the whole container
        base = self.obj.static_path()
        if base is not None:
            reads.add(base)
        else:
            self.obj.collect_reads(reads)
        self.index.collect_reads(reads)

    def evaluate_chain(self, env: Dict[str, Any]) -> Any:
        base = self._base(self.obj, env)
        if base is _SHORT_CIRCUIT:
            return base
        key = self.index.evaluate(env)
        if base is None:
            if self.optional:
                return _SHORT_CIRCUIT
            raise EvaluationError(
                f"Cannot read properties of undefined (reading '{js.to_js_string(key)}')"
            )
        return get_member(base, key)


class Call(_Chain):
    """callee(args) / callee?.(args)"""

    def __init__(self, callee: Node, args: List[Node], optional: bool = False, spreads=None):
        self.callee = callee
        self.args = args
        self.optional = optional
        self.spreads = spreads or set()

    def children(self):
        return (self.callee, *self.args)

    def collect_reads(self, reads: Set[str]) -> None:
        # Method calls read their receiver as a whole
        if isinstance(self.callee, (Member, Index)):
            base = self.callee.obj.static_path()
            if base is not None:
                reads.add(base)
            else:
                self.callee.obj.collect_reads(reads)
            if isinstance(self.callee, Index):
                self.callee.index.collect_reads(reads)
        else:
            self.callee.collect_reads(reads)
        for arg in self.args:
            arg.collect_reads(reads)

    def evaluate_chain(self, env: Dict[str, Any]) -> Any:
        function = self._base(self.callee, env)
        if function is _SHORT_CIRCUIT:
            return function
        if function is None and self.optional:
            return _SHORT_CIRCUIT
        if not callable(function):
            raise EvaluationError(f"{self._callee_name()} is not a function")

        args = []
        for i, arg in enumerate(self.args):
            value = arg.evaluate(env)
            if i in self.spreads:
                if not isinstance(value, (list, tuple, str)):
                    raise EvaluationError(f"{describe(value)} is not iterable")
                args.extend(value)
            else:
                args.append(value)
        return function(*args)

    def _callee_name(self) -> str:
        path = self.callee.static_path()
        if path is not None:
            return path
        if isinstance(self.callee, Member):
            return self.callee.name
        return "expression"


class Unary(Node):
    def __init__(self, op: str, operand: Node):
        self.op = op
        self.operand = operand

    def children(self):
        return (self.operand,)

    def evaluate(self, env: Dict[str, Any]) -> Any:
        if self.op == "typeof":
            # typeof tolerates undefined identifiers
            try:
                value = self.operand.evaluate(env)
            except EvaluationError:
                if isinstance(self.operand, Identifier):
                    return "undefined"
                raise
            return js.js_typeof(value)

        value = self.operand.evaluate(env)
        if self.op == "!":
            return not js.is_truthy(value)
        if self.op == "-":
            return js.negate(value)
        if self.op == "+":
            return js.to_number(value)
        raise EvaluationError(f"Unknown unary operator: {self.op}")


_BINARY = {
    "+": js.add,
    "-": js.subtract,
    "*": js.multiply,
    "/": js.divide,
    "%": js.remainder,
    "**": js.power,
    "==": js.loose_equals,
    "!=": lambda l, r: not js.loose_equals(l, r),
    "===": js.strict_equals,
    "!==": lambda l, r: not js.strict_equals(l, r),
    "<": lambda l, r: js.compare("<", l, r),
    "<=": lambda l, r: js.compare("<=", l, r),
    ">": lambda l, r: js.compare(">", l, r),
    ">=": lambda l, r: js.compare(">=", l, r),
}


def apply_binary(op: str, left: Any, right: Any) -> Any:
    try:
        function = _BINARY[op]
    except KeyError:
        raise EvaluationError(f"Unknown operator: {op}")
    return function(left, right)


class Binary(Node):
    def __init__(self, op: str, left: Node, right: Node):
        self.op = op
        self.left = left
        self.right = right

    def children(self):
        return (self.left, self.right)

    def evaluate(self, env: Dict[str, Any]) -> Any:
        return apply_binary(self.op, self.left.evaluate(env), self.right.evaluate(env))


class Logical(Node):
    """Short-circuit && || ?? returning operand values"""

    def __init__(self, op: str, left: Node, right: Node):
        self.op = op
        self.left = left
        self.right = right

    def children(self):
        return (self.left, self.right)

    def evaluate(self, env: Dict[str, Any]) -> Any:
        left = self.left.evaluate(env)
        if self.op == "&&":
            return self.right.evaluate(env) if js.is_truthy(left) else left
        if self.op == "||":
            return left if js.is_truthy(left) else self.right.evaluate(env)
        return left if left is not None else self.right.evaluate(env)


class Conditional(Node):
    def __init__(self, test: Node, consequent: Node, alternate: Node):
        self.test = test
        self.consequent = consequent
        self.alternate = alternate

    def children(self):
        return (self.test, self.consequent, self.alternate)

    def evaluate(self, env: Dict[str, Any]) -> Any:
        if js.is_truthy(self.test.evaluate(env)):
            return self.consequent.evaluate(env)
        return self.alternate.evaluate(env)


def collect_reads(node: Node) -> Set[str]:
    """Static read-set of an expression tree"""
    reads: Set[str] = set()
    node.collect_reads(reads)
    return reads
