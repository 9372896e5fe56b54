"""
Expression Built-ins

Fixed set of safe globals available to every expression. A fresh set is
created per evaluation so an expression can never leak mutations into
another one.
"""

import json
import math
import random
import re
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote, unquote

from ..exceptions.errors import EvaluationError
from . import values as js


class BuiltinNamespace(dict):
    """
    Namespace object such as Math or JSON

    Members are exposed as mapping keys; namespaces such as String or Number
    are also callable as conversion functions.
    """

    def __init__(self, name: str, members: Dict[str, Any], call: Optional[Callable] = None):
        super().__init__(members)
        self.name = name
        self._call = call

    def __call__(self, *args: Any) -> Any:
        if self._call is None:
            raise EvaluationError(f"{self.name} is not a function")
        return self._call(*args)

    def __repr__(self):
        return f"[object {self.name}]"


def to_plain(value: Any) -> Any:
    """Convert nested containers to plain dict/list, integral floats to int"""
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items() if not callable(v) or isinstance(v, Mapping)}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return js.normalize_number(value)
    return value


# -- Math --------------------------------------------------------------------


def _math_round(x):
    number = js.to_number(x)
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return number
    return js.to_double(int(math.floor(number + 0.5)))


def _math_max(*args):
    if not args:
        return -js.INFINITY
    numbers = [js.to_number(a) for a in args]
    if any(isinstance(n, float) and math.isnan(n) for n in numbers):
        return js.NAN
    return max(numbers)


def _math_min(*args):
    if not args:
        return js.INFINITY
    numbers = [js.to_number(a) for a in args]
    if any(isinstance(n, float) and math.isnan(n) for n in numbers):
        return js.NAN
    return min(numbers)


def _unary_math(function: Callable[[float], Any]) -> Callable[[Any], Any]:
    def wrapped(x=None):
        number = js.to_number(x)
        try:
            return function(number)
        except (ValueError, OverflowError):
            return js.NAN

    return wrapped


def _sign(x):
    if math.isnan(x):
        return js.NAN
    return (x > 0) - (x < 0)


def _floor(x):
    if isinstance(x, float) and (math.isnan(x) or math.isinf(x)):
        return x
    return js.to_double(math.floor(x))


def _ceil(x):
    if isinstance(x, float) and (math.isnan(x) or math.isinf(x)):
        return x
    return js.to_double(math.ceil(x))


def _trunc(x):
    if isinstance(x, float) and (math.isnan(x) or math.isinf(x)):
        return x
    return js.to_double(math.trunc(x))


def _create_math() -> BuiltinNamespace:
    return BuiltinNamespace(
        "Math",
        {
            "PI": math.pi,
            "E": math.e,
            "LN2": math.log(2),
            "LN10": math.log(10),
            "SQRT2": math.sqrt(2),
            "abs": _unary_math(abs),
            "ceil": _unary_math(_ceil),
            "floor": _unary_math(_floor),
            "round": _math_round,
            "trunc": _unary_math(_trunc),
            "sign": _unary_math(_sign),
            "sqrt": _unary_math(math.sqrt),
            "cbrt": _unary_math(lambda x: math.copysign(abs(x) ** (1 / 3), x)),
            "exp": _unary_math(math.exp),
            "log": _unary_math(lambda x: -js.INFINITY if x == 0 else math.log(x)),
            "log10": _unary_math(lambda x: -js.INFINITY if x == 0 else math.log10(x)),
            "log2": _unary_math(lambda x: -js.INFINITY if x == 0 else math.log2(x)),
            "sin": _unary_math(math.sin),
            "cos": _unary_math(math.cos),
            "tan": _unary_math(math.tan),
            "max": _math_max,
            "min": _math_min,
            "pow": js.power,
            "random": random.random,
        },
    )


# -- JSON --------------------------------------------------------------------


def _json_stringify(value=None, replacer=None, indent=None):
    if value is None:
        return "null"
    if callable(value) and not isinstance(value, Mapping):
        return None
    spacing = None
    if js.is_number(indent):
        spacing = int(indent) or None
    elif isinstance(indent, str) and indent:
        spacing = indent
    separators = (",", ":") if spacing is None else (",", ": ")
    return json.dumps(to_plain(value), ensure_ascii=False, indent=spacing, separators=separators)


def _json_parse(text=None):
    try:
        return json.loads(js.to_js_string(text))
    except (TypeError, ValueError) as e:
        raise EvaluationError(f"JSON.parse: {e}")


def _create_json() -> BuiltinNamespace:
    return BuiltinNamespace("JSON", {"stringify": _json_stringify, "parse": _json_parse})


# -- Conversions ---------------------------------------------------------------


_INT_PREFIX = re.compile(r"^\s*([+-]?)(0[xX][0-9a-fA-F]+|\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?))")


def parse_int(value=None, radix=None):
    text = js.to_js_string(value)
    if radix is not None and int(js.to_number(radix)) not in (0, 10, 16):
        base = int(js.to_number(radix))
        match = re.match(r"^\s*([+-]?)([0-9a-zA-Z]+)", text)
        if not match:
            return js.NAN
        digits = ""
        for char in match.group(2):
            if int(char, 36) >= base:
                break
            digits += char
        if not digits:
            return js.NAN
        result = int(digits, base)
        return js.to_double(-result if match.group(1) == "-" else result)

    match = _INT_PREFIX.match(text)
    if not match:
        return js.NAN
    sign, digits = match.groups()
    result = int(digits, 16) if digits.lower().startswith("0x") else int(digits)
    return js.to_double(-result if sign == "-" else result)


def parse_float(value=None):
    match = _FLOAT_PREFIX.match(js.to_js_string(value))
    if not match:
        return js.NAN
    text = match.group(1)
    if text.lstrip("+-") == "Infinity":
        return -js.INFINITY if text.startswith("-") else js.INFINITY
    return js.normalize_number(float(text))


def is_nan(value=None):
    number = js.to_number(value)
    return isinstance(number, float) and math.isnan(number)


def is_finite(value=None):
    number = js.to_number(value)
    return not (isinstance(number, float) and (math.isnan(number) or math.isinf(number)))


def _number_is_integer(value=None):
    return js.is_number(value) and is_finite(value) and float(value).is_integer()


def _create_number() -> BuiltinNamespace:
    return BuiltinNamespace(
        "Number",
        {
            "isInteger": _number_is_integer,
            "isFinite": lambda v=None: js.is_number(v) and is_finite(v),
            "isNaN": lambda v=None: isinstance(v, float) and math.isnan(v),
            "parseFloat": parse_float,
            "parseInt": parse_int,
            "MAX_SAFE_INTEGER": 2**53 - 1,
            "MIN_SAFE_INTEGER": -(2**53 - 1),
            "EPSILON": 2.0**-52,
        },
        call=lambda v=0: js.to_number(v),
    )


def _create_string() -> BuiltinNamespace:
    return BuiltinNamespace(
        "String",
        {"fromCharCode": lambda *codes: "".join(chr(int(js.to_number(c))) for c in codes)},
        call=lambda v="": js.to_js_string(v),
    )


def _create_boolean() -> BuiltinNamespace:
    return BuiltinNamespace("Boolean", {}, call=lambda v=None: js.is_truthy(v))


def _array_from(value=None):
    if isinstance(value, (list, tuple, str)):
        return list(value)
    if isinstance(value, Mapping):
        length = value.get("length")
        if js.is_number(length):
            return [None] * int(length)
    return []


def _create_array() -> BuiltinNamespace:
    return BuiltinNamespace(
        "Array",
        {
            "isArray": lambda v=None: isinstance(v, (list, tuple)),
            "of": lambda *items: list(items),
            "from": _array_from,
        },
        call=lambda *items: list(items),
    )


def _object_entries(value=None):
    if isinstance(value, Mapping):
        return [[k, v] for k, v in value.items()]
    if isinstance(value, (list, tuple)):
        return [[str(i), v] for i, v in enumerate(value)]
    return []


def _create_object() -> BuiltinNamespace:
    return BuiltinNamespace(
        "Object",
        {
            "keys": lambda v=None: [entry[0] for entry in _object_entries(v)],
            "values": lambda v=None: [entry[1] for entry in _object_entries(v)],
            "entries": _object_entries,
            "assign": lambda target, *sources: _object_assign(target, sources),
        },
    )


def _object_assign(target, sources):
    if not isinstance(target, dict):
        raise EvaluationError("Object.assign target must be an object")
    for source in sources:
        if isinstance(source, Mapping):
            target.update(source)
    return target


def _date_parse(text=None):
    try:
        parsed = datetime.fromisoformat(js.to_js_string(text).replace("Z", "+00:00"))
    except ValueError:
        return js.NAN
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def _create_date() -> BuiltinNamespace:
    return BuiltinNamespace(
        "Date",
        {"now": lambda: int(time.time() * 1000), "parse": _date_parse},
        call=lambda *args: datetime.now(timezone.utc).isoformat(),
    )


# -- URI ---------------------------------------------------------------------

_URI_RESERVED = ";,/?:@&=+$#"
_URI_UNRESERVED_MARKS = "-_.!~*'()"


def encode_uri_component(value=None):
    return quote(js.to_js_string(value), safe=_URI_UNRESERVED_MARKS)


def encode_uri(value=None):
    return quote(js.to_js_string(value), safe=_URI_UNRESERVED_MARKS + _URI_RESERVED)


def decode_uri_component(value=None):
    return unquote(js.to_js_string(value), errors="strict")


def decode_uri(value=None):
    text = js.to_js_string(value)
    # Reserved characters stay encoded
    return re.sub(
        r"(%[0-9a-fA-F]{2})+",
        lambda m: m.group(0)
        if unquote(m.group(0)) in _URI_RESERVED
        else unquote(m.group(0)),
        text,
    )


def create_builtins() -> Dict[str, Any]:
    """Create a fresh set of expression globals"""
    return {
        "Math": _create_math(),
        "JSON": _create_json(),
        "Array": _create_array(),
        "String": _create_string(),
        "Number": _create_number(),
        "Boolean": _create_boolean(),
        "Object": _create_object(),
        "Date": _create_date(),
        "parseInt": parse_int,
        "parseFloat": parse_float,
        "isNaN": is_nan,
        "isFinite": is_finite,
        "encodeURIComponent": encode_uri_component,
        "decodeURIComponent": decode_uri_component,
        "encodeURI": encode_uri,
        "decodeURI": decode_uri,
    }


BUILTIN_NAMES = frozenset(create_builtins())
