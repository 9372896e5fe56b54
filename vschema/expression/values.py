"""
JavaScript-like value semantics

Schema expressions are written in a JavaScript-flavoured syntax, so their
operators follow JavaScript rules rather than Python's: truthiness, string
concatenation with `+`, IEEE-754 division, loose/strict equality and the
canonical string conversion used for template substitution.

Python None stands for both `null` and `undefined`.
"""

import math
from collections.abc import Mapping
from typing import Any, Callable, Dict

NAN = float("nan")
INFINITY = float("inf")

# Integers beyond this magnitude are no longer exact as doubles
SAFE_INTEGER_LIMIT = 2**53


def is_number(value: Any) -> bool:
    """Check for a non-boolean numeric value"""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_truthy(value: Any) -> bool:
    """JavaScript truthiness: 0, '', NaN, null and false are falsy; [] and {} are truthy"""
    if value is None or value is False:
        return False
    if value is True:
        return True
    if is_number(value):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return len(value) > 0
    return True


def to_double(value: Any) -> Any:
    """
    Round a number to double precision

    Python ints are unbounded, so every arithmetic result passes through
    here. Overflow becomes +/-Infinity; integral results that are still
    exact stay int.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        if -SAFE_INTEGER_LIMIT < value < SAFE_INTEGER_LIMIT:
            return value
        try:
            return float(value)
        except OverflowError:
            return INFINITY if value > 0 else -INFINITY
    return normalize_number(value)


def to_number(value: Any) -> Any:
    """ToNumber conversion; returns int where the result is integral and exact"""
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if is_number(value):
        return to_double(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if "_" in text:
            return NAN
        if text.lower().startswith(("0x", "0o", "0b")):
            try:
                return to_double(int(text, 0))
            except ValueError:
                return NAN
        if text in ("Infinity", "+Infinity"):
            return INFINITY
        if text == "-Infinity":
            return -INFINITY
        if text.lower().lstrip("+-") in ("inf", "infinity", "nan"):
            return NAN
        try:
            return normalize_number(float(text))
        except ValueError:
            return NAN
    if isinstance(value, (list, tuple)):
        if not value:
            return 0
        if len(value) == 1:
            return to_number(value[0])
        return NAN
    return NAN


def format_number(value: Any) -> str:
    """
    Canonical number-to-string conversion

    Magnitudes of 1e21 and above, or below 1e-6, use exponent notation
    (`1e+21`, `1.5e-7`); everything else is positional.
    """
    value = to_double(value)
    if not isinstance(value, float):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    if "e" not in text:
        return text
    mantissa, exponent = text.split("e")
    exponent = int(exponent)
    if exponent >= 21 or exponent < -6:
        return f"{mantissa}e{'+' if exponent > 0 else '-'}{abs(exponent)}"
    # repr switches to exponents below 1e-4; render 1e-5 and 1e-6 positionally
    digits = mantissa.lstrip("-").replace(".", "")
    sign = "-" if value < 0 else ""
    return f"{sign}0.{'0' * (-exponent - 1)}{digits}"


def to_js_string(value: Any) -> str:
    """Canonical string conversion used for template substitution and `+` concatenation"""
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return value
    if is_number(value):
        return format_number(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else to_js_string(item) for item in value)
    if isinstance(value, Mapping):
        return "[object Object]"
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if callable(value):
        return "function"
    return str(value)


def js_typeof(value: Any) -> str:
    if value is None:
        return "undefined"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if callable(value) and not isinstance(value, Mapping):
        return "function"
    return "object"


def normalize_number(value: Any) -> Any:
    """Collapse integral floats produced by exact integer arithmetic back to int"""
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        return int(value)
    return value


# -- Arithmetic --------------------------------------------------------------


def _is_stringish(value: Any) -> bool:
    return isinstance(value, (str, list, tuple, Mapping))


def add(left: Any, right: Any) -> Any:
    if _is_stringish(left) or _is_stringish(right):
        return to_js_string(left) + to_js_string(right)
    return to_double(to_number(left) + to_number(right))


def subtract(left: Any, right: Any) -> Any:
    return to_double(to_number(left) - to_number(right))


def multiply(left: Any, right: Any) -> Any:
    return to_double(to_number(left) * to_number(right))


def divide(left: Any, right: Any) -> Any:
    l, r = to_number(left), to_number(right)
    if _isnan(l) or _isnan(r):
        return NAN
    if r == 0:
        if l == 0:
            return NAN
        sign = math.copysign(1, l) * math.copysign(1, r)
        return INFINITY if sign > 0 else -INFINITY
    if isinstance(l, int) and isinstance(r, int) and l % r == 0:
        return l // r
    try:
        return normalize_number(l / r)
    except OverflowError:
        return INFINITY if (l > 0) == (r > 0) else -INFINITY


def remainder(left: Any, right: Any) -> Any:
    l, r = to_number(left), to_number(right)
    if _isnan(l) or _isnan(r) or r == 0 or math.isinf(l):
        return NAN
    if math.isinf(r):
        return l
    if isinstance(l, int) and isinstance(r, int):
        result = abs(l) % abs(r)
        return -result if l < 0 else result
    return math.fmod(l, r)


def power(left: Any, right: Any) -> Any:
    l, r = to_number(left), to_number(right)
    if _isnan(l) or _isnan(r):
        return NAN
    if l < 0 and not float(r).is_integer():
        return NAN
    if abs(l) == 1 and math.isinf(r):
        return NAN
    # Evaluate in floats so a tower like 9 ** 9 ** 8 never builds a bignum
    try:
        return normalize_number(float(l) ** float(r))
    except ZeroDivisionError:
        return INFINITY
    except OverflowError:
        return INFINITY if l > 0 or float(r) % 2 == 0 else -INFINITY


def negate(value: Any) -> Any:
    number = to_number(value)
    if number == 0 and isinstance(number, int):
        return 0
    return -number


def _isnan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


# -- Comparison --------------------------------------------------------------


def compare(op: str, left: Any, right: Any) -> bool:
    """Relational comparison (< <= > >=)"""
    if isinstance(left, str) and isinstance(right, str):
        l, r = left, right
    else:
        l, r = to_number(left), to_number(right)
        if _isnan(l) or _isnan(r):
            return False
    if op == "<":
        return l < r
    if op == "<=":
        return l <= r
    if op == ">":
        return l > r
    return l >= r


def strict_equals(left: Any, right: Any) -> bool:
    """=== : same type category and same value; containers compare by identity"""
    if left is None or right is None:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if isinstance(left, (str, int, float)) or isinstance(right, (str, int, float)):
        return False
    return left is right


def loose_equals(left: Any, right: Any) -> bool:
    """== : numeric coercion between numbers, strings and booleans"""
    if left is None or right is None:
        return left is right
    primitive = (str, int, float, bool)
    if isinstance(left, primitive) and isinstance(right, primitive):
        if isinstance(left, str) and isinstance(right, str):
            return left == right
        l, r = to_number(left), to_number(right)
        if _isnan(l) or _isnan(r):
            return False
        return l == r
    if isinstance(left, primitive) or isinstance(right, primitive):
        # Object compared to primitive: compare its string form
        obj, prim = (right, left) if isinstance(left, primitive) else (left, right)
        return loose_equals(to_js_string(obj), prim)
    return left is right


# -- Allow-listed value methods ---------------------------------------------


def _index_of(seq, item, start=0):
    start = int(to_number(start))
    if isinstance(seq, str):
        return seq.find(to_js_string(item), start)
    for i in range(max(start, 0), len(seq)):
        if strict_equals(seq[i], item):
            return i
    return -1


def _includes(seq, item, start=0):
    if isinstance(seq, str):
        return to_js_string(item) in seq[int(to_number(start)) :]
    return any(
        strict_equals(x, item) or (_isnan(x) and _isnan(item))
        for x in seq[int(to_number(start)) :]
    )


def _slice(seq, start=0, end=None):
    start = int(to_number(start))
    end = len(seq) if end is None else int(to_number(end))
    result = seq[start:end]
    return list(result) if isinstance(result, tuple) else result


def _substring(text, start=0, end=None):
    length = len(text)
    start = min(max(int(to_number(start)), 0), length)
    end = length if end is None else min(max(int(to_number(end)), 0), length)
    if start > end:
        start, end = end, start
    return text[start:end]


def _split(text, separator=None, limit=None):
    if separator is None:
        parts = [text]
    elif separator == "":
        parts = list(text)
    else:
        parts = text.split(to_js_string(separator))
    if limit is not None:
        parts = parts[: int(to_number(limit))]
    return parts


def _replace(text, pattern, replacement):
    return text.replace(to_js_string(pattern), to_js_string(replacement), 1)


def _replace_all(text, pattern, replacement):
    return text.replace(to_js_string(pattern), to_js_string(replacement))


def _pad_start(text, length, fill=" "):
    length = int(to_number(length))
    fill = to_js_string(fill)
    if len(text) >= length or not fill:
        return text
    padding = (fill * length)[: length - len(text)]
    return padding + text


def _pad_end(text, length, fill=" "):
    length = int(to_number(length))
    fill = to_js_string(fill)
    if len(text) >= length or not fill:
        return text
    return text + (fill * length)[: length - len(text)]


def _to_fixed(number, digits=0):
    digits = int(to_number(digits))
    number = to_number(number)
    if _isnan(number) or (isinstance(number, float) and math.isinf(number)):
        return format_number(number)
    return f"{number:.{digits}f}"


def _join(seq, separator=","):
    return to_js_string(separator).join(
        "" if item is None else to_js_string(item) for item in seq
    )


def _concat(seq, *others):
    if isinstance(seq, str):
        return seq + "".join(to_js_string(o) for o in others)
    result = list(seq)
    for other in others:
        if isinstance(other, (list, tuple)):
            result.extend(other)
        else:
            result.append(other)
    return result


def _at(seq, index):
    index = int(to_number(index))
    if -len(seq) <= index < len(seq):
        return seq[index]
    return None


STRING_METHODS: Dict[str, Callable[..., Any]] = {
    "toUpperCase": lambda s: s.upper(),
    "toLowerCase": lambda s: s.lower(),
    "trim": lambda s: s.strip(),
    "trimStart": lambda s: s.lstrip(),
    "trimEnd": lambda s: s.rstrip(),
    "includes": _includes,
    "startsWith": lambda s, p: s.startswith(to_js_string(p)),
    "endsWith": lambda s, p: s.endswith(to_js_string(p)),
    "indexOf": _index_of,
    "slice": _slice,
    "substring": _substring,
    "split": _split,
    "replace": _replace,
    "replaceAll": _replace_all,
    "padStart": _pad_start,
    "padEnd": _pad_end,
    "charAt": lambda s, i=0: _at(s, i) or "" if 0 <= int(to_number(i)) else "",
    "at": _at,
    "concat": _concat,
    "repeat": lambda s, n: s * int(to_number(n)),
    "toString": lambda s: s,
}

ARRAY_METHODS: Dict[str, Callable[..., Any]] = {
    "includes": _includes,
    "indexOf": _index_of,
    "join": _join,
    "slice": _slice,
    "concat": _concat,
    "at": _at,
    "toString": lambda seq: _join(seq),
}

NUMBER_METHODS: Dict[str, Callable[..., Any]] = {
    "toFixed": _to_fixed,
    "toString": lambda n: format_number(n),
}

BOOLEAN_METHODS: Dict[str, Callable[..., Any]] = {
    "toString": lambda b: to_js_string(b),
}
