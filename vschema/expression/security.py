"""
Expression Security Check

Textual deny-list applied to raw expression source before parsing. A match
rejects the expression outright; it is never compiled, cached or degraded.
Matching is on word boundaries, so `state.fetchCount` is allowed while
`fetch(url)` is not.
"""

import re
from typing import List, Optional, Pattern

from ..exceptions.errors import SecurityViolation

DENIED_IDENTIFIERS = [
    "eval",
    "Function",
    "constructor",
    "prototype",
    "__proto__",
    "window",
    "document",
    "globalThis",
    "global",
    "process",
    "require",
    "import",
    "module",
    "exports",
    "setTimeout",
    "setInterval",
    "setImmediate",
    "fetch",
    "XMLHttpRequest",
    "WebSocket",
    "Worker",
    "SharedWorker",
    "ServiceWorker",
    "localStorage",
    "sessionStorage",
    "indexedDB",
    "alert",
    "confirm",
    "prompt",
    "location",
    "history",
    "navigator",
    "Reflect",
    "Proxy",
    "ArrayBuffer",
    "SharedArrayBuffer",
    "Atomics",
    "DataView",
    "Blob",
    "File",
    "FileReader",
    "URL",
    "URLSearchParams",
    "FormData",
    "Headers",
    "Request",
    "Response",
    "EventSource",
    "BroadcastChannel",
    "MessageChannel",
    "MessagePort",
    "crypto",
    "Crypto",
    "SubtleCrypto",
    "TextEncoder",
    "TextDecoder",
    "performance",
    "PerformanceObserver",
    "MutationObserver",
    "IntersectionObserver",
    "ResizeObserver",
]

DENIED_PATTERNS: List[Pattern] = [
    re.compile(r"\beval\s*\("),
    re.compile(r"\bFunction\s*\("),
    re.compile(r"\bnew\s+Function\b"),
    re.compile(r"\bconstructor\s*\("),
    re.compile(r"\bconstructor\s*\["),
    re.compile(r"\[\s*['\"]constructor['\"]\s*\]"),
    re.compile(r"\bprototype\b"),
    re.compile(r"\bthis\b"),
    re.compile(r"\bwith\s*\("),
    re.compile(r"\brequire\s*\("),
    re.compile(r"\bimport\s*\("),
    # Host interpreter internals
    re.compile(r"__\w*__"),
    re.compile(r"\b(?:__import__|__builtins__|globals|locals|getattr|setattr|exec|compile)\b"),
]

_IDENTIFIER_PATTERNS = [
    (name, re.compile(r"(?<![\w$])" + re.escape(name) + r"(?![\w$])"))
    for name in DENIED_IDENTIFIERS
]

_DENIED_SET = frozenset(DENIED_IDENTIFIERS)


def check_security(expression: str) -> Optional[SecurityViolation]:
    """
    Run the deny-list against raw expression text

    Args:
        expression: Expression source

    Returns:
        SecurityViolation describing the first match, or None when safe
    """
    for name, pattern in _IDENTIFIER_PATTERNS:
        if pattern.search(expression):
            return SecurityViolation(
                f'Security violation: "{name}" is not allowed in expressions',
                {"identifier": name},
            )

    for pattern in DENIED_PATTERNS:
        if pattern.search(expression):
            return SecurityViolation(
                "Security violation: dangerous pattern detected in expression",
                {"pattern": pattern.pattern},
            )

    return None


def ensure_safe(expression: str) -> None:
    """Raise SecurityViolation when the expression matches the deny-list"""
    violation = check_security(expression)
    if violation is not None:
        raise violation


def is_safe(expression: str) -> bool:
    """Check whether an expression passes the deny-list"""
    return check_security(expression) is None


def is_denied_identifier(name: str) -> bool:
    """Context keys with denied names are never exposed to expressions"""
    return name in _DENIED_SET or (name.startswith("__") and name.endswith("__"))
