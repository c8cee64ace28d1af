"""Restricted expression evaluation and {variable} substitution.

Expressions use a small Python-style grammar evaluated by simpleeval:
arithmetic, comparison, boolean logic, literals, field access and indexing.
Nothing else is reachable from inside an expression.
Examples:
  input.value > 10 && input.status === "open"
  input.items.length
  input["content-type"].lower()

Variable references are written in single braces inside any text field:
  Hello {trigger-1.user.name}, you have {input.count} messages
"""

from __future__ import annotations

import ast
import json
import logging
import re
import time
from collections.abc import Mapping
from typing import Any

from simpleeval import (
    DISALLOW_METHODS,
    DISALLOW_PREFIXES,
    EvalWithCompoundTypes,
    FeatureNotAvailable,
    InvalidExpression,
)

from nodes._paths import MISSING, resolve_tokens, split_path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 5000

# Only reference-shaped bodies: a head followed by .key, [0], ["key"] or ['key'] segments.
_SUBSTITUTION_PATTERN = re.compile(
    r"\{\s*("
    r"[A-Za-z0-9_$][\w$-]*"
    r"(?:\s*\.\s*[\w$-]+|\[\s*-?\d+\s*\]|\[\s*\"[^\"\]]*\"\s*\]|\[\s*'[^'\]]*'\s*\])*"
    r")\s*\}"
)
_JS_OPERATOR_PATTERN = re.compile(
    r"(\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*')|(===|!==|&&|\|\||!(?!=))"
)
_JS_OPERATORS = {
    "===": "==",
    "!==": "!=",
    "&&": " and ",
    "||": " or ",
    "!": " not ",
}

_DANGEROUS_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (name, re.compile(pattern))
    for name, pattern in (
        ("eval", r"\beval\s*\("),
        ("exec", r"\bexec\s*\("),
        ("compile", r"\bcompile\s*\("),
        ("Function", r"\bFunction\s*\("),
        ("setTimeout", r"\bsetTimeout\b"),
        ("setInterval", r"\bsetInterval\b"),
        ("fetch", r"\bfetch\s*\("),
        ("XMLHttpRequest", r"\bXMLHttpRequest\b"),
        ("import", r"\bimport\b|__import__"),
        ("require", r"\brequire\s*\("),
        ("open", r"\bopen\s*\("),
        ("process", r"\bprocess\."),
        ("global", r"\bglobals?\b"),
        ("window", r"\bwindow\."),
        ("document", r"\bdocument\."),
        ("localStorage", r"\blocalStorage\b"),
        ("sessionStorage", r"\bsessionStorage\b"),
        ("__proto__", r"__proto__"),
        ("constructor.prototype", r"constructor\s*\.\s*prototype"),
    )
]

_BASE_NAMES: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}

_FUNCTIONS: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "sum": sum,
    "any": any,
    "all": all,
    "sorted": sorted,
    "list": list,
}


class ExpressionError(ValueError):
    """An expression failed to parse or evaluate."""


class ExpressionTimeout(ExpressionError):
    """An expression ran past its deadline."""


class _DeadlineEvaluator(EvalWithCompoundTypes):
    """simpleeval with a cooperative deadline and mapping-first field access."""

    def __init__(self, names: dict[str, Any], timeout_ms: float) -> None:
        super().__init__(names=names, functions=dict(_FUNCTIONS))
        self._timeout_ms = timeout_ms
        self._deadline = time.monotonic() + timeout_ms / 1000

    def _eval(self, node: ast.AST) -> Any:
        if time.monotonic() > self._deadline:
            raise ExpressionTimeout(
                f"Expression timed out after {self._timeout_ms:g}ms"
            )
        return super()._eval(node)

    def _eval_attribute(self, node: ast.Attribute) -> Any:
        for prefix in DISALLOW_PREFIXES:
            if node.attr.startswith(prefix):
                raise FeatureNotAvailable(
                    f"Sorry, access to __attributes or func_ attributes is not "
                    f"available. ({node.attr})"
                )
        if node.attr in DISALLOW_METHODS:
            raise FeatureNotAvailable(f"Sorry, this method is not available. ({node.attr})")

        value = self._eval(node.value)
        if isinstance(value, Mapping):
            return value.get(node.attr)
        if node.attr == "length" and isinstance(value, (list, tuple, str)):
            return len(value)
        return getattr(value, node.attr)


# ── Evaluation ──────────────────────────────────────────────────────


def normalize_expression(expression: str) -> str:
    """Rewrite JS operator spellings outside of string literals."""

    def _replace(match: re.Match) -> str:
        if match.group(1) is not None:
            return match.group(1)
        return _JS_OPERATORS[match.group(2)]

    return _JS_OPERATOR_PATTERN.sub(_replace, expression).strip()


def check_syntax(expression: str) -> str | None:
    """Return a syntax error message, or None when the expression parses."""
    try:
        ast.parse(normalize_expression(expression), mode="eval")
    except SyntaxError as exc:
        return f"Invalid expression syntax: {exc.msg}"
    return None


def evaluate(
    expression: str,
    scope: Any = None,
    *,
    names: dict[str, Any] | None = None,
    timeout_ms: float = DEFAULT_TIMEOUT_MS,
) -> Any:
    """Evaluate an expression with ``input`` bound to scope.

    Raises ExpressionError on any failure.
    """
    source = normalize_expression(expression or "")
    if not source:
        raise ExpressionError("Expression is empty")

    bound = {**_BASE_NAMES, "input": scope, **(names or {})}
    evaluator = _DeadlineEvaluator(bound, timeout_ms)
    try:
        return evaluator.eval(source)
    except ExpressionError:
        raise
    except (InvalidExpression, SyntaxError) as exc:
        raise ExpressionError(f"Invalid expression: {exc}") from exc
    except Exception as exc:
        raise ExpressionError(f"Expression evaluation failed: {exc}") from exc


def find_dangerous_patterns(expression: str) -> list[str]:
    """Names of blocked constructs found in an expression."""
    return [name for name, pattern in _DANGEROUS_PATTERNS if pattern.search(expression)]


def contains_dangerous_code(expression: str) -> bool:
    return bool(find_dangerous_patterns(expression))


# ── Substitution ────────────────────────────────────────────────────


def replace_variables(
    template: str,
    scope: Any,
    node_outputs: Mapping[str, Any] | None = None,
) -> str:
    """Replace {path} references; unresolved references stay as written."""
    if not isinstance(template, str) or "{" not in template:
        return template

    def _replace(match: re.Match) -> str:
        value = resolve_reference(match.group(1), scope, node_outputs)
        if value is MISSING:
            return match.group(0)
        return stringify(value)

    return _SUBSTITUTION_PATTERN.sub(_replace, template)


def resolve_reference(
    reference: str,
    scope: Any,
    node_outputs: Mapping[str, Any] | None = None,
) -> Any:
    """Resolve one reference body, e.g. ``node-1.user.name``. MISSING if unknown."""
    tokens = split_path(reference)
    if not tokens:
        return MISSING
    head, rest = tokens[0], tokens[1:]

    if node_outputs and isinstance(head, str) and head in node_outputs:
        output = node_outputs[head]
        if not isinstance(output, (Mapping, list, tuple)) and rest == ["value"]:
            return output
        value = resolve_tokens(output, rest)
        if value is not MISSING:
            return value

    if head == "input":
        return resolve_tokens(scope, rest)

    value = resolve_tokens(scope, tokens)
    if value is not MISSING:
        return value

    if rest and not (isinstance(scope, Mapping) and head in scope):
        return resolve_tokens(scope, rest)
    return MISSING


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    try:
        return json.dumps(value)
    except TypeError:
        return str(value)
