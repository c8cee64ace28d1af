"""Dotted/bracket path helpers shared by substitution, extraction and lookup.

Paths look like ``user.name``, ``items[0].title`` or ``headers["content-type"]``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

_TOKEN_PATTERN = re.compile(
    r"""
    \[\s*(?P<index>-?\d+)\s*\]          # [0]
    | \[\s*"(?P<dq>[^"]*)"\s*\]         # ["key"]
    | \[\s*'(?P<sq>[^']*)'\s*\]         # ['key']
    | (?P<name>[^.\[\]]+)               # plain segment
    | \.                                # separator
    """,
    re.VERBOSE,
)

_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")

# {nodeId.path} where path may hold dots, [0] and quoted ["key"] segments.
REFERENCE_PATTERN = re.compile(
    r"\{([A-Za-z0-9_-]+)\.("
    r"(?:[A-Za-z0-9_$-]+|\.|\[\d+\]|\[\"[^\"\]]*\"\]|\['[^'\]]*'\])+"
    r")\}"
)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def split_path(path: str) -> list[str | int]:
    """Tokenize a path into keys (str) and indices (int)."""
    tokens: list[str | int] = []
    for match in _TOKEN_PATTERN.finditer(path.strip()):
        if match.group("index") is not None:
            tokens.append(int(match.group("index")))
        elif match.group("dq") is not None:
            tokens.append(match.group("dq"))
        elif match.group("sq") is not None:
            tokens.append(match.group("sq"))
        elif match.group("name") is not None:
            name = match.group("name").strip()
            if name:
                tokens.append(name)
    return tokens


def resolve_tokens(value: Any, tokens: Sequence[str | int]) -> Any:
    """Walk tokens into value. Returns MISSING when any step fails."""
    current = value
    for token in tokens:
        if isinstance(current, Mapping):
            key = token if token in current else str(token)
            if key not in current:
                return MISSING
            current = current[key]
        elif isinstance(current, (list, tuple, str)):
            if token == "length":
                current = len(current)
                continue
            try:
                current = current[int(token)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


def resolve_path(value: Any, path: str) -> Any:
    return resolve_tokens(value, split_path(path))


def is_identifier(key: str) -> bool:
    return bool(_IDENTIFIER.match(key))


def child_path(parent: str, key: str | int) -> str:
    """Append a key or index to a path, bracket-quoting special keys."""
    if isinstance(key, int):
        return f"{parent}[{key}]"
    if is_identifier(key):
        return f"{parent}.{key}" if parent else key
    if '"' in key:
        return f"{parent}['{key}']"
    return f'{parent}["{key}"]'
