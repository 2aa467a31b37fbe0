"""Resolve overlay action targets to the nodes they select.

Targets are JSONPath expressions evaluated by python-jsonpath. Before an
expression is compiled, member shorthand is rewritten into bracket notation
so that names overlay authors commonly write still resolve:

- ``$.info.x-logo`` becomes ``$['info']['x-logo']``
- ``$.servers.1`` becomes ``$['servers'][1,'1']``, an index on arrays and a
  member name on objects
- ``===`` and ``!==`` are read as ``==`` and ``!=``

Every match carries the container it was found in and its key, so callers
can replace or delete the matched node in place.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

import jsonpath

Key = Union[str, int]

_NAME_RE = re.compile(r"[\w-]+")
_INDEX_RE = re.compile(r"-?\d+$")
_QUOTES = ("'", '"', "/")


class TargetError(ValueError):
    """Raised for malformed target expressions."""


@dataclass
class Match:
    """A node selected by a target expression."""

    parent: Any
    key: Optional[Key]
    value: Any
    path: Tuple[Key, ...] = ()

    @property
    def normalized_path(self) -> str:
        parts = ["$"]
        for key in self.path:
            parts.append(f"[{key}]" if isinstance(key, int) else f"['{key}']")
        return "".join(parts)


def _alternate_key(key: Any) -> Optional[Key]:
    # YAML loads unquoted response codes as ints
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return str(key)
    if isinstance(key, str) and _INDEX_RE.match(key):
        return int(key)
    return None


class _OverlayEnvironment(jsonpath.JSONPathEnvironment):
    def getitem(self, obj: Any, key: Any) -> Any:
        try:
            return obj[key]
        except KeyError:
            alternate = _alternate_key(key)
            if alternate is None or not isinstance(obj, dict):
                raise
            return obj[alternate]


def _quoted_end(text: str, start: int) -> int:
    quote = text[start]
    i = start + 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == quote:
            return i + 1
        i += 1
    # Unterminated; left for the parser to report
    return len(text)


def _is_decimal_point(text: str, pos: int) -> bool:
    start = pos
    while start > 0 and (text[start - 1].isalnum() or text[start - 1] in "_-"):
        start -= 1
    token = text[start:pos].lstrip("-")
    return token.isdigit() and (start == 0 or text[start - 1] != ".")


def _normalize(expression: str) -> str:
    """Rewrite member shorthand into bracket notation."""
    out: List[str] = []
    i = 0
    while i < len(expression):
        ch = expression[i]
        if ch in _QUOTES:
            end = _quoted_end(expression, i)
            out.append(expression[i:end])
            i = end
        elif expression.startswith(("===", "!=="), i):
            out.append(expression[i : i + 2])
            i += 3
        elif ch == "." and not _is_decimal_point(expression, i):
            dots = ".." if expression.startswith("..", i) else "."
            name = _NAME_RE.match(expression, i + len(dots))
            if name is None:
                out.append(dots)
                i += len(dots)
                continue
            token = name.group()
            selector = f"[{token},'{token}']" if token.isdigit() else f"['{token}']"
            out.append(f"..{selector}" if dots == ".." else selector)
            i = name.end()
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _to_match(found: Any) -> Match:
    if found.parent is None or not found.parts:
        return Match(None, None, found.obj)

    parent = found.parent.obj
    key = found.parts[-1]
    if isinstance(parent, dict) and key not in parent:
        alternate = _alternate_key(key)
        if alternate is not None and alternate in parent:
            key = alternate
    elif isinstance(parent, list) and isinstance(key, int) and key < 0:
        key += len(parent)
    return Match(parent, key, found.obj, tuple(found.parts[:-1]) + (key,))


class Target:
    """A compiled target expression."""

    environment = _OverlayEnvironment()

    def __init__(self, expression: str):
        self.expression = expression
        text = expression.strip()
        if not text.startswith("$"):
            raise TargetError(f"Target must start with '$': {expression!r}")
        self._root_only = text == "$"
        try:
            self._path = self.environment.compile(_normalize(text))
        except jsonpath.JSONPathError as e:
            raise TargetError(f"Invalid target {expression!r}: {e}") from e

    def find(self, document: Any) -> List[Match]:
        """Return every node the expression selects."""
        if not isinstance(document, (dict, list)):
            # Scalar documents have no members; python-jsonpath would also
            # try to parse a string document as JSON.
            return [Match(None, None, document)] if self._root_only else []
        try:
            found = [_to_match(item) for item in self._path.finditer(document)]
        except jsonpath.JSONPathError as e:
            raise TargetError(f"Cannot evaluate {self.expression!r}: {e}") from e

        # Unions such as [0,0] select the same node twice
        seen = set()
        matches = []
        for match in found:
            marker = (id(match.parent), match.key)
            if marker not in seen:
                seen.add(marker)
                matches.append(match)
        return matches

    def __repr__(self) -> str:
        return f"Target({self.expression!r})"


def find(expression: str, document: Any) -> List[Match]:
    """Compile ``expression`` and match it against ``document``."""
    return Target(expression).find(document)
