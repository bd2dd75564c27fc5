"""Compose-style variable interpolation over an immutable environment snapshot.

Supported forms:

- ``$VAR`` and ``${VAR}``: the variable value, or ``""`` when unset.
- ``${VAR:-default}``: ``default`` when VAR is unset or empty.
- ``${VAR-default}``: ``default`` only when VAR is unset.
- ``$$``: a literal ``$``.

Defaults may themselves contain expressions (``${A:-${B:-x}}``). Resolution
never fails; a missing variable degrades to the empty string.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_BRACED_RE = re.compile(r"^(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<op>:-|-)(?P<default>.*))?$", re.DOTALL)


@dataclass(frozen=True)
class Literal:
    text: str

    def resolve(self, env: Mapping[str, str]) -> str:
        return self.text


@dataclass(frozen=True)
class Reference:
    name: str
    default: Optional[str] = None
    unset_only: bool = False

    def resolve(self, env: Mapping[str, str]) -> str:
        value = env.get(self.name)
        if self.default is None:
            return value or ""
        if self.unset_only:
            if value is not None:
                return value
        elif value:
            return value
        return interpolate(self.default, env)


Segment = Union[Literal, Reference]


def _find_closing_brace(text: str, start: int) -> int:
    depth = 1
    index = start
    while index < len(text):
        ch = text[index]
        if ch == "$" and index + 1 < len(text) and text[index + 1] == "{":
            depth += 1
            index += 2
            continue
        if ch == "}":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


def parse_expression(text: str) -> List[Segment]:
    """Split a value expression into literal and variable-reference segments."""
    segments: List[Segment] = []
    buffer: List[str] = []

    def flush() -> None:
        if buffer:
            segments.append(Literal("".join(buffer)))
            buffer.clear()

    index = 0
    length = len(text)
    while index < length:
        ch = text[index]
        if ch != "$":
            buffer.append(ch)
            index += 1
            continue

        nxt = text[index + 1] if index + 1 < length else ""
        if nxt == "$":
            buffer.append("$")
            index += 2
            continue

        if nxt == "{":
            end = _find_closing_brace(text, index + 2)
            if end == -1:
                logger.warning("Unterminated variable reference kept literally: %s", text[index:])
                buffer.append(text[index:])
                break
            body = text[index + 2 : end]
            match = _BRACED_RE.match(body)
            if not match:
                logger.warning("Invalid interpolation format kept literally: ${%s}", body)
                buffer.append(text[index : end + 1])
                index = end + 1
                continue
            flush()
            op = match.group("op")
            segments.append(
                Reference(
                    name=match.group("name"),
                    default=match.group("default") if op else None,
                    unset_only=op == "-",
                )
            )
            index = end + 1
            continue

        match = _NAME_RE.match(text, index + 1)
        if match:
            flush()
            segments.append(Reference(name=match.group(0)))
            index = match.end()
            continue

        buffer.append("$")
        index += 1

    flush()
    return segments


def interpolate(text: Optional[str], env: Mapping[str, str]) -> str:
    """Substitute every variable reference in ``text`` against ``env``."""
    if not text:
        return ""
    return "".join(segment.resolve(env) for segment in parse_expression(text))


def referenced_names(text: Optional[str]) -> List[str]:
    """Return the variable names referenced by ``text`` (defaults included), in order."""
    names: List[str] = []
    for segment in parse_expression(text or ""):
        if not isinstance(segment, Reference):
            continue
        if segment.name not in names:
            names.append(segment.name)
        for nested in referenced_names(segment.default):
            if nested not in names:
                names.append(nested)
    return names
