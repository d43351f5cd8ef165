"""Fenced code block discovery for Markdown documents."""

from __future__ import annotations

import json
import logging
import re
from typing import Protocol

from .logging import get_logger, log_event
from .unit import ExtractedUnit

LOGGER = get_logger(__name__)

_FENCE_OPEN = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})\s*(?P<info>[^`]*)$")
_DIRECTIVE = re.compile(r"^\s*<!--(?P<body>.*)-->\s*$")


class UnitFinder(Protocol):
    def __call__(self, source: str, text: str) -> list[ExtractedUnit]:
        """Return the ordered units found in ``text``.

        Example:
            ```python
            units = finder("README.md", text)
            ```
        """
        ...


def _parse_directive(line: str, source: str, lineno: int) -> tuple[str, dict[str, object]]:
    """Parse a ``<!-- {...} -->`` directive comment preceding a fence.

    Example:
        ```python
        raw, tags = _parse_directive('<!-- {"output": "hi"} -->', "README.md", 4)
        ```
    """
    match = _DIRECTIVE.match(line)
    if match is None:
        return "", {}
    body = match.group("body").strip()
    if not body.startswith("{"):
        return "", {}
    try:
        tags = json.loads(body)
    except json.JSONDecodeError as exc:
        log_event(LOGGER, logging.WARNING, "invalid directive", source=source, line=lineno, reason=str(exc))
        return body, {}
    if not isinstance(tags, dict):
        return body, {}
    return body, tags


def _is_closing(line: str, fence: str) -> bool:
    """Return whether ``line`` closes a block opened with ``fence``.

    Example:
        ```python
        assert _is_closing("~~~~", "~~~")
        ```
    """
    stripped = line.strip()
    if len(line) - len(line.lstrip(" ")) > 3:
        return False
    return len(stripped) >= len(fence) and set(stripped) == {fence[0]}


def find_units(source: str, text: str) -> list[ExtractedUnit]:
    """Find every fenced code block with a language tag, in document order.

    A directive comment on the nearest non-blank line above a fence is parsed
    into the unit's tags. Blocks still open at the end of the text are dropped.

    Example:
        ```python
        units = find_units("README.md", Path("README.md").read_text())
        ```
    """
    units: list[ExtractedUnit] = []
    current: ExtractedUnit | None = None
    fence = ""
    previous = ""
    previous_lineno = 0

    for lineno, raw_line in enumerate(text.split("\n"), start=1):
        # only \n and \r\n end a line; form feeds and the like stay in the text
        line = raw_line[:-1] if raw_line.endswith("\r") else raw_line
        if current is not None:
            if _is_closing(line, fence):
                # untagged blocks are consumed but never become units
                if current.lang:
                    current.index = len(units)
                    units.append(current)
                current = None
                previous, previous_lineno = line, lineno
            else:
                current.lines.append(line)
            continue

        match = _FENCE_OPEN.match(line)
        if match is not None:
            fence = match.group("fence")
            info = match.group("info").strip()
            lang = info.split()[0].strip("{}.") if info else ""
            raw_tags, tags = _parse_directive(previous, source, previous_lineno) if lang else ("", {})
            current = ExtractedUnit(
                source=source,
                line_offset=lineno,
                lang=lang,
                raw_tags=raw_tags,
                tags=tags,
            )
            continue

        if line.strip():
            previous, previous_lineno = line, lineno

    if current is not None:
        log_event(
            LOGGER,
            logging.WARNING,
            "unterminated code fence",
            source=source,
            line=current.line_offset,
        )

    return units
