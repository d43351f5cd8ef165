from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import RunnerSettings
    from .execution.capability import Capability
    from .execution.types import ExecutionOutcome

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$")
_DURATION_SCALE = {"ms": 0.001, "s": 1.0, "m": 60.0, None: 1.0}


def parse_duration(value: str) -> float:
    """Parse a short duration string such as ``500ms``, ``2s`` or ``1m``.

    Example:
        ```python
        assert parse_duration("500ms") == 0.5
        ```
    """
    match = _DURATION_PATTERN.match(value)
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    return float(match.group(1)) * _DURATION_SCALE[match.group(2)]


@dataclass(slots=True)
class ExtractedUnit:
    """One fenced code example found in a document.

    Example:
        ```python
        unit = ExtractedUnit(source="README.md", line_offset=12, lang="bash", lines=["echo hi"])
        ```
    """

    source: str
    line_offset: int
    lang: str
    lines: list[str] = field(default_factory=list)
    raw_tags: str = ""
    tags: dict[str, Any] = field(default_factory=dict)
    index: int | None = None
    capability: "Capability | None" = field(default=None, repr=False)

    @property
    def code(self) -> str:
        """Return the example source as written, newline terminated.

        Example:
            ```python
            text = unit.code
            ```
        """
        return "\n".join(self.lines) + "\n"

    @property
    def source_stem(self) -> str:
        """Return the owning document's file stem, used to name extracted files.

        Example:
            ```python
            stem = ExtractedUnit(source="docs/README.md", line_offset=1, lang="sh").source_stem
            ```
        """
        return Path(self.source).stem or "example"

    @property
    def expected_output(self) -> re.Pattern[str] | None:
        """Return the compiled ``output`` directive, if any.

        Example:
            ```python
            pattern = unit.expected_output
            ```
        """
        raw = self.tags.get("output")
        if raw is None:
            return None
        return re.compile(str(raw), re.MULTILINE)

    @property
    def args(self) -> list[str]:
        """Return extra command line arguments from the ``args`` directive.

        Example:
            ```python
            argv_tail = unit.args
            ```
        """
        raw = self.tags.get("args")
        if raw is None:
            return []
        if isinstance(raw, list):
            return [str(item) for item in raw]
        return [str(raw)]

    @property
    def skip_reason(self) -> str | None:
        """Return the reason given by a ``skip`` directive, if any.

        Example:
            ```python
            reason = unit.skip_reason
            ```
        """
        raw = self.tags.get("skip")
        if raw is None or raw is False:
            return None
        if isinstance(raw, str) and raw.strip():
            return raw
        return "skip directive present"

    @property
    def platforms(self) -> list[str]:
        """Return the platforms listed in the ``os`` directive.

        Example:
            ```python
            only_on = unit.platforms
            ```
        """
        raw = self.tags.get("os")
        if raw is None:
            return []
        if isinstance(raw, list):
            return [str(item) for item in raw]
        return [str(raw)]

    def interrupt_after(self, default: float) -> float | None:
        """Return seconds after which the example should be interrupted.

        Example:
            ```python
            seconds = unit.interrupt_after(3.0)
            ```
        """
        raw = self.tags.get("interrupt")
        if raw is None or raw is False:
            return None
        if raw is True:
            return default
        if isinstance(raw, (int, float)):
            return float(raw)
        return parse_duration(str(raw))

    def run(self, ordinal: int, settings: "RunnerSettings") -> "ExecutionOutcome":
        """Run this unit with its bound capability.

        Example:
            ```python
            outcome = unit.run(0, RunnerSettings())
            ```
        """
        if self.capability is None:
            raise RuntimeError(f"No capability bound for {self.source}:{self.line_offset}")
        return self.capability.run(self, ordinal, settings)

    def extract(self, ordinal: int, dest_dir: Path, stem: str | None = None) -> "ExecutionOutcome":
        """Write this unit to ``dest_dir`` with its bound capability.

        Example:
            ```python
            outcome = unit.extract(0, Path("/tmp/examples"), stem="README")
            ```
        """
        if self.capability is None:
            raise RuntimeError(f"No capability bound for {self.source}:{self.line_offset}")
        return self.capability.extract(self, ordinal, dest_dir, stem)
