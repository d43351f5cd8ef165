from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from ..unit import ExtractedUnit


@dataclass(frozen=True, slots=True)
class Failure:
    """A genuine failure reported back to the caller.

    Example:
        ```python
        failure = Failure("exit status 1", source="README.md", line=12, lang="bash")
        ```
    """

    message: str
    source: str | None = None
    line: int | None = None
    lang: str | None = None

    def __str__(self) -> str:
        """Render the failure with its location prefix.

        Example:
            ```python
            text = str(Failure("boom", source="README.md", line=3))
            ```
        """
        location = self.source or ""
        if self.line is not None:
            location = f"{location}:{self.line}"
        if self.lang:
            location = f"{location} [{self.lang}]" if location else f"[{self.lang}]"
        return f"{location} {self.message}" if location else self.message


@dataclass(frozen=True, slots=True)
class Skip:
    """An intentional non-run, never surfaced as a failure.

    Example:
        ```python
        skip = Skip("node was not found on PATH")
        ```
    """

    reason: str


OutcomeError = Union[Failure, Skip]


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """Result of running or extracting one unit.

    Example:
        ```python
        out = ExecutionOutcome(status=0, stdout="hello\\n")
        ```
    """

    status: int
    stdout: str = ""
    stderr: str = ""
    error: OutcomeError | None = None
    unit: "ExtractedUnit | None" = field(default=None, compare=False, repr=False)
    elapsed: float = 0.0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        """Return whether the outcome carries no error.

        Example:
            ```python
            assert ExecutionOutcome(status=0).ok
            ```
        """
        return self.error is None

    @property
    def skipped(self) -> bool:
        """Return whether the outcome is an informational skip.

        Example:
            ```python
            assert ExecutionOutcome(status=0, error=Skip("no go")).skipped
            ```
        """
        return isinstance(self.error, Skip)

    @property
    def failed(self) -> bool:
        """Return whether the outcome is a genuine failure.

        Example:
            ```python
            assert ExecutionOutcome(status=1, error=Failure("boom")).failed
            ```
        """
        return isinstance(self.error, Failure)


@dataclass(slots=True)
class CommandSpec:
    """One command a capability runs for a unit.

    Example:
        ```python
        cmd = CommandSpec(argv=["bash", "/tmp/x/example.sh"], main=True)
        ```
    """

    argv: list[str]
    main: bool = True


@dataclass(slots=True)
class CommandResult:
    """Normalized response of one finished command.

    Example:
        ```python
        res = CommandResult(returncode=0, stdout="ok\\n", stderr="")
        ```
    """

    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    interrupted: bool = False
