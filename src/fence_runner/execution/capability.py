from __future__ import annotations

import os
import re
import shutil
import sys
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path

from ..config import RunnerSettings
from ..unit import ExtractedUnit
from .process import run_command
from .types import CommandSpec, ExecutionOutcome, Failure, Skip


def failure_for(unit: ExtractedUnit, message: str) -> Failure:
    """Build a failure that points back at the unit's location.

    Example:
        ```python
        failure = failure_for(unit, "exit status 1")
        ```
    """
    return Failure(message, source=unit.source, line=unit.line_offset, lang=unit.lang)


_PLATFORM_ALIASES = {"windows": "win32", "macos": "darwin"}


def _platform_matches(platforms: list[str], current: str | None = None) -> bool:
    """Return whether the current platform is one of ``platforms``.

    Names are ``sys.platform`` prefixes; ``windows`` and ``macos`` are
    accepted for ``win32`` and ``darwin``.

    Example:
        ```python
        assert _platform_matches(["windows"], current="win32")
        ```
    """
    platform = current or sys.platform
    for name in platforms:
        key = name.strip().lower()
        if platform.startswith(_PLATFORM_ALIASES.get(key, key)):
            return True
    return False


class Capability(ABC):
    """Per-language strategy that judges, runs and extracts units.

    Subclasses are stateless; one instance serves every unit of its language.

    Example:
        ```python
        outcome = capability.run(unit, 0, RunnerSettings())
        ```
    """

    name: str = ""
    extension: str = ""

    def can_execute(self, unit: ExtractedUnit) -> str | None:
        """Return a reason not to run ``unit``, or ``None`` when it is eligible.

        Example:
            ```python
            reason = capability.can_execute(unit)
            ```
        """
        reason = unit.skip_reason
        if reason is not None:
            return reason
        platforms = unit.platforms
        if platforms and not _platform_matches(platforms):
            return f"example is limited to {', '.join(platforms)}"
        return None

    def temp_file_name(self, unit: ExtractedUnit) -> str:
        """Return the file name the unit's code is written to before running.

        Example:
            ```python
            name = capability.temp_file_name(unit)
            ```
        """
        return f"example{self.extension}"

    def environ(self, unit: ExtractedUnit) -> dict[str, str]:
        """Return the environment commands run with.

        Example:
            ```python
            env = capability.environ(unit)
            ```
        """
        return dict(os.environ)

    @abstractmethod
    def commands(self, unit: ExtractedUnit, path: Path) -> list[CommandSpec]:
        """Return the commands that build and run the unit written at ``path``.

        Example:
            ```python
            cmds = capability.commands(unit, Path("/tmp/x/example.sh"))
            ```
        """

    def run(self, unit: ExtractedUnit, ordinal: int, settings: RunnerSettings) -> ExecutionOutcome:
        """Build and run ``unit``, encoding every problem inside the outcome.

        Example:
            ```python
            outcome = capability.run(unit, 0, RunnerSettings())
            ```
        """
        start = time.monotonic()
        try:
            interrupt_after = unit.interrupt_after(settings.interrupt_seconds)
            expected = unit.expected_output
        except (ValueError, re.error) as exc:
            return ExecutionOutcome(
                status=-1,
                error=failure_for(unit, f"invalid directive: {exc}"),
                unit=unit,
            )

        with tempfile.TemporaryDirectory(prefix=f"fence-runner-{ordinal:03d}-") as tmp:
            workdir = Path(tmp)
            path = workdir / self.temp_file_name(unit)
            try:
                path.write_text(unit.code, encoding="utf-8")
            except (OSError, ValueError) as exc:
                return ExecutionOutcome(
                    status=-1,
                    error=failure_for(unit, f"failed to write {path.name}: {exc}"),
                    unit=unit,
                    elapsed=time.monotonic() - start,
                )
            env = self.environ(unit)
            stdout_parts: list[str] = []
            stderr_parts: list[str] = []
            for command in self.commands(unit, path):
                executable = command.argv[0]
                if shutil.which(executable, path=env.get("PATH")) is None:
                    return ExecutionOutcome(
                        status=0,
                        error=Skip(f"{executable} was not found on PATH"),
                        unit=unit,
                        elapsed=time.monotonic() - start,
                    )
                try:
                    result = run_command(
                        command.argv,
                        cwd=workdir,
                        env=env,
                        timeout_seconds=settings.timeout_seconds,
                        interrupt_after=interrupt_after if command.main else None,
                    )
                except (OSError, ValueError) as exc:
                    # ValueError: Popen rejects arguments holding NUL bytes
                    return ExecutionOutcome(
                        status=-1,
                        error=failure_for(unit, f"failed to start {executable}: {exc}"),
                        unit=unit,
                        elapsed=time.monotonic() - start,
                    )
                stdout_parts.append(result.stdout)
                stderr_parts.append(result.stderr)
                stdout = "".join(stdout_parts)
                stderr = "".join(stderr_parts)
                if result.timed_out:
                    return ExecutionOutcome(
                        status=result.returncode,
                        stdout=stdout,
                        stderr=stderr,
                        error=failure_for(unit, f"timed out after {settings.timeout_seconds}s"),
                        unit=unit,
                        elapsed=time.monotonic() - start,
                        timed_out=True,
                    )
                if result.returncode != 0 and not result.interrupted:
                    message = f"{executable} exited with status {result.returncode}"
                    if result.stderr.strip():
                        message = f"{message}: {result.stderr.strip()}"
                    return ExecutionOutcome(
                        status=result.returncode,
                        stdout=stdout,
                        stderr=stderr,
                        error=failure_for(unit, message),
                        unit=unit,
                        elapsed=time.monotonic() - start,
                    )

        return self._check_output(unit, expected, "".join(stdout_parts), "".join(stderr_parts), start)

    def _check_output(
        self,
        unit: ExtractedUnit,
        expected: re.Pattern[str] | None,
        stdout: str,
        stderr: str,
        start: float,
    ) -> ExecutionOutcome:
        """Compare captured stdout against the ``output`` directive.

        Example:
            ```python
            outcome = capability._check_output(unit, re.compile("hi"), "hi\\n", "", time.monotonic())
            ```
        """
        error: Failure | None = None
        if expected is not None and expected.search(stdout) is None:
            error = failure_for(
                unit,
                f"expected output does not match actual: {expected.pattern!r} !~ {stdout!r}",
            )
        return ExecutionOutcome(
            status=0,
            stdout=stdout,
            stderr=stderr,
            error=error,
            unit=unit,
            elapsed=time.monotonic() - start,
        )

    def extract(
        self,
        unit: ExtractedUnit,
        ordinal: int,
        dest_dir: Path,
        stem: str | None = None,
    ) -> ExecutionOutcome:
        """Write ``unit`` to ``dest_dir`` without running it.

        The file is named ``<stem>-<ordinal><extension>``; ``stem`` defaults to
        the document's file stem.

        Example:
            ```python
            outcome = capability.extract(unit, 0, Path("/tmp/examples"))
            ```
        """
        target = Path(dest_dir) / f"{stem or unit.source_stem}-{ordinal:03d}{self.extension}"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(unit.code, encoding="utf-8")
        except (OSError, ValueError) as exc:
            return ExecutionOutcome(
                status=-1,
                error=failure_for(unit, f"failed to extract to {target}: {exc}"),
                unit=unit,
            )
        return ExecutionOutcome(status=0, stdout=str(target), unit=unit)
