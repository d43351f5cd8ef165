from __future__ import annotations

import json
import re
import sys
import time
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

from ..config import RunnerSettings
from ..unit import ExtractedUnit
from .capability import Capability, failure_for
from .types import CommandSpec, ExecutionOutcome

_GO_PACKAGE_MAIN = re.compile(r"^\s*package\s+main\b", re.MULTILINE)
_GO_FUNC_MAIN = re.compile(r"^\s*func\s+main\s*\(\s*\)", re.MULTILINE)
_JAVA_PUBLIC_CLASS = re.compile(r"\bpublic\s+(?:final\s+|abstract\s+)*class\s+([A-Za-z_$][\w$]*)")
_JAVA_MAIN = re.compile(r"\bpublic\s+static\s+void\s+main\s*\(")


class ShellCapability(Capability):
    """Run examples with a POSIX shell.

    Example:
        ```python
        cap = ShellCapability("bash")
        ```
    """

    extension = ".sh"

    def __init__(self, name: str, executable: str | None = None) -> None:
        """Bind the capability name to a shell executable.

        Example:
            ```python
            cap = ShellCapability("shell", executable="bash")
            ```
        """
        self.name = name
        self._executable = executable or name

    def commands(self, unit: ExtractedUnit, path: Path) -> list[CommandSpec]:
        """Run the script with the bound shell.

        Example:
            ```python
            cmds = ShellCapability("sh").commands(unit, Path("/tmp/x/example.sh"))
            ```
        """
        return [CommandSpec([self._executable, str(path), *unit.args])]


class InterpreterCapability(Capability):
    """Run examples with a single interpreter binary.

    Example:
        ```python
        cap = InterpreterCapability("ruby", "ruby", ".rb")
        ```
    """

    def __init__(self, name: str, executable: str, extension: str) -> None:
        """Bind the capability name to an interpreter.

        Example:
            ```python
            cap = InterpreterCapability("javascript", "node", ".js")
            ```
        """
        self.name = name
        self.extension = extension
        self._executable = executable

    def commands(self, unit: ExtractedUnit, path: Path) -> list[CommandSpec]:
        """Run the script with the bound interpreter.

        Example:
            ```python
            cmds = cap.commands(unit, Path("/tmp/x/example.rb"))
            ```
        """
        return [CommandSpec([self._executable, str(path), *unit.args])]


class PythonCapability(InterpreterCapability):
    """Run Python examples with the interpreter running fence-runner.

    Example:
        ```python
        cap = PythonCapability()
        ```
    """

    def __init__(self) -> None:
        """Bind to ``sys.executable``.

        Example:
            ```python
            cap = PythonCapability()
            ```
        """
        super().__init__("python", sys.executable, ".py")


class GoCapability(Capability):
    """Run Go examples that declare a main package and function.

    Example:
        ```python
        cap = GoCapability()
        ```
    """

    name = "go"
    extension = ".go"

    def can_execute(self, unit: ExtractedUnit) -> str | None:
        """Reject Go fragments that cannot be run as a program.

        Example:
            ```python
            reason = GoCapability().can_execute(unit)
            ```
        """
        reason = super().can_execute(unit)
        if reason is not None:
            return reason
        if not _GO_PACKAGE_MAIN.search(unit.code):
            return "go example is missing 'package main'"
        if not _GO_FUNC_MAIN.search(unit.code):
            return "go example is missing 'func main()'"
        return None

    def commands(self, unit: ExtractedUnit, path: Path) -> list[CommandSpec]:
        """Build and run the program with ``go run``.

        Example:
            ```python
            cmds = GoCapability().commands(unit, Path("/tmp/x/example.go"))
            ```
        """
        return [CommandSpec(["go", "run", str(path), *unit.args])]


class JavaCapability(Capability):
    """Compile and run Java examples that declare a public main class.

    Example:
        ```python
        cap = JavaCapability()
        ```
    """

    name = "java"
    extension = ".java"

    def can_execute(self, unit: ExtractedUnit) -> str | None:
        """Reject Java fragments without a public class holding ``main``.

        Example:
            ```python
            reason = JavaCapability().can_execute(unit)
            ```
        """
        reason = super().can_execute(unit)
        if reason is not None:
            return reason
        if _JAVA_PUBLIC_CLASS.search(unit.code) is None:
            return "java example is missing a public class"
        if _JAVA_MAIN.search(unit.code) is None:
            return "java example is missing 'public static void main'"
        return None

    def _class_name(self, unit: ExtractedUnit) -> str:
        """Return the public class name declared by the example.

        Example:
            ```python
            name = JavaCapability()._class_name(unit)
            ```
        """
        match = _JAVA_PUBLIC_CLASS.search(unit.code)
        return match.group(1) if match else "Example"

    def temp_file_name(self, unit: ExtractedUnit) -> str:
        """Name the source file after its public class, as javac requires.

        Example:
            ```python
            name = JavaCapability().temp_file_name(unit)
            ```
        """
        return f"{self._class_name(unit)}.java"

    def commands(self, unit: ExtractedUnit, path: Path) -> list[CommandSpec]:
        """Compile with ``javac`` then run the class with ``java``.

        Example:
            ```python
            cmds = JavaCapability().commands(unit, Path("/tmp/x/Hello.java"))
            ```
        """
        return [
            CommandSpec(["javac", str(path)], main=False),
            CommandSpec(["java", "-cp", str(path.parent), self._class_name(unit), *unit.args]),
        ]


class JsonCapability(Capability):
    """Validate JSON examples in-process.

    Example:
        ```python
        outcome = JsonCapability().run(unit, 0, RunnerSettings())
        ```
    """

    name = "json"
    extension = ".json"

    def commands(self, unit: ExtractedUnit, path: Path) -> list[CommandSpec]:
        """Return no commands; JSON is checked without a subprocess.

        Example:
            ```python
            assert JsonCapability().commands(unit, Path("x.json")) == []
            ```
        """
        return []

    def run(self, unit: ExtractedUnit, ordinal: int, settings: RunnerSettings) -> ExecutionOutcome:
        """Parse the example and report decode errors as failures.

        Example:
            ```python
            outcome = JsonCapability().run(unit, 0, RunnerSettings())
            ```
        """
        start = time.monotonic()
        try:
            json.loads(unit.code)
        except json.JSONDecodeError as exc:
            return ExecutionOutcome(
                status=1,
                error=failure_for(unit, f"invalid JSON: {exc}"),
                unit=unit,
                elapsed=time.monotonic() - start,
            )
        return ExecutionOutcome(status=0, unit=unit, elapsed=time.monotonic() - start)


def _build_default_capabilities() -> Mapping[str, Capability]:
    """Build the static capability table keyed by canonical language name.

    Example:
        ```python
        table = _build_default_capabilities()
        ```
    """
    capabilities: list[Capability] = [
        ShellCapability("bash"),
        ShellCapability("sh"),
        ShellCapability("zsh"),
        ShellCapability("shell", executable="bash"),
        PythonCapability(),
        InterpreterCapability("ruby", "ruby", ".rb"),
        InterpreterCapability("javascript", "node", ".js"),
        GoCapability(),
        JavaCapability(),
        JsonCapability(),
    ]
    return MappingProxyType({capability.name: capability for capability in capabilities})


DEFAULT_CAPABILITIES: Mapping[str, Capability] = _build_default_capabilities()


def capability_names() -> list[str]:
    """Return the names of the built-in capabilities, sorted.

    Example:
        ```python
        names = capability_names()
        ```
    """
    return sorted(DEFAULT_CAPABILITIES)


def build_capabilities(names: Iterable[str] | None = None) -> Mapping[str, Capability]:
    """Select a subset of the built-in capabilities by name.

    Example:
        ```python
        table = build_capabilities(["bash", "python"])
        ```
    """
    if names is None:
        return DEFAULT_CAPABILITIES
    selected: dict[str, Capability] = {}
    for name in names:
        capability = DEFAULT_CAPABILITIES.get(name)
        if capability is None:
            raise ValueError(f"Unknown capability: {name}")
        selected[name] = capability
    return MappingProxyType(selected)
