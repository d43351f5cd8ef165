from __future__ import annotations

import os
import signal
import subprocess
from pathlib import Path
from typing import Mapping

from .types import CommandResult

TIMEOUT_RETURNCODE = 124

_POSIX = os.name != "nt"


def _signal_group(proc: subprocess.Popen[str], sig: int) -> None:
    """Deliver ``sig`` to the process group led by ``proc``.

    Shell examples fork children that share the group, so signalling only the
    shell would leave them running with the output pipes open.

    Example:
        ```python
        _signal_group(proc, signal.SIGINT)
        ```
    """
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        # group already gone
        return


def _interrupt(proc: subprocess.Popen[str]) -> None:
    """Ask a running process to stop the way a terminal user would.

    Example:
        ```python
        _interrupt(proc)
        ```
    """
    if _POSIX:
        _signal_group(proc, signal.SIGINT)
    else:
        proc.terminate()


def _kill_and_collect(proc: subprocess.Popen[str]) -> tuple[str, str]:
    """Kill a process and return whatever it wrote so far.

    Example:
        ```python
        stdout, stderr = _kill_and_collect(proc)
        ```
    """
    if _POSIX:
        _signal_group(proc, signal.SIGKILL)
    else:
        proc.kill()
    stdout, stderr = proc.communicate()
    return stdout or "", stderr or ""


def run_command(
    argv: list[str],
    *,
    cwd: Path,
    env: Mapping[str, str],
    timeout_seconds: int,
    interrupt_after: float | None = None,
) -> CommandResult:
    """Run one command with captured output and a hard timeout.

    The command leads its own process group. When ``interrupt_after`` is set
    and the process is still alive after that many seconds the group receives
    SIGINT and the result is marked interrupted.

    Example:
        ```python
        res = run_command(["bash", "x.sh"], cwd=Path("/tmp"), env=os.environ, timeout_seconds=5)
        ```
    """
    timeout = max(1, int(timeout_seconds))
    proc = subprocess.Popen(
        argv,
        cwd=str(cwd),
        env=dict(env),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        start_new_session=_POSIX,
    )

    if interrupt_after is not None and interrupt_after < timeout:
        try:
            stdout, stderr = proc.communicate(timeout=interrupt_after)
        except subprocess.TimeoutExpired:
            _interrupt(proc)
            try:
                stdout, stderr = proc.communicate(timeout=max(1.0, timeout - interrupt_after))
            except subprocess.TimeoutExpired:
                stdout, stderr = _kill_and_collect(proc)
                return CommandResult(TIMEOUT_RETURNCODE, stdout, stderr, timed_out=True)
            return CommandResult(proc.returncode, stdout or "", stderr or "", interrupted=True)
        return CommandResult(proc.returncode, stdout or "", stderr or "")

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        stdout, stderr = _kill_and_collect(proc)
        return CommandResult(TIMEOUT_RETURNCODE, stdout, stderr, timed_out=True)
    return CommandResult(proc.returncode, stdout or "", stderr or "")
