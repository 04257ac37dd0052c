"""Subprocess execution for Kiln.

Every external process Kiln starts (compiler, linker, built program) goes
through ``run_command``: blocking, stdout and stderr captured separately,
the full command line logged at DEBUG.

Failure Classification:
- normal exit, anything on stderr → left to the caller (the build step
  turns it into CompileError/LinkError, the runner into RenderError)
- killed by a signal, or by the timeout → ProcessError
- the executable cannot be started → the OSError propagates unchanged

"""

from __future__ import annotations

import logging
import shlex
import signal
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from kiln.context import dump_context
from kiln.environment.exceptions import ProcessError, RenderError

logger = logging.getLogger(__name__)

CONTEXT_FILENAME = "context.bin"


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Captured output of a finished process."""

    output: str
    error: str
    returncode: int


def _termination_reason(returncode: int) -> str:
    signum = -returncode
    try:
        name = signal.Signals(signum).name
    except ValueError:
        name = f"signal {signum}"
    return f"terminated by {name}"


def run_command(
    argv: Sequence[str | Path],
    *,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> ProcessResult:
    """Run a command to completion and capture its output.

    Args:
        argv: Program and arguments.
        timeout: Seconds to wait before killing the process (None = forever).
        env: Environment for the child (None = inherit).

    Raises:
        ProcessError: The process was killed by a signal or timed out.
        OSError: The program could not be started.
    """
    command = [str(arg) for arg in argv]
    logger.debug("%s", shlex.join(command))

    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            timeout=timeout,
            env=dict(env) if env is not None else None,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        stderr = _decode(e.stderr)
        raise ProcessError(
            f"{command[0]} timed out after {timeout}s",
            stderr=stderr,
            command=command,
        ) from e

    output = _decode(completed.stdout)
    error = _decode(completed.stderr)

    if completed.returncode < 0:
        raise ProcessError(
            f"{command[0]} {_termination_reason(completed.returncode)}",
            stderr=error,
            command=command,
        )

    return ProcessResult(output=output, error=error, returncode=completed.returncode)


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")


class ExecutionRunner:
    """Run a built template program against a context.

    The context is serialized to a scratch file in the render workspace
    and its path is the program's only argument. Standard output is the
    render result. Anything on standard error fails the render, even when
    the program exits with status 0.

    Example:
            >>> runner = ExecutionRunner(timeout=30)
            >>> runner.run(binary, {"name": "World"}, workspace=tmp, source_path="hello.kiln")
            'Hello World!'
    """

    __slots__ = ("timeout",)

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def run(
        self,
        binary: str | Path,
        context: Mapping[str, Any],
        *,
        workspace: str | Path,
        source_path: str | Path,
    ) -> str:
        """Execute ``binary`` and return its output.

        Raises:
            ContextError: ``context`` cannot be serialized
            RenderError: The program wrote to stderr
            ProcessError: The program was killed or timed out
        """
        workspace = Path(workspace)
        workspace.mkdir(parents=True, exist_ok=True)
        context_path = dump_context(context, workspace / CONTEXT_FILENAME)

        result = run_command([binary, context_path], timeout=self.timeout)

        if result.error:
            raise RenderError(source_path, result.error)
        return result.output
