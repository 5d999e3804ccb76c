"""
External command execution for package manager scans.

``outdated`` and ``audit`` subcommands exit non-zero when they have findings,
so a non-zero exit is not a failure by itself. Commands never raise here: the
caller gets a :class:`CommandResult` and decides with
:func:`is_successful_scan`.
"""

from __future__ import annotations

import json
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from .common import vlog


DEFAULT_TIMEOUT_SECONDS = 30

_JSON_START_RE = re.compile(r"[\[{]")


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of one external command.

    Attributes:
        command: Command that was run
        stdout: Captured standard output (kept on non-zero exit)
        stderr: Captured standard error
        exit_code: Process exit code, or None if the process never completed
        timed_out: Whether the command was killed by the timeout
        error: Description of a launch failure (e.g. missing binary)
    """
    command: tuple[str, ...]
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    timed_out: bool = False
    error: str | None = None

    def describe_failure(self) -> str:
        """Short reason used in logs and scan errors."""
        name = " ".join(self.command)
        if self.timed_out:
            return f"'{name}' timed out"
        if self.error:
            return f"'{name}' could not run: {self.error}"
        return f"'{name}' exited with {self.exit_code} and no JSON output"


# (command, cwd, timeout) -> CommandResult
CommandRunner = Callable[[Sequence[str], Path, int], CommandResult]


def run_command(
    command: Sequence[str],
    cwd: Path,
    timeout: int = DEFAULT_TIMEOUT_SECONDS,
    verbose: bool = False,
) -> CommandResult:
    """
    Run a command, capturing output regardless of exit status.

    Args:
        command: Command and arguments
        cwd: Working directory
        timeout: Timeout in seconds
        verbose: Enable verbose logging

    Returns:
        CommandResult describing the run
    """
    command = tuple(command)
    vlog(f"Running {' '.join(command)} in {cwd}", verbose)

    try:
        completed = subprocess.run(
            command,
            cwd=str(cwd),
            capture_output=True,
            # Invalid UTF-8 from a tool decodes to U+FFFD
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        stdout = e.stdout.decode("utf-8", "replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
        return CommandResult(command=command, stdout=stdout, timed_out=True)
    except OSError as e:
        return CommandResult(command=command, error=str(e))

    return CommandResult(
        command=command,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        exit_code=completed.returncode,
    )


def extract_json(output: str) -> Any | None:
    """
    Parse JSON from tool output that may start with warning text.

    Parsing starts at the first ``[`` or ``{``.

    Returns:
        Parsed value, or None if there is no JSON or it is malformed
    """
    if not output:
        return None

    match = _JSON_START_RE.search(output)
    if match is None:
        return None

    try:
        return json.loads(output[match.start():])
    except json.JSONDecodeError:
        return None


def is_successful_scan(result: CommandResult) -> bool:
    """
    Decide whether a scan command produced a usable answer.

    Exit code 0 is success. A non-zero exit with parseable JSON on stdout is
    also success: the manager is reporting findings. Timeouts and launch
    failures are never success.
    """
    if result.timed_out or result.error:
        return False
    if result.exit_code == 0:
        return True
    return extract_json(result.stdout) is not None
