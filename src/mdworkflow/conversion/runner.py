"""Subprocess execution for external converters and processors."""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol, Sequence

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one external command.

    Attributes:
        returncode: Exit status; ``None`` when the command never finished.
        stdout: Captured standard output.
        stderr: Captured standard error.
        timed_out: Whether the command was killed after its timeout.
        error: Description of a failure to launch or finish the command.
    """

    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.error is None

    def describe(self) -> str:
        """Return a one-line failure description."""
        if self.timed_out:
            return self.error or "command timed out"
        if self.error:
            return self.error
        detail = (self.stderr or self.stdout).strip()
        message = f"command failed with exit code {self.returncode}"
        return f"{message}: {detail[:500]}" if detail else message


class CommandRunner(Protocol):
    """Callable that executes an argument vector."""

    def __call__(
        self, args: Sequence[str], *, timeout: float, cwd: Path | None = None
    ) -> CommandResult: ...


def run_command(args: Sequence[str], *, timeout: float, cwd: Path | None = None) -> CommandResult:
    """Run ``args`` without a shell, killing it after ``timeout`` seconds."""
    LOGGER.debug("Executing: %s", shlex.join(args))
    try:
        completed = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(
            returncode=None,
            timed_out=True,
            error=f"{args[0]} timed out after {timeout:g}s",
        )
    except OSError as exc:
        return CommandResult(returncode=None, error=f"cannot run {args[0]}: {exc}")
    return CommandResult(
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )


def build_command(template: str, variables: Mapping[str, str]) -> list[str]:
    """Split ``template`` into arguments, then substitute ``{name}`` placeholders.

    Substitution happens per argument after splitting, so values containing
    spaces stay a single argument. Unknown placeholders are left untouched.
    """
    arguments: list[str] = []
    for token in shlex.split(template):
        for key, value in variables.items():
            token = token.replace(f"{{{key}}}", value)
        arguments.append(token)
    return arguments


__all__ = ["CommandResult", "CommandRunner", "build_command", "run_command"]
