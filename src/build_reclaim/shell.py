"""Subprocess helpers for platform commands."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class CommandResult:
    """Result of a shell command execution."""

    stdout: str
    stderr: str
    returncode: int

    @property
    def success(self) -> bool:
        """Check if command executed successfully."""
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        """Best available diagnostic text for a failed command."""
        text = (self.stderr or self.stdout).strip()
        return text or f"exit code {self.returncode}"


def run_command(
    args: list[str],
    *,
    timeout: float | None = 60.0,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Execute a command and return the result.

    Args:
        args: Command and arguments to execute.
        timeout: Maximum time in seconds to wait for command.
        env: Variables merged over the current environment.

    Returns:
        CommandResult with stdout, stderr, and returncode.

    Raises:
        subprocess.TimeoutExpired: If command exceeds timeout.
        FileNotFoundError: If command executable is not found.

    """
    result = subprocess.run(
        args,
        capture_output=True,
        text=True,
        check=False,
        timeout=timeout,
        env=merge_env(env),
    )
    return CommandResult(
        stdout=result.stdout,
        stderr=result.stderr,
        returncode=result.returncode,
    )


def merge_env(overlay: Mapping[str, str] | None) -> dict[str, str] | None:
    """Overlay explicit variables on the inherited environment."""
    if not overlay:
        return None
    return {**os.environ, **overlay}
