"""Platform adapters for process control and forced filesystem removal."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import psutil

from .models import ProcessSignature
from .shell import CommandResult, merge_env, run_command

logger = logging.getLogger(__name__)

# Process creation flags, only exported by the subprocess module on Windows
DETACHED_PROCESS = getattr(subprocess, "DETACHED_PROCESS", 0x00000008)
CREATE_NEW_PROCESS_GROUP = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0x00000200)

# taskkill exit code when no process matches the image name
TASKKILL_NOT_FOUND = 128

# Module run by the detached removal workers this package spawns
DEFERRED_WORKER_MODULE = "build_reclaim.deferred"


@dataclass(frozen=True)
class TerminationResult:
    """Result of terminating processes matching one signature."""

    signature: ProcessSignature
    terminated: bool  # True if at least one process was signalled
    error: str | None = None


@dataclass(frozen=True)
class OperationResult:
    """Success or failure of one filesystem operation."""

    success: bool
    reason: str | None = None


@runtime_checkable
class PlatformAdapter(Protocol):
    """Process-control and filesystem primitives of the host OS."""

    name: str

    def terminate_process_by_name(self, signature: ProcessSignature) -> TerminationResult:
        """Stop every process matching the signature; absent is success."""
        ...

    def remove_directory(self, path: Path) -> OperationResult:
        """Recursively remove a path with the in-process primitive."""
        ...

    def force_remove(self, path: Path) -> OperationResult:
        """Recursively remove a path with the OS-native forced command."""
        ...

    def rename_path(self, old: Path, new: Path) -> OperationResult:
        """Rename a path in place."""
        ...

    def schedule_detached_removal(self, path: Path, delay: float) -> None:
        """Spawn a process, independent of this one, that removes path after delay.

        Raises:
            OSError: If the process cannot be spawned.

        """
        ...


class BaseAdapter(ABC):
    """Shared behaviour of the concrete adapters."""

    name = "base"

    def __init__(
        self,
        *,
        command_timeout: float = 60.0,
        env: Mapping[str, str] | None = None,
        deferred_retries: int = 3,
        deferred_retry_interval: float = 2.0,
        python: str | None = None,
    ) -> None:
        self.command_timeout = command_timeout
        self.env = dict(env or {})
        self.deferred_retries = deferred_retries
        self.deferred_retry_interval = deferred_retry_interval
        self.python = python or sys.executable

    @abstractmethod
    def terminate_process_by_name(self, signature: ProcessSignature) -> TerminationResult:
        """Stop every process matching the signature."""

    @abstractmethod
    def force_remove(self, path: Path) -> OperationResult:
        """Remove a path with the OS-native forced command."""

    def remove_directory(self, path: Path) -> OperationResult:
        """Remove a directory tree or a single file.

        shutil.rmtree stops at the first entry it cannot remove, so a
        partially deleted tree is reported as a failure.
        """
        if not path.exists() and not path.is_symlink():
            return OperationResult(success=True)

        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except PermissionError as e:
            return OperationResult(success=False, reason=f"Permission denied: {e}")
        except OSError as e:
            return OperationResult(success=False, reason=str(e))

        return OperationResult(success=True)

    def rename_path(self, old: Path, new: Path) -> OperationResult:
        if new.exists():
            return OperationResult(success=False, reason=f"{new.name} already exists")

        try:
            old.rename(new)
        except PermissionError as e:
            return OperationResult(success=False, reason=f"Permission denied: {e}")
        except OSError as e:
            return OperationResult(success=False, reason=str(e))

        return OperationResult(success=True)

    def schedule_detached_removal(self, path: Path, delay: float) -> None:
        args = [
            self.python,
            "-m",
            DEFERRED_WORKER_MODULE,
            str(path),
            "--delay",
            str(delay),
            "--retries",
            str(self.deferred_retries),
            "--interval",
            str(self.deferred_retry_interval),
        ]
        subprocess.Popen(  # noqa: S603
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            close_fds=True,
            env=merge_env(self.env),
            **self._detach_options(),
        )
        logger.debug("Spawned detached removal for %s (delay %.1fs)", path, delay)

    @abstractmethod
    def _detach_options(self) -> dict[str, object]:
        """Popen keyword arguments that detach the worker from this process."""

    def _run(self, args: list[str]) -> CommandResult | str:
        """Run a command, returning its result or the reason it could not run."""
        try:
            return run_command(args, timeout=self.command_timeout, env=self.env)
        except subprocess.TimeoutExpired:
            return f"{args[0]} timed out after {self.command_timeout}s"
        except (subprocess.SubprocessError, OSError) as e:
            return f"{args[0]} failed to start: {e}"


def matches_signature(info: dict[str, Any], signature: ProcessSignature) -> bool:
    """Check a psutil process_iter info dict against a signature.

    The process name or the basename of its executable argument must equal
    the signature. Our own deferred removal workers never match.
    """
    cmdline = info.get("cmdline") or []
    if DEFERRED_WORKER_MODULE in cmdline:
        return False

    if info.get("name") == signature.name:
        return True
    return bool(cmdline) and Path(cmdline[0]).name == signature.name


class PosixAdapter(BaseAdapter):
    """Linux and macOS: psutil termination, rm -rf, new-session detachment."""

    name = "posix"

    def terminate_process_by_name(self, signature: ProcessSignature) -> TerminationResult:
        own = {os.getpid(), os.getppid()}
        terminated = False
        errors: list[str] = []

        for proc in psutil.process_iter(["pid", "name", "cmdline"]):
            try:
                if proc.info["pid"] in own or not matches_signature(proc.info, signature):
                    continue
                proc.terminate()
                terminated = True
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied as e:
                errors.append(f"pid {proc.pid}: {e}")

        return TerminationResult(
            signature=signature,
            terminated=terminated,
            error="; ".join(errors) or None,
        )

    def force_remove(self, path: Path) -> OperationResult:
        result = self._run(["rm", "-rf", "--", str(path)])
        if isinstance(result, str):
            return OperationResult(success=False, reason=result)
        if not result.success:
            return OperationResult(success=False, reason=result.diagnostic)
        return OperationResult(success=True)

    def _detach_options(self) -> dict[str, object]:
        return {"start_new_session": True}


class WindowsAdapter(BaseAdapter):
    """Windows: taskkill, rmdir with a PowerShell fallback, detached process group."""

    name = "windows"

    def terminate_process_by_name(self, signature: ProcessSignature) -> TerminationResult:
        result = self._run(["taskkill", "/f", "/im", signature.name])
        if isinstance(result, str):
            return TerminationResult(signature=signature, terminated=False, error=result)

        if result.returncode == TASKKILL_NOT_FOUND:
            return TerminationResult(signature=signature, terminated=False)
        if not result.success:
            return TerminationResult(signature=signature, terminated=False, error=result.diagnostic)
        return TerminationResult(signature=signature, terminated=True)

    def force_remove(self, path: Path) -> OperationResult:
        if path.is_dir():
            native = ["cmd", "/c", "rmdir", "/s", "/q", str(path)]
        else:
            native = ["cmd", "/c", "del", "/f", "/q", str(path)]

        result = self._run(native)
        if not isinstance(result, str) and result.success:
            return OperationResult(success=True)
        first_reason = result if isinstance(result, str) else result.diagnostic
        logger.debug("rmdir failed for %s: %s", path, first_reason)

        literal = str(path).replace("'", "''")
        result = self._run([
            "powershell",
            "-NoProfile",
            "-Command",
            f"Remove-Item -LiteralPath '{literal}' -Recurse -Force",
        ])
        if isinstance(result, str):
            return OperationResult(success=False, reason=f"{first_reason}; {result}")
        if not result.success:
            return OperationResult(success=False, reason=f"{first_reason}; {result.diagnostic}")
        return OperationResult(success=True)

    def _detach_options(self) -> dict[str, object]:
        return {"creationflags": DETACHED_PROCESS | CREATE_NEW_PROCESS_GROUP}


def get_platform_adapter(platform: str | None = None, **options: object) -> BaseAdapter:
    """Select the adapter for a platform string such as sys.platform.

    Args:
        platform: Platform name. Uses sys.platform if None.
        **options: Passed to the adapter constructor.

    Returns:
        Adapter instance for the platform.

    """
    platform = platform or sys.platform
    if platform.startswith("win"):
        return WindowsAdapter(**options)  # type: ignore[arg-type]
    return PosixAdapter(**options)  # type: ignore[arg-type]
