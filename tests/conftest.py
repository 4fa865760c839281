"""Shared fixtures: an in-memory platform adapter over a real temp tree."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

import pytest

from build_reclaim.adapters import OperationResult, TerminationResult
from build_reclaim.config import ReclaimConfig
from build_reclaim.models import ProcessSignature


class FakeAdapter:
    """Adapter double whose strategies can be made to fail on demand."""

    name = "fake"

    def __init__(
        self,
        *,
        direct_fails: bool = False,
        forced_fails: bool = False,
        rename_fails: bool = False,
        schedule_fails: bool = False,
        running: set[str] | None = None,
        terminate_errors: set[str] | None = None,
    ) -> None:
        self.direct_fails = direct_fails
        self.forced_fails = forced_fails
        self.rename_fails = rename_fails
        self.schedule_fails = schedule_fails
        self.running = running or set()
        self.terminate_errors = terminate_errors or set()
        self.calls: list[str] = []
        self.terminate_calls: list[str] = []
        self.scheduled: list[tuple[Path, float]] = []

    def terminate_process_by_name(self, signature: ProcessSignature) -> TerminationResult:
        self.terminate_calls.append(signature.name)
        if signature.name in self.terminate_errors:
            raise OSError(f"cannot signal {signature.name}")
        terminated = signature.name in self.running
        self.running.discard(signature.name)
        return TerminationResult(signature=signature, terminated=terminated)

    def remove_directory(self, path: Path) -> OperationResult:
        self.calls.append("direct")
        if self.direct_fails:
            return OperationResult(success=False, reason="The process cannot access the file")
        _remove(path)
        return OperationResult(success=True)

    def force_remove(self, path: Path) -> OperationResult:
        self.calls.append("forced")
        if self.forced_fails:
            return OperationResult(success=False, reason="Access is denied")
        _remove(path)
        return OperationResult(success=True)

    def rename_path(self, old: Path, new: Path) -> OperationResult:
        self.calls.append("rename")
        if self.rename_fails:
            return OperationResult(success=False, reason="Access is denied")
        old.rename(new)
        return OperationResult(success=True)

    def schedule_detached_removal(self, path: Path, delay: float) -> None:
        self.calls.append("scheduled")
        if self.schedule_fails:
            raise OSError("spawn failed")
        self.scheduled.append((path, delay))


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


@pytest.fixture
def logger() -> logging.Logger:
    """Create a test logger."""
    return logging.getLogger("test-build-reclaim")


@pytest.fixture
def adapter() -> FakeAdapter:
    """Create an adapter where every strategy works."""
    return FakeAdapter()


@pytest.fixture
def config(tmp_path: Path) -> ReclaimConfig:
    """Create a test configuration rooted at a temp directory, without waits."""
    cfg = ReclaimConfig.for_platform("linux", tmp_path)
    cfg.quiescence_wait = 0
    cfg.deferred_delay = 5.0
    return cfg


@pytest.fixture
def release_dir(tmp_path: Path) -> Path:
    """Create a populated release directory."""
    release = tmp_path / "release"
    (release / "win-unpacked" / "resources").mkdir(parents=True)
    (release / "win-unpacked" / "resources" / "app.asar").write_bytes(b"asar")
    (release / "latest.yml").write_text("version: 1.0.0\n")
    return release
