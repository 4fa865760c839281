"""Deferred removal in a detached background process.

The scheduler hands a path to the platform adapter, which spawns
``python -m build_reclaim.deferred`` independent of the calling process.
That worker sleeps past the lock-release window, retries the removal a few
times and exits. It reports nothing back.
"""

from __future__ import annotations

import argparse
import logging
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .adapters import get_platform_adapter
from .reclaimer import is_absent

if TYPE_CHECKING:
    from .adapters import PlatformAdapter


@dataclass(frozen=True)
class ScheduleResult:
    """Result of handing a path to a detached removal task."""

    path: Path
    scheduled: bool
    error: str | None = None


class DeferredRemovalScheduler:
    """Fire-and-forget removal of paths the foreground chain could not delete."""

    def __init__(self, adapter: PlatformAdapter, logger: logging.Logger) -> None:
        """Initialize the scheduler.

        Args:
            adapter: Platform adapter that spawns the detached process.
            logger: Logger instance.

        """
        self.adapter = adapter
        self.logger = logger
        self._scheduled: set[Path] = set()

    def schedule(self, path: Path, min_delay: float) -> ScheduleResult:
        """Schedule removal of a path after a delay.

        Args:
            path: Path to remove.
            min_delay: Seconds the task waits before its first attempt.

        Returns:
            ScheduleResult; scheduled is False if the spawn failed or the
            path already has an outstanding task.

        """
        if path in self._scheduled:
            return ScheduleResult(
                path=path,
                scheduled=False,
                error="Removal already scheduled",
            )

        try:
            self.adapter.schedule_detached_removal(path, min_delay)
        except (subprocess.SubprocessError, OSError) as e:
            self.logger.error("Could not schedule deferred removal of %s: %s", path, e)
            return ScheduleResult(path=path, scheduled=False, error=str(e))

        self._scheduled.add(path)
        self.logger.info("Scheduled deferred removal in %.1fs: %s", min_delay, path)
        return ScheduleResult(path=path, scheduled=True)

    def reset(self) -> None:
        """Forget paths scheduled by an earlier run."""
        self._scheduled.clear()

    @property
    def outstanding(self) -> frozenset[Path]:
        """Paths handed to background tasks in the current run."""
        return frozenset(self._scheduled)


def remove_with_retries(
    path: Path,
    *,
    delay: float,
    retries: int,
    interval: float,
    adapter: PlatformAdapter | None = None,
) -> bool:
    """Wait, then try to remove a path until it is gone or the budget is spent.

    Each attempt tries the in-process removal first and falls back to the
    OS forced-delete command.

    Args:
        path: Path to remove.
        delay: Seconds to wait before the first attempt.
        retries: Number of attempts.
        interval: Seconds between attempts.
        adapter: Adapter providing the removal primitives.

    Returns:
        True if nothing is left at path.

    """
    adapter = adapter or get_platform_adapter()
    time.sleep(max(delay, 0.0))

    for attempt in range(max(retries, 1)):
        if attempt:
            time.sleep(interval)
        adapter.remove_directory(path)
        if is_absent(path):
            return True
        adapter.force_remove(path)
        if is_absent(path):
            return True

    return is_absent(path)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="build-reclaim-deferred",
        description="Remove a path after a delay (runs detached)",
    )
    parser.add_argument("path", type=Path, help="Path to remove")
    parser.add_argument("--delay", type=float, default=5.0, help="Seconds to wait first")
    parser.add_argument("--retries", type=int, default=3, help="Number of removal attempts")
    parser.add_argument("--interval", type=float, default=2.0, help="Seconds between attempts")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Detached worker entry point.

    Returns:
        0 if the path was removed, 1 otherwise.

    """
    args = parse_args(argv)
    removed = remove_with_retries(
        args.path,
        delay=args.delay,
        retries=args.retries,
        interval=args.interval,
    )
    return 0 if removed else 1


if __name__ == "__main__":
    sys.exit(main())
