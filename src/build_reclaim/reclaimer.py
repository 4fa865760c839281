"""Escalating removal of one target path."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from .adapters import OperationResult
from .models import (
    ReclamationOutcome,
    ReclamationStatus,
    RemovalAttempt,
    RemovalStrategy,
    TargetPath,
)

if TYPE_CHECKING:
    from .adapters import PlatformAdapter
    from .deferred import DeferredRemovalScheduler


def is_absent(path: Path) -> bool:
    """True if nothing, not even a dangling symlink, exists at path."""
    return not os.path.lexists(path)


class DirectoryReclaimer:
    """Removes a target by trying progressively heavier strategies.

    The chain is direct removal, the OS forced-delete command, rename plus
    background delete, and finally a detached task on the original path.
    It stops at the first strategy that frees the path.
    """

    def __init__(
        self,
        adapter: PlatformAdapter,
        scheduler: DeferredRemovalScheduler,
        logger: logging.Logger,
        *,
        deferred_delay: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the reclaimer.

        Args:
            adapter: Platform adapter.
            scheduler: Scheduler for detached removal tasks.
            logger: Logger instance.
            deferred_delay: Seconds a background task waits before removing.
            clock: Monotonic clock used to time attempts.
            now: Wall clock used for rename suffixes.

        """
        self.adapter = adapter
        self.scheduler = scheduler
        self.logger = logger
        self.deferred_delay = deferred_delay
        self._clock = clock
        self._now = now

    def reclaim(self, target: TargetPath) -> ReclamationOutcome:
        """Run the escalation chain for one target.

        Args:
            target: Target to remove.

        Returns:
            Outcome with every attempted strategy recorded in order.

        """
        path = target.path

        if is_absent(path):
            self.logger.debug("Already absent: %s", path)
            return ReclamationOutcome(target=target, status=ReclamationStatus.REMOVED)

        attempts: list[RemovalAttempt] = []

        for strategy, step in (
            (RemovalStrategy.DIRECT, self._direct),
            (RemovalStrategy.FORCED, self._forced),
        ):
            attempt = step(path)
            attempts.append(attempt)
            if attempt.success:
                self.logger.info("Removed %s (%s)", target.label, strategy.value)
                return ReclamationOutcome(
                    target=target,
                    status=ReclamationStatus.REMOVED,
                    attempts=tuple(attempts),
                )
            self.logger.warning("%s removal failed for %s: %s", strategy.value, target.label, attempt.error)

        for strategy, step in (
            (RemovalStrategy.RENAME, self._rename),
            (RemovalStrategy.SCHEDULED, self._scheduled),
        ):
            attempt = step(path)
            attempts.append(attempt)
            if attempt.success:
                self.logger.info("Deferred removal of %s (%s)", target.label, strategy.value)
                return ReclamationOutcome(
                    target=target,
                    status=ReclamationStatus.DEFERRED_REMOVED,
                    attempts=tuple(attempts),
                )
            self.logger.warning("%s failed for %s: %s", strategy.value, target.label, attempt.error)

        self.logger.error("Could not reclaim %s, path left in place: %s", target.label, path)
        return ReclamationOutcome(
            target=target,
            status=ReclamationStatus.FAILED,
            attempts=tuple(attempts),
        )

    def _timed(
        self,
        strategy: RemovalStrategy,
        action: Callable[[], OperationResult],
        detail: str | None = None,
    ) -> RemovalAttempt:
        start = self._clock()
        try:
            result = action()
        except OSError as e:
            result = OperationResult(success=False, reason=str(e))
        duration = self._clock() - start

        return RemovalAttempt(
            strategy=strategy,
            success=result.success,
            duration=duration,
            error=None if result.success else result.reason,
            detail=detail,
        )

    def _verified(self, path: Path, remove: Callable[[Path], OperationResult]) -> OperationResult:
        result = remove(path)
        if result.success and not is_absent(path):
            return OperationResult(success=False, reason="Path still present after removal")
        return result

    def _direct(self, path: Path) -> RemovalAttempt:
        return self._timed(
            RemovalStrategy.DIRECT,
            lambda: self._verified(path, self.adapter.remove_directory),
        )

    def _forced(self, path: Path) -> RemovalAttempt:
        return self._timed(
            RemovalStrategy.FORCED,
            lambda: self._verified(path, self.adapter.force_remove),
        )

    def _rename(self, path: Path) -> RemovalAttempt:
        start = self._clock()
        renamed = self._sibling_path(path)
        try:
            result = self.adapter.rename_path(path, renamed)
        except OSError as e:
            result = OperationResult(success=False, reason=str(e))

        if not result.success:
            return RemovalAttempt(
                strategy=RemovalStrategy.RENAME,
                success=False,
                duration=self._clock() - start,
                error=result.reason,
            )

        # The expected path is free once the rename lands; deletion of the
        # renamed copy is best effort.
        detail = f"renamed to {renamed.name}"
        scheduled = self.scheduler.schedule(renamed, self.deferred_delay)
        if not scheduled.scheduled:
            self.logger.warning("Renamed copy left for manual removal: %s", renamed)
            detail = f"{detail}; background removal not scheduled: {scheduled.error}"

        return RemovalAttempt(
            strategy=RemovalStrategy.RENAME,
            success=True,
            duration=self._clock() - start,
            detail=detail,
        )

    def _scheduled(self, path: Path) -> RemovalAttempt:
        start = self._clock()
        scheduled = self.scheduler.schedule(path, self.deferred_delay)
        return RemovalAttempt(
            strategy=RemovalStrategy.SCHEDULED,
            success=scheduled.scheduled,
            duration=self._clock() - start,
            error=scheduled.error,
            detail=f"removal in {self.deferred_delay:g}s" if scheduled.scheduled else None,
        )

    def _sibling_path(self, path: Path) -> Path:
        """Unique sibling name for moving a locked path out of the way."""
        stem = f"{path.name}-temp-{int(self._now() * 1000)}"
        candidate = path.with_name(stem)
        counter = 1
        while not is_absent(candidate):
            candidate = path.with_name(f"{stem}-{counter}")
            counter += 1
        return candidate
