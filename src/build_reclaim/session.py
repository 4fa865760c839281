"""Reclamation session: stop interferers, settle, reclaim every target."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from .adapters import get_platform_adapter
from .deferred import DeferredRemovalScheduler
from .models import (
    ProcessSignature,
    ReclamationOutcome,
    ReclamationStatus,
    SessionReport,
    TargetPath,
)
from .reclaimer import DirectoryReclaimer
from .targets import expand_targets
from .terminator import ProcessTerminator, QuiescenceWaiter

if TYPE_CHECKING:
    from .adapters import PlatformAdapter, TerminationResult
    from .config import ReclaimConfig


class ReclamationSession:
    """Orchestrates one clean-up pass over a set of target paths.

    Processes are terminated once for the whole session, followed by a
    single quiescence wait. Each target then runs its own escalation chain;
    a failed target never stops the others.
    """

    def __init__(
        self,
        config: ReclaimConfig,
        logger: logging.Logger | None = None,
        *,
        adapter: PlatformAdapter | None = None,
        terminator: ProcessTerminator | None = None,
        waiter: QuiescenceWaiter | None = None,
        scheduler: DeferredRemovalScheduler | None = None,
        reclaimer: DirectoryReclaimer | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            config: Reclamation configuration.
            logger: Logger instance. Uses the "build-reclaim" logger if None.
            adapter: Platform adapter. Selected from config.platform if None.
            terminator: Process terminator override.
            waiter: Quiescence waiter override.
            scheduler: Deferred removal scheduler override.
            reclaimer: Directory reclaimer override.

        """
        self.config = config
        self.logger = logger or logging.getLogger("build-reclaim")

        self.adapter = adapter or get_platform_adapter(
            config.platform,
            command_timeout=config.command_timeout,
            env=config.command_env,
            deferred_retries=config.deferred_retries,
            deferred_retry_interval=config.deferred_retry_interval,
        )
        self.terminator = terminator or ProcessTerminator(self.adapter, self.logger)
        self.waiter = waiter or QuiescenceWaiter(config.quiescence_wait)
        self.scheduler = scheduler or DeferredRemovalScheduler(self.adapter, self.logger)
        self.reclaimer = reclaimer or DirectoryReclaimer(
            self.adapter,
            self.scheduler,
            self.logger,
            deferred_delay=config.deferred_delay,
        )

    def run(
        self,
        targets: Iterable[TargetPath | str | Path] | None = None,
        signatures: Iterable[ProcessSignature] | None = None,
    ) -> SessionReport:
        """Run the session.

        Args:
            targets: Paths to reclaim. Uses the configured targets if None.
            signatures: Processes to stop. Uses the configured list if None.

        Returns:
            Report with exactly one outcome per target. Empty if every
            target was a glob pattern that matched nothing.

        Raises:
            ValueError: If there are no targets or two targets share a label.

        """
        resolved, sigs = self._prepare(targets, signatures)
        if not resolved:
            return self._report([], [])

        terminations = self.terminator.terminate_known_interferers(sigs)
        self._announce_wait()
        self.waiter.wait()

        if self.config.parallel and len(resolved) > 1:
            with ThreadPoolExecutor(max_workers=len(resolved)) as pool:
                outcomes = list(pool.map(self._reclaim_one, resolved))
        else:
            outcomes = [self._reclaim_one(target) for target in resolved]

        return self._report(outcomes, terminations)

    async def run_async(
        self,
        targets: Iterable[TargetPath | str | Path] | None = None,
        signatures: Iterable[ProcessSignature] | None = None,
    ) -> SessionReport:
        """Run the session without blocking the event loop.

        Same semantics as run(); blocking steps are moved to worker threads.
        """
        resolved, sigs = self._prepare(targets, signatures)
        if not resolved:
            return self._report([], [])

        terminations = await asyncio.to_thread(self.terminator.terminate_known_interferers, sigs)
        self._announce_wait()
        await self.waiter.wait_async()

        if self.config.parallel:
            outcomes = list(
                await asyncio.gather(*(asyncio.to_thread(self._reclaim_one, target) for target in resolved))
            )
        else:
            outcomes = [await asyncio.to_thread(self._reclaim_one, target) for target in resolved]

        return self._report(outcomes, terminations)

    def _prepare(
        self,
        targets: Iterable[TargetPath | str | Path] | None,
        signatures: Iterable[ProcessSignature] | None,
    ) -> tuple[list[TargetPath], list[ProcessSignature]]:
        """Resolve targets and the signature list, rejecting misuse."""
        raw = self.config.targets if targets is None else [TargetPath.coerce(t) for t in targets]
        if not raw:
            raise ValueError("At least one target path is required")

        resolved = expand_targets(raw)
        if not resolved:
            self.logger.info("No glob target matched anything, nothing to reclaim")
            return [], []

        labels = [target.label for target in resolved]
        duplicates = sorted({label for label in labels if labels.count(label) > 1})
        if duplicates:
            raise ValueError(f"Duplicate target labels: {', '.join(duplicates)}")

        sigs = list(self.config.process_signatures if signatures is None else signatures)
        known = {signature.name for signature in sigs}
        for target in resolved:
            for holder in sorted(target.holders - known):
                sigs.append(ProcessSignature(holder))
                known.add(holder)

        self.logger.info(
            "Reclaiming %d target(s), stopping %d process signature(s)",
            len(resolved),
            len(sigs),
        )
        self.scheduler.reset()
        return resolved, sigs

    def _announce_wait(self) -> None:
        if self.waiter.delay > 0:
            self.logger.info("Waiting %.1fs for file handles to be released", self.waiter.delay)

    def _reclaim_one(self, target: TargetPath) -> ReclamationOutcome:
        try:
            return self.reclaimer.reclaim(target)
        except OSError as e:
            self.logger.error("Unexpected error reclaiming %s: %s", target.label, e)
            return ReclamationOutcome(target=target, status=ReclamationStatus.FAILED)

    def _report(
        self,
        outcomes: Sequence[ReclamationOutcome],
        terminations: Sequence[TerminationResult],
    ) -> SessionReport:
        report = SessionReport(
            {outcome.target.label: outcome for outcome in outcomes},
            terminations=tuple(terminations),
        )

        self.logger.info(
            "Session finished: removed=%d, deferred=%d, failed=%d",
            len(report.removed),
            len(report.deferred),
            len(report.failed),
        )
        for label in report.failed:
            self.logger.warning("Left in place: %s", report[label].target.path)

        return report
