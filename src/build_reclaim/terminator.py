"""Stop processes that hold build outputs open, then let their locks settle."""

from __future__ import annotations

import asyncio
import logging
import subprocess
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from .adapters import TerminationResult
from .models import ProcessSignature

if TYPE_CHECKING:
    from .adapters import PlatformAdapter


class ProcessTerminator:
    """Best-effort termination of known interfering processes."""

    def __init__(self, adapter: PlatformAdapter, logger: logging.Logger) -> None:
        """Initialize the terminator.

        Args:
            adapter: Platform adapter used to stop processes.
            logger: Logger instance.

        """
        self.adapter = adapter
        self.logger = logger

    def terminate_known_interferers(
        self, signatures: Iterable[ProcessSignature]
    ) -> list[TerminationResult]:
        """Terminate every signature in turn.

        A failure for one signature is recorded and never stops the next one.

        Args:
            signatures: Processes to stop, by name.

        Returns:
            One TerminationResult per distinct signature, in input order.

        """
        results: list[TerminationResult] = []
        seen: set[str] = set()

        for signature in signatures:
            if signature.name in seen:
                continue
            seen.add(signature.name)

            try:
                result = self.adapter.terminate_process_by_name(signature)
            except (subprocess.SubprocessError, OSError) as e:
                self.logger.warning("Could not terminate %s: %s", signature.name, e)
                results.append(TerminationResult(signature=signature, terminated=False, error=str(e)))
                continue

            if result.terminated:
                self.logger.info("Stopped %s", signature.name)
            elif result.error:
                self.logger.warning("Could not terminate %s: %s", signature.name, result.error)
            else:
                self.logger.debug("Not running: %s", signature.name)
            results.append(result)

        return results


class QuiescenceWaiter:
    """Fixed settle delay after termination requests."""

    def __init__(self, delay: float, sleep: Callable[[float], None] = time.sleep) -> None:
        self.delay = delay
        self._sleep = sleep

    def wait(self) -> None:
        """Block for the configured delay."""
        if self.delay > 0:
            self._sleep(self.delay)

    async def wait_async(self) -> None:
        if self.delay > 0:
            await asyncio.sleep(self.delay)
