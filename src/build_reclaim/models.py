"""Data model for build artifact reclamation."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .adapters import TerminationResult


@dataclass(frozen=True)
class ProcessSignature:
    """Identifies a process by name pattern, never by PID."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class TargetPath:
    """A filesystem path slated for removal."""

    path: Path
    label: str = ""
    holders: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        path = Path(self.path).expanduser().absolute()
        object.__setattr__(self, "path", path)
        if not self.label:
            object.__setattr__(self, "label", path.name or str(path))
        object.__setattr__(self, "holders", frozenset(self.holders))

    @classmethod
    def coerce(cls, value: TargetPath | str | Path) -> TargetPath:
        """Build a TargetPath from a path-like value, passing TargetPath through."""
        if isinstance(value, TargetPath):
            return value
        return cls(path=Path(value))


class RemovalStrategy(Enum):
    """Removal strategies in escalation order."""

    DIRECT = "direct"
    FORCED = "forced"
    RENAME = "rename"
    SCHEDULED = "scheduled"

    @property
    def ordinal(self) -> int:
        """1-based position of the strategy in the escalation chain."""
        return list(RemovalStrategy).index(self) + 1


class ReclamationStatus(Enum):
    """Final state of one target."""

    REMOVED = "removed"  # Confirmed absent
    DEFERRED_REMOVED = "deferred_removed"  # Handed to a background task
    FAILED = "failed"  # Still present


@dataclass(frozen=True)
class RemovalAttempt:
    """Outcome of one strategy applied to one target."""

    strategy: RemovalStrategy
    success: bool
    duration: float
    error: str | None = None
    detail: str | None = None

    @property
    def ordinal(self) -> int:
        return self.strategy.ordinal


@dataclass(frozen=True)
class ReclamationOutcome:
    """Result of reclaiming one target, with its full attempt trail."""

    target: TargetPath
    status: ReclamationStatus
    attempts: tuple[RemovalAttempt, ...] = ()

    @property
    def succeeded(self) -> bool:
        """True when the target's expected path is free for reuse."""
        return self.status is not ReclamationStatus.FAILED

    @property
    def final_strategy(self) -> RemovalStrategy | None:
        """Strategy that produced the outcome, or None if none was needed or none worked."""
        for attempt in reversed(self.attempts):
            if attempt.success:
                return attempt.strategy
        return None


class SessionReport(Mapping[str, ReclamationOutcome]):
    """Read-only mapping of target label to outcome for one session."""

    def __init__(
        self,
        outcomes: Mapping[str, ReclamationOutcome],
        terminations: tuple[TerminationResult, ...] = (),
    ) -> None:
        self._outcomes = MappingProxyType(dict(outcomes))
        self._terminations = tuple(terminations)

    def __getitem__(self, label: str) -> ReclamationOutcome:
        return self._outcomes[label]

    def __iter__(self) -> Iterator[str]:
        return iter(self._outcomes)

    def __len__(self) -> int:
        return len(self._outcomes)

    def __repr__(self) -> str:
        statuses = {label: outcome.status.value for label, outcome in self._outcomes.items()}
        return f"SessionReport({statuses})"

    @property
    def terminations(self) -> tuple[TerminationResult, ...]:
        return self._terminations

    def _labels_with(self, status: ReclamationStatus) -> list[str]:
        return [label for label, outcome in self._outcomes.items() if outcome.status is status]

    @property
    def removed(self) -> list[str]:
        return self._labels_with(ReclamationStatus.REMOVED)

    @property
    def deferred(self) -> list[str]:
        return self._labels_with(ReclamationStatus.DEFERRED_REMOVED)

    @property
    def failed(self) -> list[str]:
        return self._labels_with(ReclamationStatus.FAILED)

    @property
    def all_clear(self) -> bool:
        """True when no target was left in place."""
        return not self.failed
