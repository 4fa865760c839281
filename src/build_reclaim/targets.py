"""Expand configured target entries into concrete paths."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from .models import TargetPath

logger = logging.getLogger(__name__)

GLOB_CHARS = frozenset("*?[")


def is_pattern(target: TargetPath) -> bool:
    """Check if a target path contains glob characters."""
    return any(char in GLOB_CHARS for char in str(target.path))


def match_label(label: str, pattern_tail: tuple[str, ...], relative: Path) -> str:
    """Label a glob match by substituting it for the pattern part of the label.

    ``packages/*/dist`` matching ``ui/dist`` becomes ``packages/ui/dist``.
    A custom label that does not end with the pattern gets the match
    appended instead.
    """
    label_parts = Path(label).parts
    count = len(pattern_tail)
    if label_parts[-count:] == pattern_tail:
        label_parts = label_parts[:-count]
    return str(Path(*label_parts, *relative.parts))


def expand_target(target: TargetPath) -> list[TargetPath]:
    """Expand a glob target into one target per existing match.

    Plain targets are returned unchanged, whether or not they exist.

    Args:
        target: Target that may hold a glob pattern.

    Returns:
        Concrete targets, sorted by path.

    """
    if not is_pattern(target):
        return [target]

    parts = target.path.parts
    fixed = next(i for i, part in enumerate(parts) if any(char in GLOB_CHARS for char in part))
    base = Path(*parts[:fixed])
    tail = parts[fixed:]

    try:
        matches = sorted(base.glob(str(Path(*tail))))
    except (OSError, ValueError) as e:
        logger.warning("Cannot expand %s: %s", target.path, e)
        return []

    expanded = [
        TargetPath(
            path=match,
            label=match_label(target.label, tail, match.relative_to(base)),
            holders=target.holders,
        )
        for match in matches
    ]
    logger.debug("Expanded %s to %d paths", target.label, len(expanded))
    return expanded


def expand_targets(targets: Iterable[TargetPath]) -> list[TargetPath]:
    """Expand every target, keeping first occurrence of each path."""
    expanded: list[TargetPath] = []
    seen: set[Path] = set()

    for target in targets:
        for concrete in expand_target(target):
            if concrete.path in seen:
                continue
            seen.add(concrete.path)
            expanded.append(concrete)

    return expanded
