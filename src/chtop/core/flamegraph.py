"""Folded-stack flamegraph data and its presentation."""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Sequence
from pathlib import Path

from .._safe_subprocess import SubprocessError, safe_run
from ..clickhouse.block import Block

logger = logging.getLogger(__name__)

DEFAULT_VIEWER = "flamelens"

Stacks = tuple[tuple[str, int], ...]


def stacks_from_block(block: Block) -> Stacks:
    """Read ``stack``/``weight`` rows, dropping empty stacks and zero weights."""

    stacks: list[tuple[str, int]] = []
    for row in range(block.row_count()):
        stack = block.get_str(row, "stack")
        weight = block.get_int(row, "weight")
        if stack and weight > 0:
            stacks.append((stack, weight))
    return tuple(stacks)


def folded_text(stacks: Sequence[tuple[str, int]]) -> str:
    """Render in the ``frame;frame weight`` format understood by flamegraph tools."""

    return "".join(f"{stack} {weight}\n" for stack, weight in stacks)


def top_stacks_report(stacks: Sequence[tuple[str, int]], limit: int = 40) -> str:
    """Plain-text summary of the heaviest stacks (leaf frame first)."""

    if not stacks:
        return "No samples collected for this time range."
    total = sum(weight for _, weight in stacks)
    lines = [f"{len(stacks)} distinct stacks, total weight {total}", ""]
    for stack, weight in sorted(stacks, key=lambda item: item[1], reverse=True)[:limit]:
        frames = stack.split(";")
        share = weight / total * 100 if total else 0.0
        lines.append(f"{share:6.2f}%  {frames[-1]}")
        if len(frames) > 1:
            lines.append(f"         <- {' <- '.join(reversed(frames[-4:-1]))}")
    return "\n".join(lines)


def viewer_available(viewer: str = DEFAULT_VIEWER) -> bool:
    return shutil.which(viewer) is not None


def open_in_viewer(stacks: Sequence[tuple[str, int]], viewer: str = DEFAULT_VIEWER) -> None:
    """Run ``viewer`` on a temporary folded-stacks file; blocks until it exits.

    Raises :class:`SubprocessError` when the viewer is missing or fails.
    """

    executable = shutil.which(viewer)
    if executable is None:
        raise SubprocessError(f"{viewer} not found in PATH")
    with tempfile.TemporaryDirectory(prefix="chtop-flamegraph-") as tmp:
        path = Path(tmp) / "stacks.folded"
        path.write_text(folded_text(stacks), encoding="utf-8")
        logger.info("Opening %d stacks in %s", len(stacks), viewer)
        safe_run([executable, str(path)], check=False)


__all__ = [
    "DEFAULT_VIEWER",
    "Stacks",
    "folded_text",
    "open_in_viewer",
    "stacks_from_block",
    "top_stacks_report",
    "viewer_available",
]
