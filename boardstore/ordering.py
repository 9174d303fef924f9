"""Sibling order keys.

Every container carries a numeric ``position`` that is unique inside its
sibling scope (same kind, same ``parent_id``). New items go to the end at
fixed ``gap`` increments; inserts between two siblings take the midpoint
until the gap is used up, at which point the whole scope is renumbered.

All functions here are pure: the same ordered input always yields the
same output.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from boardstore.errors import NeedsRebalance

GAP = 1000
MIN_HEADROOM = 2.0


class PositionAllocator:
    """Assigns and rebalances sibling positions."""

    def __init__(self, gap: int = GAP, min_headroom: float = MIN_HEADROOM) -> None:
        self.gap = gap
        self.min_headroom = min_headroom

    def end_of_list(self, sibling_positions: Iterable[float]) -> float:
        """Position after the last sibling, or ``gap`` for an empty scope."""
        positions = list(sibling_positions)
        if not positions:
            return float(self.gap)
        return float(max(positions) + self.gap)

    def between(self, before: float, after: float) -> float:
        """Midpoint of two neighbours.

        Raises:
            NeedsRebalance: If ``after - before`` is below the headroom.
        """
        if after - before < self.min_headroom:
            raise NeedsRebalance(before, after)
        return (before + after) / 2

    def at_index(self, sibling_positions: Sequence[float], index: int) -> float:
        """Position for an insert at ``index`` of an ordered sibling list.

        ``index`` must already be clamped to ``[0, len(sibling_positions)]``.
        The head of the list is treated as having a neighbour at 0.
        """
        if index >= len(sibling_positions):
            return self.end_of_list(sibling_positions)
        before = sibling_positions[index - 1] if index > 0 else 0.0
        return self.between(before, sibling_positions[index])

    def rebalance(self, ordered_siblings: Sequence[object]) -> list[float]:
        """Fresh positions ``gap, 2*gap, ...`` in the given order."""
        return [float(self.gap * (i + 1)) for i in range(len(ordered_siblings))]


def is_strictly_increasing(positions: Sequence[float]) -> bool:
    """True when every position is greater than the one before it."""
    return all(a < b for a, b in zip(positions, positions[1:]))
